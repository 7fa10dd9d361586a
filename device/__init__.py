"""
Device package - serial link and controller for the fan device.

This package contains:
- base: abstract byte link
- serial_link: pyserial implementation of the link
- command_queue: bounded FIFO of outgoing commands
- controller: mutation API plus the serial RX/TX threads
- console: operator command thread
"""

from device.base import Link
from device.command_queue import CommandQueue
from device.console import ConsoleCommands, ConsoleThread
from device.controller import DeviceController
from device.serial_link import SerialLink, SerialLinkError, closest_baud_rate

__all__ = [
    "CommandQueue",
    "ConsoleCommands",
    "ConsoleThread",
    "DeviceController",
    "Link",
    "SerialLink",
    "SerialLinkError",
    "closest_baud_rate",
]

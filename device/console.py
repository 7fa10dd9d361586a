"""
Operator console for the device controller.

Reads one command per line from a text stream (stdin by default) and
dispatches it through a fixed command table:

    help    list commands
    exit    power off gracefully and shut the bridge down
    power   toggle power
    mode    select the default mode (device must be on)
    lower   decrease target speed by one (device must be on, speed > 0)
    higher  increase target speed by one (device must be on, speed < max)
"""

from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, TextIO

from utils.device_state import MAX_SPEED, Mode

if TYPE_CHECKING:
    from device.controller import DeviceController

logger = logging.getLogger(__name__)


@dataclass
class ConsoleCommand:
    """A console command and its help text."""

    callback: Callable[[], None]
    description: str


class ConsoleCommands:
    """Fixed dispatch table of operator commands bound to a controller."""

    def __init__(self, controller: DeviceController, drain_timeout: float = 1.0):
        self._controller = controller
        self._drain_timeout = drain_timeout
        self._commands: dict[str, ConsoleCommand] = {
            "help": ConsoleCommand(self._help, "List available commands"),
            "exit": ConsoleCommand(self._exit, "Power off and shut down"),
            "power": ConsoleCommand(self._power, "Toggle power"),
            "mode": ConsoleCommand(self._mode, "Select the default mode"),
            "lower": ConsoleCommand(self._lower, "Decrease speed by one step"),
            "higher": ConsoleCommand(self._higher, "Increase speed by one step"),
        }

    def names(self) -> list[str]:
        return list(self._commands)

    def dispatch(self, line: str) -> bool:
        """
        Run the command named by line.

        Returns:
            True if the line named a known command
        """
        name = line.strip()
        if not name:
            return False

        command = self._commands.get(name)
        if command is None:
            logger.info("Unrecognized command, try help")
            return False

        command.callback()
        return True

    def _help(self) -> None:
        for name, command in self._commands.items():
            logger.info(f"{name:<8} {command.description}")

    def _exit(self) -> None:
        self._controller.shutdown_gracefully(self._drain_timeout)

    def _power(self) -> None:
        logger.info("Requesting change of power status")
        self._controller.set_is_on(not self._controller.is_on())

    def _mode(self) -> None:
        if not self._controller.is_on():
            logger.info("This command only works if the machine is on")
            return
        logger.info("Requesting change of mode")
        self._controller.set_mode(Mode.DEFAULT)

    def _lower(self) -> None:
        speed = self._controller.get_target_speed()
        if not self._controller.is_on() or speed == 0:
            logger.info("This command only works if the machine is on and the speed is > 0")
            return
        logger.info("Requesting change of speed")
        self._controller.set_speed(speed - 1)

    def _higher(self) -> None:
        speed = self._controller.get_target_speed()
        if not self._controller.is_on() or speed >= MAX_SPEED:
            logger.info(
                f"This command only works if the machine is on and the speed is < {MAX_SPEED}"
            )
            return
        logger.info("Requesting change of speed")
        self._controller.set_speed(speed + 1)


class ConsoleThread(threading.Thread):
    """
    Background thread reading operator commands.

    Daemon thread: a blocking read on the stream cannot be interrupted, so
    the bridge does not wait for it on shutdown. End of input stops the
    console but leaves the bridge running.
    """

    def __init__(
        self,
        commands: ConsoleCommands,
        shutdown_event: threading.Event,
        stream: TextIO | None = None,
    ):
        super().__init__(daemon=True, name="Console")
        self._commands = commands
        self._shutdown = shutdown_event
        self._stream = stream if stream is not None else sys.stdin

    def run(self) -> None:
        logger.info("Starting command thread")

        while not self._shutdown.is_set():
            line = self._stream.readline()
            if not line:
                logger.debug("Console input closed")
                break
            try:
                self._commands.dispatch(line)
            except Exception as e:
                logger.error(f"Console command failed: {e}")

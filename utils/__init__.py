"""
Utility modules for the bridge.

This package provides the shared state, protocol and event helpers used by
the device and gateway packages.
"""

from .device_state import MAX_SPEED, MIN_SPEED, MODES, DeviceState, Mode, StateSnapshot
from .events import EventLog, EventSink, LedEventSink, MultiEventSink
from .protocol import (
    Command,
    LineBuffer,
    ModeTask,
    PowerTask,
    Recognized,
    SpeedTask,
    Unrecognized,
    decode_error_body,
    decode_task,
    encode_state,
)
from .rw_lock import ReadWriteLock

__all__ = [
    # Device state
    "DeviceState",
    "Mode",
    "MODES",
    "MAX_SPEED",
    "MIN_SPEED",
    "StateSnapshot",
    # Events
    "EventLog",
    "EventSink",
    "LedEventSink",
    "MultiEventSink",
    # Protocol
    "Command",
    "LineBuffer",
    "ModeTask",
    "PowerTask",
    "SpeedTask",
    "Recognized",
    "Unrecognized",
    "decode_error_body",
    "decode_task",
    "encode_state",
    # Locking
    "ReadWriteLock",
]

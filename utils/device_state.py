"""
Shared runtime state for the controlled device.

DeviceState holds the desired (target) and observed (actual) state of the
device. Every field is guarded by its own lock, so each read or write is
atomic on its own, but there is no atomicity across fields: a reader may
see target_speed already updated while actual_speed still lags behind.
Target and actual speed are updated by different threads and are expected
to disagree until the device reports progress.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum

MIN_SPEED = 0
MAX_SPEED = 32


class Mode(Enum):
    """Operating modes understood by the device."""

    DEFAULT = "default"

    @property
    def display_name(self) -> str:
        return _MODE_NAMES.get(self, "Default")


_MODE_NAMES = {
    Mode.DEFAULT: "Default",
}

MODES: tuple[Mode, ...] = tuple(Mode)


def clamp_speed(speed: int) -> int:
    """Clamp a speed value to [MIN_SPEED, MAX_SPEED]."""
    return max(MIN_SPEED, min(MAX_SPEED, int(speed)))


class _Field:
    """A single lock-guarded value."""

    __slots__ = ("_value", "_lock")

    def __init__(self, value):
        self._value = value
        self._lock = threading.Lock()

    def get(self):
        with self._lock:
            return self._value

    def set(self, value) -> None:
        with self._lock:
            self._value = value

    def update(self, func):
        """Replace the value with func(value) under the lock and return it."""
        with self._lock:
            self._value = func(self._value)
            return self._value


@dataclass
class StateSnapshot:
    """Point-in-time copy of the device state, as reported upstream."""

    is_on: bool
    accepts_commands: bool
    target_speed: int
    actual_speed: int
    mode: Mode


class DeviceState:
    """
    Desired and observed device state.

    Mutated by the controller's mutation API (is_on, mode, target_speed)
    and by the receive loop (actual_speed).
    """

    def __init__(self) -> None:
        self._is_on = _Field(False)
        self._mode = _Field(Mode.DEFAULT)
        self._target_speed = _Field(MIN_SPEED)
        self._actual_speed = _Field(MIN_SPEED)

    @property
    def is_on(self) -> bool:
        return self._is_on.get()

    @is_on.setter
    def is_on(self, value: bool) -> None:
        self._is_on.set(bool(value))

    @property
    def mode(self) -> Mode:
        return self._mode.get()

    @mode.setter
    def mode(self, value: Mode) -> None:
        self._mode.set(value)

    @property
    def target_speed(self) -> int:
        return self._target_speed.get()

    @target_speed.setter
    def target_speed(self, value: int) -> None:
        self._target_speed.set(int(value))

    @property
    def actual_speed(self) -> int:
        return self._actual_speed.get()

    @actual_speed.setter
    def actual_speed(self, value: int) -> None:
        self._actual_speed.set(int(value))

    def adjust_actual_speed(self, delta: int) -> int:
        """Atomically add delta to actual_speed, clamped to the speed range."""
        return self._actual_speed.update(lambda speed: clamp_speed(speed + delta))

    def accepts_commands(self) -> bool:
        """True when the device has caught up with the target speed."""
        return self.actual_speed == self.target_speed

    def snapshot(self) -> StateSnapshot:
        """Copy every field. Fields are read one at a time, not atomically."""
        target = self.target_speed
        actual = self.actual_speed
        return StateSnapshot(
            is_on=self.is_on,
            accepts_commands=actual == target,
            target_speed=target,
            actual_speed=actual,
            mode=self.mode,
        )

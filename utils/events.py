"""
Event sinks for device and gateway activity.

The controller and the gateway session push human-readable log lines and
UI hints into an EventSink. They never need to know whether anything is
attached: the base class ignores every event.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from utils.led import RgbLed

logger = logging.getLogger(__name__)

MAX_EVENT_LOG_SIZE = 256


class EventSink:
    """Receives events from the bridge core. Every hook defaults to a no-op."""

    def log_device(self, message: str) -> None:
        """Serial traffic, e.g. "[Host -> /dev/ttyUSB0] h"."""

    def log_gateway(self, message: str) -> None:
        """Gateway activity, e.g. "Fetched 2 tasks from endpoint"."""

    def speed_changed(self, speed: int) -> None:
        """The target speed was changed to speed."""

    def close_requested(self) -> None:
        """An operator asked the bridge to shut down."""


class EventLog(EventSink):
    """
    Keeps the most recent device and gateway log lines in memory.

    Thread-safe. Each log keeps at most max_size lines, oldest dropped first.
    """

    def __init__(self, max_size: int = MAX_EVENT_LOG_SIZE):
        self._device_log: deque[str] = deque(maxlen=max_size)
        self._gateway_log: deque[str] = deque(maxlen=max_size)
        self._lock = threading.Lock()
        self._last_speed: int | None = None
        self._close_requested = threading.Event()

    def log_device(self, message: str) -> None:
        with self._lock:
            self._device_log.append(message)

    def log_gateway(self, message: str) -> None:
        with self._lock:
            self._gateway_log.append(message)

    def speed_changed(self, speed: int) -> None:
        with self._lock:
            self._last_speed = speed

    def close_requested(self) -> None:
        self._close_requested.set()

    def get_device_log(self) -> list[str]:
        with self._lock:
            return list(self._device_log)

    def get_gateway_log(self) -> list[str]:
        with self._lock:
            return list(self._gateway_log)

    @property
    def last_speed(self) -> int | None:
        with self._lock:
            return self._last_speed

    @property
    def is_close_requested(self) -> bool:
        return self._close_requested.is_set()


class LedEventSink(EventSink):
    """
    Drives a status LED: steady power_color while the device is running,
    dark while it is off, and a short flash_color blink on serial traffic.
    """

    def __init__(
        self,
        led: RgbLed,
        flash_color: tuple[int, int, int] = (0, 0, 255),
        flash_duration: float = 0.05,
        power_color: tuple[int, int, int] = (0, 32, 0),
    ):
        self._led = led
        self._flash_color = flash_color
        self._flash_duration = flash_duration
        self._power_color = power_color

    def log_device(self, message: str) -> None:
        self._led.flash(*self._flash_color, self._flash_duration)

    def speed_changed(self, speed: int) -> None:
        if speed > 0:
            self._led.set_base_color(*self._power_color)
        else:
            self._led.set_base_color(0, 0, 0)

    def close_requested(self) -> None:
        self._led.off()


class MultiEventSink(EventSink):
    """Forwards every event to each of several sinks."""

    def __init__(self, sinks: list[EventSink]):
        self._sinks = list(sinks)

    def _forward(self, hook: str, *args) -> None:
        for sink in self._sinks:
            try:
                getattr(sink, hook)(*args)
            except Exception as e:
                logger.error(f"Event sink {type(sink).__name__}.{hook} failed: {e}")

    def log_device(self, message: str) -> None:
        self._forward("log_device", message)

    def log_gateway(self, message: str) -> None:
        self._forward("log_gateway", message)

    def speed_changed(self, speed: int) -> None:
        self._forward("speed_changed", speed)

    def close_requested(self) -> None:
        self._forward("close_requested")

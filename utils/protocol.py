"""
Protocol definitions for the serial device and the remote gateway.

Serial protocol (host <-> device):
- Host -> device: single ASCII bytes, one per Command
- Device -> host: newline (or CRLF) terminated feedback tokens

Gateway protocol (bridge -> remote, JSON over HTTPS):
- POST /newsession  {password, timestamp}            -> {password}
- POST /fetch       {password, timestamp}            -> {tasks: [...]}
- POST /setonline   {password, timestamp, is_online}
- POST /setstate    {password, timestamp, state: {...}}
- Non-200 responses carry {error: ...}
"""

import json
import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from utils.device_state import MODES, Mode, StateSnapshot, clamp_speed


# =============================================================================
# Serial Commands (Host -> Device)
# =============================================================================


class Command(Enum):
    """Single-byte commands understood by the device."""

    ON = b"i"
    OFF = b"o"
    MODE = b"m"
    LOWER = b"l"
    HIGHER = b"h"

    def __str__(self) -> str:
        return self.value.decode("ascii")


# =============================================================================
# Serial Feedback (Device -> Host)
# =============================================================================

FEEDBACK_POWER_ON = "power_on"
FEEDBACK_POWER_OFF = "power_off"
FEEDBACK_SPEED_UP = "speed_up"
FEEDBACK_SPEED_DOWN = "speed_down"


@dataclass(frozen=True)
class SpeedEffect:
    """How a feedback token changes actual_speed: absolute set or relative delta."""

    value: int
    absolute: bool


FEEDBACK_EFFECTS: dict[str, SpeedEffect] = {
    FEEDBACK_POWER_ON: SpeedEffect(1, absolute=True),
    FEEDBACK_POWER_OFF: SpeedEffect(0, absolute=True),
    FEEDBACK_SPEED_UP: SpeedEffect(1, absolute=False),
    FEEDBACK_SPEED_DOWN: SpeedEffect(-1, absolute=False),
}


class LineBuffer:
    """
    Accumulates raw bytes into complete feedback lines.

    Partial lines are kept across feed() calls. A trailing carriage return
    is stripped and empty lines are dropped.
    """

    def __init__(self, max_length: int = 256):
        self._buffer = bytearray()
        self._max_length = max_length

    def feed(self, data: bytes) -> list[str]:
        """Add bytes and return every line completed by them."""
        lines = []
        for byte in data:
            if byte == 0x0A:
                line = bytes(self._buffer).decode("ascii", errors="replace")
                self._buffer.clear()
                if line.endswith("\r"):
                    line = line[:-1]
                if line:
                    lines.append(line)
                continue
            if len(self._buffer) >= self._max_length:
                # Runaway line without terminator; start over
                self._buffer.clear()
            self._buffer.append(byte)
        return lines

    def pending(self) -> bytes:
        """Bytes received since the last terminator."""
        return bytes(self._buffer)


# =============================================================================
# Gateway Tasks (Remote -> Bridge)
# =============================================================================


class TaskType(Enum):
    POWER = "power"
    SPEED = "speed"
    MODE = "mode"


# Integer tags, in declaration order, as emitted by enum-indexed encoders
_TASK_TYPE_BY_INDEX = {i: t for i, t in enumerate(TaskType)}


@dataclass(frozen=True)
class PowerTask:
    is_on: bool

    type = TaskType.POWER


@dataclass(frozen=True)
class SpeedTask:
    speed: int

    type = TaskType.SPEED


@dataclass(frozen=True)
class ModeTask:
    mode: Mode

    type = TaskType.MODE


Task = PowerTask | SpeedTask | ModeTask


def _parse_task_type(raw: Any) -> TaskType | None:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return _TASK_TYPE_BY_INDEX.get(raw)
    if isinstance(raw, str):
        try:
            return TaskType(raw.lower())
        except ValueError:
            return None
    return None


def parse_mode(raw: Any) -> Mode | None:
    """Parse a mode from its value string, name, or index in MODES."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return MODES[raw] if 0 <= raw < len(MODES) else None
    if isinstance(raw, str):
        for mode in MODES:
            if raw.lower() in (mode.value, mode.name.lower()):
                return mode
    return None


def decode_task(data: Any) -> Task | None:
    """
    Decode one task descriptor from the /fetch response.

    Args:
        data: Parsed JSON object, e.g. {"type": "speed", "speed": 4}

    Returns:
        PowerTask, SpeedTask or ModeTask, or None if the descriptor is malformed
    """
    if not isinstance(data, dict):
        return None

    task_type = _parse_task_type(data.get("type"))

    if task_type is TaskType.POWER:
        is_on = data.get("is_on")
        if not isinstance(is_on, bool):
            return None
        return PowerTask(is_on=is_on)

    if task_type is TaskType.SPEED:
        speed = data.get("speed")
        if isinstance(speed, bool) or not isinstance(speed, (int, float)):
            return None
        if isinstance(speed, float) and not math.isfinite(speed):
            return None
        return SpeedTask(speed=clamp_speed(int(speed)))

    if task_type is TaskType.MODE:
        mode = parse_mode(data.get("mode"))
        if mode is None:
            return None
        return ModeTask(mode=mode)

    return None


# =============================================================================
# Gateway Requests (Bridge -> Remote)
# =============================================================================


def timestamp_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return int(time.time() * 1000)


def build_request(password: str, **fields: Any) -> dict:
    """Build a request body carrying the shared password and a timestamp."""
    body = {"password": password, "timestamp": timestamp_ms()}
    body.update(fields)
    return body


def encode_state(state: StateSnapshot) -> dict:
    """Encode a state snapshot for /setstate."""
    return {
        "is_on": state.is_on,
        "accepts_commands": state.accepts_commands,
        "target_speed": state.target_speed,
        "actual_speed": state.actual_speed,
        "mode": state.mode.value,
    }


# =============================================================================
# Gateway Responses (Remote -> Bridge)
# =============================================================================


def parse_json_body(body: bytes) -> Any | None:
    """Parse a JSON response body, returning None if it is not valid JSON."""
    try:
        return json.loads(body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


@dataclass(frozen=True)
class Recognized:
    """An error body carrying an 'error' field."""

    error: Any


@dataclass(frozen=True)
class Unrecognized:
    """An error body that could not be decoded."""

    reason: str


ErrorDecodeResult = Recognized | Unrecognized


def decode_error_body(body: bytes) -> ErrorDecodeResult:
    """Decode the body of a non-200 response."""
    if not body:
        return Unrecognized("empty body")
    data = parse_json_body(body)
    if data is None:
        return Unrecognized("body is not valid JSON")
    if not isinstance(data, dict) or "error" not in data:
        return Unrecognized("Could not decode gateway error")
    return Recognized(data["error"])

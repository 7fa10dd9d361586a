"""Shared fixtures: a fake device link and a controller wired to it."""

from collections import deque

import pytest

from device.base import Link
from device.controller import DeviceController
from utils.events import EventLog


class FakeLink(Link):
    """
    In-memory link for testing without a serial device.

    Bytes passed to feed() are handed out one at a time by try_read();
    everything written is recorded in `written`.
    """

    def __init__(self, name: str = "/dev/ttyFAKE", fail_writes: bool = False):
        self._name = name
        self.fail_writes = fail_writes
        self.written: list[bytes] = []
        self.opened = False
        self.closed = False
        self._rx: deque[int] = deque()

    def open(self) -> None:
        self.opened = True

    def write(self, data: bytes) -> bool:
        if self.fail_writes:
            return False
        self.written.append(data)
        return True

    def try_read(self) -> bytes | None:
        if not self._rx:
            return None
        return bytes([self._rx.popleft()])

    def close(self) -> None:
        self.closed = True

    @property
    def name(self) -> str:
        return self._name

    def feed(self, data: bytes) -> None:
        """Queue bytes as if the device had sent them."""
        self._rx.extend(data)


def drain_commands(controller: DeviceController) -> list:
    """Pop every queued command, oldest first."""
    commands = []
    while (command := controller.command_queue.pop()) is not None:
        commands.append(command)
    return commands


@pytest.fixture
def fake_link():
    return FakeLink()


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def controller(fake_link, event_log):
    """Controller with threads not started; tests drive the polls directly."""
    return DeviceController(fake_link, event_sink=event_log)


@pytest.fixture
def drain():
    return drain_commands

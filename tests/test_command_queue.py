"""Tests for the bounded command FIFO."""

import logging
import threading

from device.command_queue import CommandQueue
from utils.protocol import Command


class TestCommandQueue:
    """FIFO ordering and backpressure."""

    def test_fifo_order(self):
        queue = CommandQueue()
        for command in (Command.ON, Command.HIGHER, Command.LOWER, Command.OFF):
            assert queue.push(command) is True
        popped = [queue.pop() for _ in range(4)]
        assert popped == [Command.ON, Command.HIGHER, Command.LOWER, Command.OFF]
        assert queue.pop() is None

    def test_full_queue_rejects(self, caplog):
        queue = CommandQueue(max_size=2)
        assert queue.push(Command.ON)
        assert queue.push(Command.HIGHER)
        with caplog.at_level(logging.WARNING, logger="device.command_queue"):
            assert queue.push(Command.HIGHER) is False
        assert queue.pending_count() == 2
        assert "full" in caplog.records[0].getMessage()

    def test_room_after_pop(self):
        queue = CommandQueue(max_size=1)
        queue.push(Command.ON)
        assert queue.push(Command.OFF) is False
        queue.pop()
        assert queue.push(Command.OFF) is True

    def test_clear(self):
        queue = CommandQueue()
        queue.push(Command.ON)
        queue.push(Command.HIGHER)
        assert queue.clear() == 2
        assert queue.is_empty()

    def test_wait_empty_times_out(self):
        queue = CommandQueue()
        queue.push(Command.ON)
        assert queue.wait_empty(0.05) is False

    def test_wait_empty_returns_when_drained(self):
        queue = CommandQueue()
        queue.push(Command.ON)
        queue.push(Command.OFF)

        def consumer():
            while queue.pop() is not None:
                pass

        timer = threading.Timer(0.05, consumer)
        timer.start()
        try:
            assert queue.wait_empty(2.0) is True
        finally:
            timer.join()

    def test_wait_empty_on_empty_queue(self):
        assert CommandQueue().wait_empty(0) is True

    def test_concurrent_producers(self):
        queue = CommandQueue(max_size=1000)
        per_thread = 100

        def producer(command):
            for _ in range(per_thread):
                queue.push(command)

        threads = [
            threading.Thread(target=producer, args=(command,))
            for command in (Command.HIGHER, Command.LOWER, Command.MODE)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert queue.pending_count() == 3 * per_thread

"""
Bounded FIFO of device commands shared by the mutation API and the transmit loop.

Classes:
    CommandQueue: Thread-safe command FIFO with reject-on-full backpressure
"""

import logging
import threading
import time
from collections import deque

from utils.protocol import Command

logger = logging.getLogger(__name__)
wire_logger = logging.getLogger("wire_debug")


class CommandQueue:
    """
    Thread-safe FIFO of single-byte device commands.

    Producers push from any thread; the transmit loop pops. Ordering is
    FIFO across all producers. There is no priority, no coalescing and no
    retry: each command is handed out exactly once.

    The queue is bounded. A push onto a full queue is rejected and logged
    instead of growing without limit when the transmit loop stalls.
    """

    def __init__(self, max_size: int = 128):
        """
        Initialize the command queue.

        Args:
            max_size: Maximum number of queued commands
        """
        self._queue: deque[Command] = deque()
        self._max_size = max_size
        self._lock = threading.Lock()
        self._drained = threading.Condition(self._lock)

    @property
    def max_size(self) -> int:
        return self._max_size

    @max_size.setter
    def max_size(self, val: int) -> None:
        self._max_size = val

    def push(self, command: Command) -> bool:
        """
        Append a command.

        Returns:
            True if queued, False if the queue is full
        """
        with self._lock:
            if len(self._queue) >= self._max_size:
                depth = len(self._queue)
                accepted = False
            else:
                self._queue.append(command)
                depth = len(self._queue)
                accepted = True

        if not accepted:
            logger.warning(f"Command queue full ({depth}), rejected '{command.name}'")
            return False
        wire_logger.debug("CMD_QUEUED cmd=%s depth=%d", command.name, depth)
        return True

    def pop(self) -> Command | None:
        """Remove and return the oldest command, or None if empty."""
        with self._lock:
            if not self._queue:
                return None
            command = self._queue.popleft()
            if not self._queue:
                self._drained.notify_all()
            return command

    def pending_count(self) -> int:
        """Return number of queued commands."""
        with self._lock:
            return len(self._queue)

    def is_empty(self) -> bool:
        with self._lock:
            return not self._queue

    def clear(self) -> int:
        """Drop every queued command. Returns how many were dropped."""
        with self._lock:
            dropped = len(self._queue)
            self._queue.clear()
            self._drained.notify_all()
        if dropped:
            logger.info(f"Cleared {dropped} queued command(s)")
        return dropped

    def wait_empty(self, timeout: float) -> bool:
        """
        Block until the queue is empty or timeout seconds elapse.

        Returns:
            True if the queue drained, False on timeout
        """
        deadline = time.monotonic() + timeout
        with self._lock:
            while self._queue:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._drained.wait(remaining)
            return True

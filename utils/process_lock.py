"""
Per-device process lock: at most one bridge drives a serial device.

The lock is an fcntl.flock() on a file named after the device, so bridges on
different ports run side by side. The OS drops the lock when the holder
exits, even on SIGKILL. The holder's pid is written into the file so the
busy message can name it.
"""

import atexit
import fcntl
import logging
import os
import re
from pathlib import Path

logger = logging.getLogger(__name__)


class DeviceBusyError(RuntimeError):
    """Another process holds the lock for this device."""


def lock_name(device: str) -> str:
    """Lock file stem for a device path, e.g. "/dev/ttyUSB0" -> "ttyUSB0".

    Symlinks such as /dev/serial/by-id/... resolve to the same name as the
    node they point at.
    """
    name = Path(os.path.realpath(device)).name or device
    return re.sub(r"[^A-Za-z0-9_.-]", "_", name)


class DeviceLock:
    """Exclusive lock on one serial device, usable as a context manager."""

    def __init__(self, device: str, lock_dir: str = "/tmp"):
        self._device = device
        self._path = Path(lock_dir) / f"fox_control_{lock_name(device)}.lock"
        self._file = None

    @property
    def device(self) -> str:
        return self._device

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_held(self) -> bool:
        return self._file is not None

    def acquire(self) -> None:
        """Take the lock. Raises DeviceBusyError if another process holds it."""
        if self._file is not None:
            return

        lock_file = open(self._path, "a+")
        try:
            fcntl.flock(lock_file, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            lock_file.seek(0)
            owner = lock_file.read().strip()
            lock_file.close()
            holder = f" (pid {owner})" if owner else ""
            raise DeviceBusyError(
                f"Another bridge is already driving {self._device}{holder}"
            ) from None

        lock_file.seek(0)
        lock_file.truncate()
        lock_file.write(f"{os.getpid()}\n")
        lock_file.flush()
        self._file = lock_file
        atexit.register(self.release)
        logger.debug(f"Locked {self._device} ({self._path})")

    def release(self) -> None:
        if self._file is None:
            return
        fcntl.flock(self._file, fcntl.LOCK_UN)
        self._file.close()
        self._file = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

"""Serial port link implementation using pyserial."""

import logging

import serial
from serial import SerialException, SerialTimeoutException

from .base import Link

logger = logging.getLogger(__name__)

# Standard POSIX rates, ascending
STANDARD_BAUD_RATES = (
    50, 75, 110, 134, 150, 200, 300, 600,
    1200, 1800, 2400, 4800, 9600, 19200, 38400,
)
DEFAULT_BAUD_RATE = 9600


def closest_baud_rate(rate: int) -> int:
    """
    Map a requested rate to the smallest standard rate >= rate.

    Rates above the fastest standard rate fall back to DEFAULT_BAUD_RATE.
    """
    for standard in STANDARD_BAUD_RATES:
        if rate <= standard:
            return standard
    return DEFAULT_BAUD_RATE


class SerialLinkError(RuntimeError):
    """The serial device could not be opened or configured."""


class SerialLink(Link):
    """
    Raw 8N1 serial link to the device.

    pyserial puts the port in raw mode on open: no echo, no canonical
    line discipline, no signal characters, receiver enabled and modem
    control lines ignored. Reads return after read_timeout even when no
    data arrived.
    """

    def __init__(
        self,
        device_name: str,
        baud_rate: int = 19200,
        read_timeout: float = 0.1,
        write_timeout: float = 1.0,
    ):
        """
        Initialize serial link configuration.

        Args:
            device_name: Serial device path (e.g., "/dev/ttyUSB0")
            baud_rate: Requested rate, mapped with closest_baud_rate()
            read_timeout: Seconds a read waits for a byte
            write_timeout: Seconds a write may block before failing
        """
        self._device_name = device_name
        self._baud_rate = closest_baud_rate(baud_rate)
        self._read_timeout = read_timeout
        self._write_timeout = write_timeout
        self._serial: serial.Serial | None = None

    def open(self) -> None:
        """Open the serial port. Raises SerialLinkError on failure."""
        if self._serial is not None:
            return
        try:
            self._serial = serial.Serial(
                port=self._device_name,
                baudrate=self._baud_rate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self._read_timeout,
                write_timeout=self._write_timeout,
                xonxoff=False,
                rtscts=False,
                dsrdtr=False,
            )
        except (SerialException, OSError, ValueError) as e:
            raise SerialLinkError(
                f"Could not open serial port {self._device_name}: {e}"
            ) from e
        logger.info(f"Opened serial connection {self._device_name} at {self._baud_rate} baud")

    def write(self, data: bytes) -> bool:
        """Write bytes; True only if all of them were transmitted."""
        if self._serial is None:
            raise RuntimeError("Serial link not open. Call open() first.")
        try:
            written = self._serial.write(data)
        except SerialTimeoutException:
            logger.warning(f"Write to {self._device_name} timed out")
            return False
        except SerialException as e:
            logger.error(f"Write to {self._device_name} failed: {e}")
            return False
        return written == len(data)

    def try_read(self) -> bytes | None:
        """Read one byte, or None if the read timed out."""
        if self._serial is None:
            raise RuntimeError("Serial link not open. Call open() first.")
        try:
            data = self._serial.read(1)
        except SerialException as e:
            logger.error(f"Read from {self._device_name} failed: {e}")
            return None
        return data or None

    def close(self) -> None:
        """Close the serial port."""
        if self._serial is None:
            return
        try:
            self._serial.close()
        finally:
            self._serial = None
        logger.info(f"Closed serial connection {self._device_name}")

    @property
    def name(self) -> str:
        return self._device_name

    @property
    def baud_rate(self) -> int:
        """Get the effective baud rate."""
        return self._baud_rate

    @property
    def is_open(self) -> bool:
        return self._serial is not None

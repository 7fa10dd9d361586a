"""Abstract base class for the byte link to the device."""

from abc import ABC, abstractmethod


class Link(ABC):
    """
    Abstract base class for device links.

    Provides a common byte-level interface so the controller does not
    depend on the transport (serial port, test double, etc.).
    """

    @abstractmethod
    def open(self) -> None:
        """
        Open and configure the link.

        Should be called before any write/read operations.
        Raises if the device cannot be opened.
        """
        pass

    @abstractmethod
    def write(self, data: bytes) -> bool:
        """
        Write bytes to the device.

        Args:
            data: Bytes to transmit

        Returns:
            True if every byte was transmitted, False otherwise
        """
        pass

    @abstractmethod
    def try_read(self) -> bytes | None:
        """
        Read a single byte if one arrives within the read timeout.

        Returns:
            One byte, or None if nothing was available. None is not an error.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Release the link.

        Safe to call more than once.
        """
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier of the device, used in log lines."""
        pass

    def __enter__(self):
        """Context manager entry."""
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
        return False

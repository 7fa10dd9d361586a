"""Tests for the pyserial link, with the serial port mocked out."""

from unittest.mock import MagicMock, patch

import pytest
import serial

from device.serial_link import (
    DEFAULT_BAUD_RATE,
    SerialLink,
    SerialLinkError,
    closest_baud_rate,
)


@pytest.mark.parametrize("requested, expected", [
    (50, 50),
    (9600, 9600),
    (10000, 19200),
    (19200, 19200),
    (38400, 38400),
    (115200, DEFAULT_BAUD_RATE),
    (1, 50),
])
def test_closest_baud_rate(requested, expected):
    assert closest_baud_rate(requested) == expected


@pytest.fixture
def mock_serial():
    with patch("device.serial_link.serial.Serial") as serial_cls:
        yield serial_cls


class TestSerialLink:
    """Open, read, write and close against a mocked port."""

    def test_open_configures_8n1(self, mock_serial):
        link = SerialLink("/dev/ttyUSB0", baud_rate=19200, read_timeout=0.2)
        link.open()

        kwargs = mock_serial.call_args.kwargs
        assert kwargs["port"] == "/dev/ttyUSB0"
        assert kwargs["baudrate"] == 19200
        assert kwargs["bytesize"] == serial.EIGHTBITS
        assert kwargs["parity"] == serial.PARITY_NONE
        assert kwargs["stopbits"] == serial.STOPBITS_ONE
        assert kwargs["timeout"] == 0.2
        assert kwargs["rtscts"] is False
        assert link.is_open

    def test_open_is_idempotent(self, mock_serial):
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        link.open()
        assert mock_serial.call_count == 1

    def test_open_failure(self, mock_serial):
        mock_serial.side_effect = serial.SerialException("no such device")
        link = SerialLink("/dev/ttyMISSING")
        with pytest.raises(SerialLinkError, match="/dev/ttyMISSING"):
            link.open()
        assert not link.is_open

    def test_baud_rate_mapped(self):
        assert SerialLink("/dev/ttyUSB0", baud_rate=57600).baud_rate == DEFAULT_BAUD_RATE

    def test_write(self, mock_serial):
        mock_serial.return_value.write.return_value = 1
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        assert link.write(b"h") is True
        mock_serial.return_value.write.assert_called_once_with(b"h")

    def test_write_timeout(self, mock_serial):
        mock_serial.return_value.write.side_effect = serial.SerialTimeoutException("timeout")
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        assert link.write(b"h") is False

    def test_short_write(self, mock_serial):
        mock_serial.return_value.write.return_value = 0
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        assert link.write(b"h") is False

    def test_write_before_open(self):
        with pytest.raises(RuntimeError):
            SerialLink("/dev/ttyUSB0").write(b"h")

    def test_try_read(self, mock_serial):
        mock_serial.return_value.read.side_effect = [b"x", b""]
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        assert link.try_read() == b"x"
        assert link.try_read() is None

    def test_read_error(self, mock_serial):
        mock_serial.return_value.read.side_effect = serial.SerialException("gone")
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        assert link.try_read() is None

    def test_context_manager_closes(self, mock_serial):
        port = MagicMock()
        mock_serial.return_value = port
        with SerialLink("/dev/ttyUSB0") as link:
            assert link.is_open
        port.close.assert_called_once()
        assert not link.is_open

    def test_close_is_idempotent(self, mock_serial):
        link = SerialLink("/dev/ttyUSB0")
        link.open()
        link.close()
        link.close()
        mock_serial.return_value.close.assert_called_once()

"""Serial channel to the ELM327 adapter - open/read/write/ioctl contract."""

import time
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone

import serial

from .constants import (
    IOCTL_READ_TIMEOUT, IOCTL_RESET, IOCTL_UTC_TIME, UTC_TIME_FORMAT,
    TIMEOUT_SHORT_MS, POLL_TIMEOUT, RESET_PULSE, RESET_SETTLE, LINK_BAUDRATE,
)

log = logging.getLogger(__name__)


class ChannelError(Exception):
    """Transport-level I/O failure."""


class Channel(ABC):
    """Byte channel to a diagnostic adapter.

    read() is a short bounded poll: it returns whatever arrived within the
    poll window, possibly b"". The response budget set through
    ioctl(IOCTL_READ_TIMEOUT, ms) is shared by every command on the
    channel, so only one caller may drive a channel at a time.
    """

    def __init__(self):
        self.read_timeout_ms = TIMEOUT_SHORT_MS

    @abstractmethod
    def open(self, path, baudrate=LINK_BAUDRATE):
        """Open the device."""

    @abstractmethod
    def close(self):
        """Close the device."""

    @property
    @abstractmethod
    def is_open(self):
        """True while the device is usable."""

    @abstractmethod
    def write(self, data):
        """Write bytes, return the count written."""

    @abstractmethod
    def read(self, max_len):
        """Return up to max_len bytes received within one poll window."""

    def reset_link(self):
        """Hardware-reset the adapter. No-op unless overridden."""

    def utc_time(self):
        """Current UTC time as an ISO-8601 string."""
        return datetime.now(timezone.utc).strftime(UTC_TIME_FORMAT)

    def ioctl(self, request, value=None):
        """Device control.

        IOCTL_READ_TIMEOUT: set the response budget in ms, returns None.
        IOCTL_RESET: reset the adapter, returns None.
        IOCTL_UTC_TIME: returns the time string.
        """
        if request == IOCTL_READ_TIMEOUT:
            if value is None or value <= 0:
                raise ChannelError(f"Bad read timeout: {value!r}")
            self.read_timeout_ms = int(value)
            return None
        if request == IOCTL_RESET:
            self.reset_link()
            return None
        if request == IOCTL_UTC_TIME:
            return self.utc_time()
        raise ChannelError(f"Unsupported ioctl request 0x{request:08X}")


class SerialChannel(Channel):
    """PySerial channel for a UART-attached ELM327.

    The adapter's reset line is wired to DTR: the link is reset by pulling
    DTR low for RESET_PULSE, then waiting RESET_SETTLE for the chip to boot.
    """

    def __init__(self):
        super().__init__()
        self._ser = None
        self.port = ""

    def open(self, path, baudrate=LINK_BAUDRATE):
        """Open serial port. 8N1, no flow control, then reset the adapter."""
        self.port = path
        try:
            self._ser = serial.Serial(
                port=path,
                baudrate=baudrate,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=POLL_TIMEOUT,
                write_timeout=1.0,
                rtscts=False,
                dsrdtr=False,
            )
        except (serial.SerialException, OSError) as e:
            raise ChannelError(f"Cannot open {path}: {e}") from e

        self.reset_link()
        self._ser.reset_input_buffer()
        self._ser.reset_output_buffer()
        log.info("Opened %s @ %d baud", path, baudrate)

    def close(self):
        """Close serial port."""
        if self._ser and self._ser.is_open:
            self._ser.close()
        self._ser = None

    @property
    def is_open(self):
        return self._ser is not None and self._ser.is_open

    def reset_link(self):
        """Pulse the adapter reset line (DTR)."""
        self._check_open()
        self._ser.dtr = False
        time.sleep(RESET_PULSE)
        self._ser.dtr = True
        time.sleep(RESET_SETTLE)

    def write(self, data):
        self._check_open()
        try:
            count = self._ser.write(data)
            self._ser.flush()
        except (serial.SerialException, OSError) as e:
            raise ChannelError(f"Write failed on {self.port}: {e}") from e
        return count or 0

    def read(self, max_len):
        self._check_open()
        try:
            waiting = self._ser.in_waiting
            return self._ser.read(min(max_len, waiting or 1))
        except (serial.SerialException, OSError) as e:
            raise ChannelError(f"Read failed on {self.port}: {e}") from e

    def _check_open(self):
        if not self.is_open:
            raise ChannelError("Serial port is not open")

"""Byte-stream transports the driver talks through."""
from __future__ import annotations

import logging
from typing import Protocol

import serial

from .config import SerialSettings
from .errors import ProtocolError, TransportError

logger = logging.getLogger(__name__)


class ByteChannel(Protocol):
    """
    Minimal transport contract.

    `read_line` returns one chunk ending with `terminator`; a chunk without the
    terminator (including an empty one) means the read timed out or the stream
    ended.
    """

    def write(self, data: bytes) -> None: ...

    def read_line(self, terminator: bytes = b"\n") -> bytes: ...

    def close(self) -> None: ...


class SerialChannel:
    """ByteChannel backed by a pyserial port."""

    def __init__(self, settings: SerialSettings):
        self.settings = settings
        try:
            self._serial = serial.Serial(
                port=settings.port,
                baudrate=settings.baudrate,
                timeout=settings.timeout,
            )
        except (serial.SerialException, OSError) as exc:
            raise TransportError(f"Unable to open {settings.port}: {exc}") from exc
        logger.info("Opened %s at %d baud", settings.port, settings.baudrate)

    def write(self, data: bytes) -> None:
        try:
            self._serial.reset_input_buffer()
            self._serial.write(data)
            self._serial.flush()
        except (serial.SerialException, OSError) as exc:
            raise ProtocolError(f"Write to {self.settings.port} failed: {exc}") from exc

    def read_line(self, terminator: bytes = b"\n") -> bytes:
        try:
            return self._serial.read_until(expected=terminator)
        except (serial.SerialException, OSError) as exc:
            raise ProtocolError(f"Read from {self.settings.port} failed: {exc}") from exc

    def close(self) -> None:
        try:
            self._serial.close()
        except (serial.SerialException, OSError) as exc:
            logger.warning("Error closing %s: %s", self.settings.port, exc)


def open_serial_channel(settings: SerialSettings) -> SerialChannel:
    return SerialChannel(settings)

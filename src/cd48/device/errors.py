"""Exception taxonomy shared by the driver, the measurement engine and calibration."""
from __future__ import annotations

from typing import Any


class CD48Error(Exception):
    """Base class for every error raised by the cd48 package."""


class TransportError(CD48Error):
    """The byte channel could not be opened (device absent or transport unavailable)."""


class NotConnectedError(CD48Error):
    def __init__(self, command: str | None = None) -> None:
        self.command = command
        if command:
            super().__init__(f"Not connected to CD48 (command '{command}')")
        else:
            super().__init__("Not connected to CD48")


class ProtocolError(CD48Error):
    """The channel closed, timed out or failed mid-exchange."""


class MalformedResponseError(CD48Error):
    def __init__(self, message: str, line: str | None = None) -> None:
        self.line = line
        if line is not None:
            message = f"{message}: {line!r}"
        super().__init__(message)


class CounterAnomaly(CD48Error):
    """A counter went backwards between two snapshots (wraparound or reset)."""

    def __init__(self, channel: int, before: int, after: int) -> None:
        self.channel = channel
        self.before = before
        self.after = after
        super().__init__(
            f"Channel {channel} counter decreased from {before} to {after} (possible reset)"
        )


class MeasurementCancelled(CD48Error):
    """A timed measurement was aborted before its second snapshot."""


class CalibrationError(CD48Error):
    pass


class DegenerateCalibrationError(CalibrationError):
    pass


class InsufficientDataError(CalibrationError):
    pass


class ValidationError(CD48Error, ValueError):
    """A parameter is outside the range the device accepts."""

    def __init__(self, param: str, value: Any, expected: str) -> None:
        self.param = param
        self.value = value
        self.expected = expected
        super().__init__(f"Invalid {param}: {value!r} ({expected})")


class InvalidChannelError(ValidationError):
    def __init__(self, channel: Any) -> None:
        super().__init__("channel", channel, "Channel must be 0-7")


class InvalidVoltageError(ValidationError):
    def __init__(self, voltage: Any) -> None:
        super().__init__("voltage", voltage, "Voltage must be 0-4.08 V")

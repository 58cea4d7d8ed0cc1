"""Parameter range checks applied before values reach the driver."""
from __future__ import annotations

import math
from typing import Any

from .errors import InvalidChannelError, InvalidVoltageError, ValidationError

CHANNEL_MIN = 0
CHANNEL_MAX = 7
CHANNEL_COUNT = 8

VOLTAGE_MIN = 0.0
VOLTAGE_MAX = 4.08

BYTE_MIN = 0
BYTE_MAX = 255

REPEAT_INTERVAL_MIN = 100
REPEAT_INTERVAL_MAX = 65535

IMPEDANCE_MODES = ("highz", "50ohm")


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return not math.isnan(value)


def validate_channel(channel: Any) -> None:
    if isinstance(channel, bool) or not isinstance(channel, int):
        raise ValidationError("channel", channel, "must be an integer between 0 and 7")
    if channel < CHANNEL_MIN or channel > CHANNEL_MAX:
        raise InvalidChannelError(channel)


def validate_voltage(voltage: Any) -> None:
    if not _is_number(voltage):
        raise ValidationError("voltage", voltage, "must be a number between 0.0 and 4.08")
    if voltage < VOLTAGE_MIN or voltage > VOLTAGE_MAX:
        raise InvalidVoltageError(voltage)


def validate_byte(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("byte", value, "must be an integer between 0 and 255")
    if value < BYTE_MIN or value > BYTE_MAX:
        raise ValidationError("byte", value, "0-255")


def validate_repeat_interval(interval: Any) -> None:
    if not _is_number(interval):
        raise ValidationError("repeat_interval", interval, "must be a number between 100 and 65535")
    if interval < REPEAT_INTERVAL_MIN or interval > REPEAT_INTERVAL_MAX:
        raise ValidationError("repeat_interval", interval, "100-65535 ms")


def validate_duration(duration: Any) -> None:
    if not _is_number(duration) or math.isinf(duration):
        raise ValidationError("duration", duration, "must be a positive number")
    if duration <= 0:
        raise ValidationError("duration", duration, "must be greater than 0")


def validate_impedance_mode(mode: Any) -> str:
    """Return the normalised mode ('highz' or '50ohm')."""
    if not isinstance(mode, str) or mode.lower() not in IMPEDANCE_MODES:
        raise ValidationError("impedance", mode, "must be 'highz' or '50ohm'")
    return mode.lower()


def validate_boolean(param: str, value: Any) -> None:
    if not isinstance(value, bool):
        raise ValidationError(param, value, "must be true or false")


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))


def clamp_voltage(voltage: float) -> float:
    return clamp(voltage, VOLTAGE_MIN, VOLTAGE_MAX)


def clamp_repeat_interval(interval: float) -> float:
    return clamp(interval, REPEAT_INTERVAL_MIN, REPEAT_INTERVAL_MAX)


def voltage_to_byte(voltage: float) -> int:
    """
    Convert a 0-4.08 V level to the 8-bit DAC code.

    Out-of-range voltages are clamped, and the scaled value is rounded half-up
    (2.04 V maps to 128).
    """
    scaled = clamp_voltage(voltage) / VOLTAGE_MAX * BYTE_MAX
    return int(math.floor(scaled + 0.5))


def byte_to_voltage(value: int) -> float:
    """Inverse of :func:`voltage_to_byte`; rejects codes outside 0-255."""
    validate_byte(value)
    return value / BYTE_MAX * VOLTAGE_MAX

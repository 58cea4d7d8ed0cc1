from __future__ import annotations

import math

import pytest

from cd48.device.errors import InvalidChannelError, InvalidVoltageError, ValidationError
from cd48.device import validation


@pytest.mark.parametrize("channel", [0, 3, 7])
def test_valid_channels(channel):
    validation.validate_channel(channel)


@pytest.mark.parametrize("channel", [-1, 8])
def test_channel_out_of_range(channel):
    with pytest.raises(InvalidChannelError) as info:
        validation.validate_channel(channel)
    assert "Channel must be 0-7" in str(info.value)


@pytest.mark.parametrize("channel", [1.5, "2", True, None])
def test_channel_wrong_type(channel):
    with pytest.raises(ValidationError):
        validation.validate_channel(channel)


def test_voltage_bounds():
    validation.validate_voltage(0.0)
    validation.validate_voltage(4.08)
    with pytest.raises(InvalidVoltageError):
        validation.validate_voltage(4.09)
    with pytest.raises(ValidationError):
        validation.validate_voltage(math.nan)


def test_validation_errors_are_value_errors():
    with pytest.raises(ValueError):
        validation.validate_byte(256)


def test_repeat_interval_and_duration():
    validation.validate_repeat_interval(100)
    validation.validate_repeat_interval(65535)
    with pytest.raises(ValidationError):
        validation.validate_repeat_interval(99)
    with pytest.raises(ValidationError):
        validation.validate_duration(0)
    with pytest.raises(ValidationError):
        validation.validate_duration(math.inf)


def test_impedance_mode_normalised():
    assert validation.validate_impedance_mode("50OHM") == "50ohm"
    assert validation.validate_impedance_mode("highz") == "highz"
    with pytest.raises(ValidationError):
        validation.validate_impedance_mode("75ohm")


def test_boolean():
    validation.validate_boolean("enabled", False)
    with pytest.raises(ValidationError):
        validation.validate_boolean("enabled", 1)


@pytest.mark.parametrize(
    "voltage, expected",
    [(0.0, 0), (4.08, 255), (2.04, 128), (-1.0, 0), (10.0, 255), (0.1, 6), (1.5, 94), (3.3, 206)],
)
def test_voltage_to_byte(voltage, expected):
    assert validation.voltage_to_byte(voltage) == expected


def test_byte_to_voltage():
    assert validation.byte_to_voltage(255) == pytest.approx(4.08)
    assert validation.byte_to_voltage(0) == 0.0
    with pytest.raises(ValidationError):
        validation.byte_to_voltage(300)


def test_clamps():
    assert validation.clamp(5, 0, 3) == 3
    assert validation.clamp_voltage(-0.5) == 0.0
    assert validation.clamp_repeat_interval(10) == 100
    assert validation.clamp_repeat_interval(70000) == 65535


@pytest.mark.parametrize("voltage", [round(0.01 * step, 2) for step in range(0, 409)])
def test_voltage_byte_round_trip_within_one_step(voltage):
    restored = validation.byte_to_voltage(validation.voltage_to_byte(voltage))
    assert abs(restored - voltage) <= validation.VOLTAGE_MAX / validation.BYTE_MAX

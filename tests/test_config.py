from __future__ import annotations

import json
from pathlib import Path

import pytest

from cd48.device.config import DeviceConfig, load_config
from cd48.device.errors import ValidationError


def test_defaults_without_file():
    cfg = load_config()
    assert cfg.serial.port == "/dev/ttyUSB0"
    assert cfg.serial.baudrate == 115200
    assert cfg.protocol.command_delay == pytest.approx(0.05)
    assert cfg.measurement.coincidence == 4
    assert cfg.profiles_path == DeviceConfig().profiles_path


def test_file_and_overrides(tmp_path):
    path = tmp_path / "cd48.json"
    path.write_text(
        json.dumps(
            {
                "serial": {"port": "/dev/ttyACM0", "timeout": 2.5},
                "measurement": {"duration": 5},
                "profiles_path": str(tmp_path / "p.json"),
            }
        ),
        encoding="utf-8",
    )
    cfg = load_config(path, ["serial.baudrate=9600", "protocol.command_delay=0", "measurement.singles_b=2"])
    assert cfg.serial.port == "/dev/ttyACM0"
    assert cfg.serial.timeout == pytest.approx(2.5)
    assert cfg.serial.baudrate == 9600
    assert cfg.protocol.command_delay == 0.0
    assert cfg.measurement.duration == pytest.approx(5.0)
    assert cfg.measurement.singles_b == 2
    assert cfg.profiles_path == tmp_path / "p.json"


def test_shipped_example_config_loads():
    path = Path(__file__).resolve().parents[1] / "config" / "cd48.json"
    cfg = load_config(path)
    assert cfg.measurement.coincidence_window == pytest.approx(25e-9)


def test_override_syntax_errors():
    with pytest.raises(ValueError):
        load_config(overrides=["serial.port"])
    with pytest.raises(ValueError):
        load_config(overrides=["=3"])


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        load_config(overrides=["serial.timeout=0"])
    with pytest.raises(ValidationError):
        load_config(overrides=["measurement.coincidence=9"])
    with pytest.raises(ValidationError):
        load_config(overrides=["protocol.reply_terminator=x"])

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Sequence

from .errors import ValidationError
from .validation import validate_channel, validate_duration


@dataclass
class SerialSettings:
    port: str = "/dev/ttyUSB0"
    baudrate: int = 115200
    timeout: float = 1.0

    def __post_init__(self) -> None:
        if self.baudrate <= 0:
            raise ValidationError("baudrate", self.baudrate, "must be positive")
        if self.timeout <= 0:
            raise ValidationError("timeout", self.timeout, "must be positive")


@dataclass
class ProtocolSettings:
    command_delay: float = 0.05
    reply_terminator: str = "\n"

    def __post_init__(self) -> None:
        if self.command_delay < 0:
            raise ValidationError("command_delay", self.command_delay, "must be >= 0")
        if self.reply_terminator not in {"\n", "\r"}:
            raise ValidationError("reply_terminator", self.reply_terminator, "must be '\\n' or '\\r'")


@dataclass
class MeasurementDefaults:
    duration: float = 1.0
    singles_a: int = 0
    singles_b: int = 1
    coincidence: int = 4
    coincidence_window: float = 25e-9

    def __post_init__(self) -> None:
        validate_duration(self.duration)
        for channel in (self.singles_a, self.singles_b, self.coincidence):
            validate_channel(channel)
        if self.coincidence_window <= 0:
            raise ValidationError("coincidence_window", self.coincidence_window, "must be positive")


@dataclass
class DeviceConfig:
    serial: SerialSettings = field(default_factory=SerialSettings)
    protocol: ProtocolSettings = field(default_factory=ProtocolSettings)
    measurement: MeasurementDefaults = field(default_factory=MeasurementDefaults)
    profiles_path: Path = field(default_factory=lambda: Path.home() / ".cd48" / "profiles.json")


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> DeviceConfig:
    """
    Load the host configuration from JSON and apply CLI-style overrides.

    A missing *path* yields the built-in defaults. Overrides are dotted
    `key=value` pairs, e.g.:
        ["serial.port=/dev/ttyACM0", "protocol.command_delay=0.1"]
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    serial_data = merged.get("serial") or {}
    protocol_data = merged.get("protocol") or {}
    measurement_data = merged.get("measurement") or {}
    defaults = DeviceConfig()
    return DeviceConfig(
        serial=SerialSettings(
            port=str(serial_data.get("port", defaults.serial.port)),
            baudrate=int(serial_data.get("baudrate", defaults.serial.baudrate)),
            timeout=float(serial_data.get("timeout", defaults.serial.timeout)),
        ),
        protocol=ProtocolSettings(
            command_delay=float(protocol_data.get("command_delay", defaults.protocol.command_delay)),
            reply_terminator=str(protocol_data.get("reply_terminator", defaults.protocol.reply_terminator)),
        ),
        measurement=MeasurementDefaults(
            duration=float(measurement_data.get("duration", defaults.measurement.duration)),
            singles_a=int(measurement_data.get("singles_a", defaults.measurement.singles_a)),
            singles_b=int(measurement_data.get("singles_b", defaults.measurement.singles_b)),
            coincidence=int(measurement_data.get("coincidence", defaults.measurement.coincidence)),
            coincidence_window=float(
                measurement_data.get("coincidence_window", defaults.measurement.coincidence_window)
            ),
        ),
        profiles_path=Path(merged["profiles_path"]).expanduser()
        if merged.get("profiles_path")
        else defaults.profiles_path,
    )


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    return key, _coerce_value(raw_value.strip())


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .calibration import IDENTITY, CalibrationCoefficients, apply
from .device.validation import CHANNEL_COUNT, validate_channel

logger = logging.getLogger(__name__)


@dataclass
class CalibrationProfile:
    """
    Per-channel calibration data for one instrument setup.

    Coefficient pairs are stored as immutable `CalibrationCoefficients`; setting
    a gain or offset swaps in a new pair so readers never see half an update.
    """

    name: str = "Untitled Profile"
    description: str = ""
    date: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    voltages: Dict[int, float] = field(default_factory=dict)
    thresholds: Dict[int, float] = field(default_factory=dict)
    coefficients: Dict[int, CalibrationCoefficients] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def set_voltage(self, channel: int, voltage: float) -> None:
        validate_channel(channel)
        self.voltages[channel] = float(voltage)

    def get_voltage(self, channel: int) -> Optional[float]:
        return self.voltages.get(channel)

    def set_threshold(self, channel: int, threshold: float) -> None:
        validate_channel(channel)
        self.thresholds[channel] = float(threshold)

    def get_threshold(self, channel: int) -> Optional[float]:
        return self.thresholds.get(channel)

    def set_coefficients(self, channel: int, coefficients: CalibrationCoefficients) -> None:
        validate_channel(channel)
        self.coefficients[channel] = coefficients

    def set_gain(self, channel: int, gain: float) -> None:
        current = self.coefficients_for(channel)
        self.set_coefficients(channel, CalibrationCoefficients(gain=float(gain), offset=current.offset))

    def set_offset(self, channel: int, offset: float) -> None:
        current = self.coefficients_for(channel)
        self.set_coefficients(channel, CalibrationCoefficients(gain=current.gain, offset=float(offset)))

    def coefficients_for(self, channel: int) -> CalibrationCoefficients:
        return self.coefficients.get(channel, IDENTITY)

    def has_gain(self, channel: int) -> bool:
        return channel in self.coefficients

    def gain(self, channel: int) -> float:
        return self.coefficients_for(channel).gain

    def offset(self, channel: int) -> float:
        return self.coefficients_for(channel).offset

    def apply_counts(self, channel: int, raw_count: float) -> float:
        coeff = self.coefficients_for(channel)
        return apply(raw_count, coeff.gain, coeff.offset)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "date": self.date.isoformat(),
            "voltages": {str(ch): value for ch, value in self.voltages.items()},
            "thresholds": {str(ch): value for ch, value in self.thresholds.items()},
            "gains": {str(ch): coeff.gain for ch, coeff in self.coefficients.items()},
            "offsets": {str(ch): coeff.offset for ch, coeff in self.coefficients.items()},
            "metadata": self.metadata,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "CalibrationProfile":
        try:
            name = str(data["name"])
        except KeyError as exc:
            raise ValueError(f"Calibration profile missing field {exc}") from exc
        date = _parse_date(data.get("date"))
        gains = _channel_map(data.get("gains"))
        offsets = _channel_map(data.get("offsets"))
        coefficients = {
            channel: CalibrationCoefficients(gain=gains.get(channel, 1.0), offset=offsets.get(channel, 0.0))
            for channel in sorted(set(gains) | set(offsets))
        }
        return CalibrationProfile(
            name=name,
            description=str(data.get("description", "")),
            date=date,
            voltages=_channel_map(data.get("voltages")),
            thresholds=_channel_map(data.get("thresholds")),
            coefficients=coefficients,
            metadata=dict(data.get("metadata") or {}),
        )


def _parse_date(raw: Any) -> datetime:
    if not raw:
        return datetime.now(timezone.utc)
    text = str(raw)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _channel_map(raw: Any) -> Dict[int, float]:
    result: Dict[int, float] = {}
    for key, value in (raw or {}).items():
        channel = int(key)
        validate_channel(channel)
        result[channel] = float(value)
    return result


class JsonProfileStore:
    """Profiles kept as one JSON object keyed by profile name."""

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def load_all(self) -> Dict[str, Dict[str, Any]]:
        if not self.path.exists():
            return {}
        data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a profile mapping")
        return data

    def _write(self, profiles: Dict[str, Dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(profiles, indent=2), encoding="utf-8")

    def save(self, profile: CalibrationProfile) -> None:
        profiles = self.load_all()
        profiles[profile.name] = profile.to_dict()
        self._write(profiles)
        logger.info("Saved calibration profile '%s' to %s", profile.name, self.path)

    def load(self, name: str) -> Optional[CalibrationProfile]:
        data = self.load_all().get(name)
        if data is None:
            return None
        return CalibrationProfile.from_dict(data)

    def list_profiles(self) -> List[str]:
        return list(self.load_all())

    def delete(self, name: str) -> bool:
        profiles = self.load_all()
        if name not in profiles:
            return False
        del profiles[name]
        self._write(profiles)
        return True

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()

    def export(self) -> str:
        return json.dumps(self.load_all(), indent=2)

    def import_profiles(self, text: str, merge: bool = False) -> int:
        imported = json.loads(text)
        if not isinstance(imported, dict):
            raise ValueError("Imported profiles must be a JSON object keyed by name")
        for data in imported.values():
            CalibrationProfile.from_dict(data)
        profiles = {**self.load_all(), **imported} if merge else imported
        self._write(profiles)
        logger.info("Imported %d calibration profiles (merge=%s)", len(imported), merge)
        return len(imported)


def describe(profile: CalibrationProfile) -> List[str]:
    lines = [f"{profile.name} ({profile.date:%Y-%m-%d})"]
    if profile.description:
        lines.append(profile.description)
    for channel in range(CHANNEL_COUNT):
        parts = []
        if channel in profile.coefficients:
            coeff = profile.coefficients[channel]
            parts.append(f"gain={coeff.gain:.6g} offset={coeff.offset:.6g}")
        if channel in profile.voltages:
            parts.append(f"voltage={profile.voltages[channel]:.3f}V")
        if channel in profile.thresholds:
            parts.append(f"threshold={profile.thresholds[channel]:.3f}")
        if parts:
            lines.append(f"  ch{channel}: " + " ".join(parts))
    return lines

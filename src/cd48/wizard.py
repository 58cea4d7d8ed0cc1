from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .device.driver import CD48
from .device.errors import NotConnectedError
from .device.measurement import MeasurementEngine
from .device.validation import CHANNEL_COUNT
from .profiles import CalibrationProfile, JsonProfileStore

logger = logging.getLogger(__name__)

GAIN_SANE_RANGE = (0.1, 10.0)


@dataclass
class ThresholdScan:
    optimal: float
    results: List[Dict[str, float]] = field(default_factory=list)


@dataclass
class ProfileCheck:
    valid: bool
    issues: List[str]
    warnings: List[str]


class CalibrationWizard:
    """Step-by-step helper that fills a calibration profile from live measurements."""

    def __init__(
        self,
        device: CD48,
        store: JsonProfileStore,
        engine: Optional[MeasurementEngine] = None,
        profile: Optional[CalibrationProfile] = None,
    ):
        self.device = device
        self.store = store
        self.engine = engine or MeasurementEngine(device)
        self.profile = profile or CalibrationProfile()

    def measure_channel_rate(self, channel: int, duration: float = 5.0) -> float:
        if not self.device.connected:
            raise NotConnectedError("measure")
        return self.engine.measure_rate(channel, duration).rate

    def measure_background(self, channels: Iterable[int], duration: float = 10.0) -> Dict[int, float]:
        backgrounds: Dict[int, float] = {}
        for channel in channels:
            rate = self.measure_channel_rate(channel, duration)
            backgrounds[channel] = rate
            self.profile.metadata[f"background_ch{channel}"] = rate
        return backgrounds

    def calibrate_voltage(self, channel: int, known_voltage: float) -> None:
        self.profile.set_voltage(channel, known_voltage)
        self.profile.metadata[f"voltage_calibrated_ch{channel}"] = True

    def calibrate_gain(self, channel: int, reference_rate: float, duration: float = 10.0) -> float:
        measured = self.measure_channel_rate(channel, duration)
        if measured <= 0:
            raise ValueError(f"Channel {channel} measured no counts; cannot derive a gain")
        gain = reference_rate / measured
        self.profile.set_gain(channel, gain)
        logger.info("Channel %d gain %.6g (reference %.3f Hz, measured %.3f Hz)", channel, gain, reference_rate, measured)
        return gain

    def find_optimal_threshold(
        self,
        channel: int,
        thresholds: Sequence[float],
        duration: float = 5.0,
        apply_threshold: Optional[Callable[[float], Any]] = None,
    ) -> ThresholdScan:
        """
        Step through *thresholds* and pick the last one on the rate plateau.

        *apply_threshold* sets the hardware level before each measurement;
        by default the trigger level of the device is used.
        """
        if not thresholds:
            raise ValueError("At least one threshold is required")
        setter = apply_threshold or self.device.set_trigger_level
        results: List[Dict[str, float]] = []
        for threshold in thresholds:
            setter(threshold)
            rate = self.measure_channel_rate(channel, duration)
            results.append({"threshold": float(threshold), "rate": rate})

        optimal = float(thresholds[0])
        max_rate = 0.0
        for entry in results:
            if max_rate * 0.95 < entry["rate"] < max_rate * 1.05:
                optimal = entry["threshold"]
            max_rate = max(max_rate, entry["rate"])

        self.profile.set_threshold(channel, optimal)
        return ThresholdScan(optimal=optimal, results=results)

    def save(self, name: Optional[str] = None) -> None:
        if name:
            self.profile.name = name
        self.store.save(self.profile)

    def load(self, name: str) -> Optional[CalibrationProfile]:
        profile = self.store.load(name)
        if profile is not None:
            self.profile = profile
        return profile

    def generate_report(self) -> Dict[str, Any]:
        return {
            "profile": self.profile.to_dict(),
            "summary": {
                "name": self.profile.name,
                "date": self.profile.date.isoformat(),
                "channels_calibrated": len(self.profile.voltages),
                "has_gain_calibration": bool(self.profile.coefficients),
                "has_threshold_calibration": bool(self.profile.thresholds),
            },
        }

    def validate(self) -> ProfileCheck:
        issues: List[str] = []
        warnings: List[str] = []
        low, high = GAIN_SANE_RANGE
        for channel in range(CHANNEL_COUNT):
            if self.profile.get_voltage(channel) is None:
                warnings.append(f"Channel {channel} voltage not calibrated")
            if not self.profile.has_gain(channel):
                warnings.append(f"Channel {channel} gain not calibrated")
                continue
            gain = self.profile.gain(channel)
            if gain < low or gain > high:
                issues.append(f"Channel {channel} gain {gain} is unusual (expected {low}-{high})")
        return ProfileCheck(valid=not issues, issues=issues, warnings=warnings)

"""Linear gain/offset calibration of raw channel values."""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Protocol, Sequence

import numpy as np

from .device.errors import DegenerateCalibrationError, InsufficientDataError


@dataclass(frozen=True)
class CalibrationPoint:
    raw: float
    actual: float


@dataclass(frozen=True)
class CalibrationCoefficients:
    """Immutable gain/offset pair; refitting produces a new instance."""

    gain: float = 1.0
    offset: float = 0.0

    def apply(self, raw: float) -> float:
        return apply(raw, self.gain, self.offset)


IDENTITY = CalibrationCoefficients()


@dataclass(frozen=True)
class CalibrationErrorStats:
    mean: float
    std: float
    max: float
    errors: List[float]


class CalibrationLookup(Protocol):
    def gain(self, channel: int) -> float: ...

    def offset(self, channel: int) -> float: ...


def apply(raw: float, gain: float, offset: float) -> float:
    return raw * gain + offset


def apply_lookup(lookup: CalibrationLookup, channel: int, raw: float) -> float:
    return apply(raw, lookup.gain(channel), lookup.offset(channel))


def two_point(p1: CalibrationPoint, p2: CalibrationPoint) -> CalibrationCoefficients:
    """Line through two reference points."""
    if p1.raw == p2.raw:
        raise DegenerateCalibrationError(
            f"Two-point calibration needs distinct raw values (both are {p1.raw})"
        )
    gain = (p2.actual - p1.actual) / (p2.raw - p1.raw)
    offset = p1.actual - gain * p1.raw
    return CalibrationCoefficients(gain=float(gain), offset=float(offset))


def multi_point(points: Sequence[CalibrationPoint]) -> CalibrationCoefficients:
    """Ordinary least squares fit of `actual = gain * raw + offset`."""
    if len(points) < 2:
        raise InsufficientDataError(f"At least 2 calibration points required, got {len(points)}")
    raw = np.array([point.raw for point in points], dtype=float)
    actual = np.array([point.actual for point in points], dtype=float)
    if np.all(raw == raw[0]):
        raise DegenerateCalibrationError("All calibration points share the same raw value")
    X = np.column_stack([np.ones_like(raw), raw])
    beta, *_ = np.linalg.lstsq(X, actual, rcond=None)
    return CalibrationCoefficients(gain=float(beta[1]), offset=float(beta[0]))


def calculate_error(
    points: Sequence[CalibrationPoint], gain: float, offset: float
) -> CalibrationErrorStats:
    """Absolute-error statistics of a fit against reference points."""
    if not points:
        raise InsufficientDataError("No points to evaluate")
    raw = np.array([point.raw for point in points], dtype=float)
    actual = np.array([point.actual for point in points], dtype=float)
    errors = np.abs(apply(raw, gain, offset) - actual)
    return CalibrationErrorStats(
        mean=float(errors.mean()),
        std=float(errors.std()),
        max=float(errors.max()),
        errors=[float(value) for value in errors],
    )

"""Statistics, histograms and time-series helpers for count data."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Optional, Sequence

import numpy as np


@dataclass(frozen=True)
class Regression:
    slope: float
    intercept: float
    r2: float


@dataclass(frozen=True)
class Histogram:
    centers: np.ndarray
    counts: np.ndarray
    edges: np.ndarray
    bin_width: float


def _as_array(data: Sequence[float]) -> np.ndarray:
    return np.asarray(data, dtype=float)


# -- statistics --------------------------------------------------------------


def mean(data: Sequence[float]) -> float:
    values = _as_array(data)
    return float(values.mean()) if values.size else 0.0


def median(data: Sequence[float]) -> float:
    values = _as_array(data)
    return float(np.median(values)) if values.size else 0.0


def standard_deviation(data: Sequence[float], sample: bool = True) -> float:
    values = _as_array(data)
    ddof = 1 if sample else 0
    if values.size <= ddof:
        return 0.0
    return float(values.std(ddof=ddof))


def variance(data: Sequence[float], sample: bool = True) -> float:
    return standard_deviation(data, sample) ** 2


def poisson_uncertainty(count: float) -> float:
    return float(np.sqrt(max(0.0, count)))


def z_score(count1: float, count2: float) -> float:
    """Significance of the difference between two Poisson counts."""
    uncertainty = np.sqrt(count1 + count2)
    if uncertainty == 0:
        return 0.0
    return float(abs(count1 - count2) / uncertainty)


def linear_regression(x: Sequence[float], y: Sequence[float]) -> Regression:
    xs = _as_array(x)
    ys = _as_array(y)
    if xs.size == 0 or xs.size != ys.size:
        return Regression(0.0, 0.0, 0.0)
    X = np.column_stack([np.ones_like(xs), xs])
    beta, *_ = np.linalg.lstsq(X, ys, rcond=None)
    intercept, slope = float(beta[0]), float(beta[1])
    residuals = ys - (intercept + slope * xs)
    ss_total = float(np.sum((ys - ys.mean()) ** 2))
    ss_residual = float(np.sum(residuals**2))
    r2 = 1.0 - ss_residual / ss_total if ss_total > 0 else 0.0
    return Regression(slope=slope, intercept=intercept, r2=r2)


def summary(data: Sequence[float]) -> Dict[str, float]:
    values = _as_array(data)
    if values.size == 0:
        return {"mean": 0.0, "median": 0.0, "std": 0.0, "variance": 0.0, "min": 0.0, "max": 0.0, "count": 0}
    return {
        "mean": mean(values),
        "median": median(values),
        "std": standard_deviation(values),
        "variance": variance(values),
        "min": float(values.min()),
        "max": float(values.max()),
        "count": int(values.size),
    }


# -- histograms --------------------------------------------------------------


def histogram(
    data: Sequence[float],
    bins: int = 10,
    lower: Optional[float] = None,
    upper: Optional[float] = None,
) -> Histogram:
    values = _as_array(data)
    if values.size == 0:
        empty = np.array([], dtype=float)
        return Histogram(centers=empty, counts=np.array([], dtype=int), edges=empty, bin_width=0.0)
    lo = float(values.min()) if lower is None else float(lower)
    hi = float(values.max()) if upper is None else float(upper)
    if hi == lo:
        hi = lo + 1.0
    counts, edges = np.histogram(values, bins=bins, range=(lo, hi))
    width = (hi - lo) / bins
    return Histogram(centers=edges[:-1] + width / 2, counts=counts, edges=edges, bin_width=width)


def autobin(data: Sequence[float]) -> Histogram:
    """Histogram with Sturges' rule for the bin count."""
    values = _as_array(data)
    if values.size == 0:
        return histogram(values)
    return histogram(values, bins=int(np.ceil(np.log2(values.size) + 1)))


def freedman_diaconis(data: Sequence[float]) -> Histogram:
    values = _as_array(data)
    if values.size == 0:
        return histogram(values)
    q1, q3 = np.percentile(values, [25, 75])
    width = 2 * (q3 - q1) / np.cbrt(values.size)
    span = float(values.max() - values.min())
    bins = int(np.ceil(span / width)) if width > 0 else 1
    return histogram(values, bins=max(bins, 1))


def cumulative(data: Sequence[float], bins: int = 10) -> tuple[Histogram, np.ndarray]:
    """Return the cumulative histogram and its normalised counterpart."""
    hist = histogram(data, bins=bins)
    running = np.cumsum(hist.counts)
    total = running[-1] if running.size else 0
    normalized = running / total if total else running.astype(float)
    return Histogram(hist.centers, running, hist.edges, hist.bin_width), normalized


# -- time series -------------------------------------------------------------


def moving_average(data: Sequence[float], window: int) -> np.ndarray:
    values = _as_array(data)
    if values.size == 0 or window < 1:
        return np.array([], dtype=float)
    half_lo = window // 2
    half_hi = -(-window // 2)
    result = np.empty_like(values)
    for idx in range(values.size):
        start = max(0, idx - half_lo)
        end = min(values.size, idx + half_hi)
        result[idx] = values[start:end].mean()
    return result


def exponential_moving_average(data: Sequence[float], alpha: float = 0.3) -> np.ndarray:
    if alpha < 0 or alpha > 1:
        raise ValueError("alpha must be between 0 and 1")
    values = _as_array(data)
    if values.size == 0:
        return values
    result = np.empty_like(values)
    result[0] = values[0]
    for idx in range(1, values.size):
        result[idx] = alpha * values[idx] + (1 - alpha) * result[idx - 1]
    return result


def detect_outliers(data: Sequence[float], threshold: float = 3.0) -> list[int]:
    values = _as_array(data)
    std = standard_deviation(values)
    if values.size == 0 or std == 0:
        return []
    scores = np.abs((values - values.mean()) / std)
    return [int(idx) for idx in np.flatnonzero(scores > threshold)]


def rate_of_change(data: Sequence[float], times: Optional[Sequence[float]] = None) -> np.ndarray:
    values = _as_array(data)
    if values.size < 2:
        return np.array([], dtype=float)
    dt = np.diff(_as_array(times)) if times is not None else np.ones(values.size - 1)
    return np.diff(values) / dt


def autocorrelation(data: Sequence[float], lag: int) -> float:
    values = _as_array(data)
    if values.size == 0 or lag >= values.size:
        return 0.0
    centered = values - values.mean()
    denominator = float(np.sum(centered**2))
    if denominator == 0:
        return 0.0
    return float(np.sum(centered[: values.size - lag] * centered[lag:]) / denominator)


def resample(data: Sequence[float], times: Sequence[float], new_times: Sequence[float]) -> np.ndarray:
    """Linear interpolation onto *new_times*, holding the end values outside the range."""
    values = _as_array(data)
    t = _as_array(times)
    if values.size == 0 or values.size != t.size:
        return np.array([], dtype=float)
    return np.interp(_as_array(new_times), t, values)


def dead_time_correction(observed_rate: float, dead_time: float) -> float:
    """Non-paralyzable correction: true = observed / (1 - observed * dead_time)."""
    denominator = 1 - observed_rate * dead_time
    if denominator <= 0:
        raise ValueError("Dead time correction overflow - rate too high")
    return observed_rate / denominator


# -- coincidences ------------------------------------------------------------


def accidental_rate(rate_a: float, rate_b: float, window: float) -> float:
    return 2 * window * rate_a * rate_b


def true_rate(measured_rate: float, rate_a: float, rate_b: float, window: float) -> float:
    """Coincidence rate with accidentals removed, clamped at zero."""
    return max(0.0, measured_rate - accidental_rate(rate_a, rate_b, window))


def signal_to_noise(true_coincidences: float, accidentals: float) -> float:
    if accidentals == 0:
        return float("inf")
    return true_coincidences / accidentals


def optimal_window(rate_a: float, rate_b: float, target_snr: float = 10.0) -> float:
    return float(1.0 / (2 * target_snr * np.sqrt(rate_a * rate_b)))

from __future__ import annotations

import numpy as np
import pytest

from cd48 import analysis


def test_basic_statistics():
    data = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
    assert analysis.mean(data) == pytest.approx(5.0)
    assert analysis.median(data) == pytest.approx(4.5)
    assert analysis.standard_deviation(data, sample=False) == pytest.approx(2.0)
    assert analysis.variance(data, sample=False) == pytest.approx(4.0)
    assert analysis.standard_deviation([1.0]) == 0.0
    assert analysis.mean([]) == 0.0


def test_summary_counts():
    stats = analysis.summary([1.0, 2.0, 3.0])
    assert stats["count"] == 3
    assert stats["min"] == 1.0
    assert stats["max"] == 3.0
    assert stats["std"] == pytest.approx(1.0)
    assert analysis.summary([])["count"] == 0


def test_poisson_and_z_score():
    assert analysis.poisson_uncertainty(100) == pytest.approx(10.0)
    assert analysis.poisson_uncertainty(-4) == 0.0
    assert analysis.z_score(120, 80) == pytest.approx(40 / np.sqrt(200))
    assert analysis.z_score(0, 0) == 0.0


def test_linear_regression_perfect_fit():
    fit = analysis.linear_regression([0, 1, 2, 3], [1, 3, 5, 7])
    assert fit.slope == pytest.approx(2.0)
    assert fit.intercept == pytest.approx(1.0)
    assert fit.r2 == pytest.approx(1.0)


def test_histogram_binning():
    hist = analysis.histogram([0.0, 0.5, 1.0, 1.5, 2.0], bins=2)
    assert hist.counts.tolist() == [2, 3]
    assert hist.bin_width == pytest.approx(1.0)
    assert hist.centers.tolist() == pytest.approx([0.5, 1.5])


def test_histogram_constant_data():
    hist = analysis.histogram([3.0, 3.0, 3.0], bins=4)
    assert hist.counts.sum() == 3


def test_autobin_uses_sturges():
    hist = analysis.autobin(np.arange(16, dtype=float))
    assert hist.counts.size == 5


def test_cumulative_normalised():
    hist, normalized = analysis.cumulative([1.0, 2.0, 3.0, 4.0], bins=4)
    assert hist.counts.tolist() == [1, 2, 3, 4]
    assert normalized[-1] == pytest.approx(1.0)


def test_moving_averages():
    ma = analysis.moving_average([1.0, 2.0, 3.0, 4.0, 5.0], 3)
    assert ma.tolist() == pytest.approx([1.5, 2.0, 3.0, 4.0, 4.5])
    ema = analysis.exponential_moving_average([0.0, 10.0], alpha=0.5)
    assert ema.tolist() == pytest.approx([0.0, 5.0])
    with pytest.raises(ValueError):
        analysis.exponential_moving_average([1.0], alpha=1.5)


def test_detect_outliers():
    data = [10.0] * 20 + [100.0]
    assert analysis.detect_outliers(data) == [20]
    assert analysis.detect_outliers([5.0, 5.0]) == []


def test_rate_of_change_and_resample():
    assert analysis.rate_of_change([0.0, 2.0, 6.0], [0.0, 1.0, 3.0]).tolist() == pytest.approx([2.0, 2.0])
    assert analysis.resample([0.0, 10.0], [0.0, 1.0], [0.5, 2.0]).tolist() == pytest.approx([5.0, 10.0])


def test_autocorrelation_alternating():
    assert analysis.autocorrelation([1.0, -1.0, 1.0, -1.0], 1) == pytest.approx(-0.75)
    assert analysis.autocorrelation([1.0, 2.0], 5) == 0.0


def test_dead_time_correction():
    assert analysis.dead_time_correction(1000.0, 1e-4) == pytest.approx(1000.0 / 0.9)
    with pytest.raises(ValueError):
        analysis.dead_time_correction(1e5, 1e-4)


def test_coincidence_helpers():
    assert analysis.accidental_rate(1000.0, 1000.0, 25e-9) == pytest.approx(0.05)
    assert analysis.true_rate(50.0, 1000.0, 1000.0, 25e-9) == pytest.approx(49.95)
    assert analysis.true_rate(0.01, 1000.0, 1000.0, 25e-9) == 0.0
    assert analysis.signal_to_noise(10.0, 0.0) == float("inf")
    window = analysis.optimal_window(1000.0, 1000.0, target_snr=10.0)
    assert window == pytest.approx(1 / (2 * 10.0 * 1000.0))

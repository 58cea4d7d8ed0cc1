from __future__ import annotations

import pytest

from cd48 import calibration
from cd48.calibration import CalibrationCoefficients, CalibrationPoint
from cd48.device.errors import CalibrationError, DegenerateCalibrationError, InsufficientDataError


def test_apply_linear():
    assert calibration.apply(10.0, 2.0, 1.0) == pytest.approx(21.0)
    assert CalibrationCoefficients(gain=0.5, offset=-1.0).apply(4.0) == pytest.approx(1.0)
    assert calibration.IDENTITY.apply(3.3) == pytest.approx(3.3)


def test_two_point_fit():
    coeff = calibration.two_point(CalibrationPoint(100.0, 95.0), CalibrationPoint(200.0, 195.0))
    assert coeff.gain == pytest.approx(1.0)
    assert coeff.offset == pytest.approx(-5.0)


def test_two_point_rejects_equal_raw_values():
    with pytest.raises(DegenerateCalibrationError):
        calibration.two_point(CalibrationPoint(1.0, 2.0), CalibrationPoint(1.0, 3.0))


def test_multi_point_recovers_line():
    points = [CalibrationPoint(x, 2.0 * x + 3.0) for x in (0.0, 1.0, 2.0, 5.0, 10.0)]
    coeff = calibration.multi_point(points)
    assert coeff.gain == pytest.approx(2.0)
    assert coeff.offset == pytest.approx(3.0)


def test_multi_point_least_squares():
    points = [CalibrationPoint(0.0, 0.0), CalibrationPoint(1.0, 1.0), CalibrationPoint(2.0, 3.0)]
    coeff = calibration.multi_point(points)
    assert coeff.gain == pytest.approx(1.5)
    assert coeff.offset == pytest.approx(-1.0 / 6.0)


def test_multi_point_needs_two_distinct_points():
    with pytest.raises(InsufficientDataError):
        calibration.multi_point([CalibrationPoint(1.0, 1.0)])
    with pytest.raises(DegenerateCalibrationError):
        calibration.multi_point([CalibrationPoint(1.0, 1.0), CalibrationPoint(1.0, 2.0)])


def test_calculate_error_stats():
    points = [CalibrationPoint(0.0, 1.0), CalibrationPoint(1.0, 2.0), CalibrationPoint(2.0, 6.0)]
    stats = calibration.calculate_error(points, gain=1.0, offset=1.0)
    assert stats.errors == pytest.approx([0.0, 0.0, 3.0])
    assert stats.mean == pytest.approx(1.0)
    assert stats.max == pytest.approx(3.0)
    assert stats.std == pytest.approx(2.0 ** 0.5)


def test_calculate_error_requires_points():
    with pytest.raises(CalibrationError):
        calibration.calculate_error([], 1.0, 0.0)


class _Lookup:
    def gain(self, channel: int) -> float:
        return 2.0 if channel == 1 else 1.0

    def offset(self, channel: int) -> float:
        return 0.5


def test_apply_lookup_uses_channel():
    assert calibration.apply_lookup(_Lookup(), 1, 10.0) == pytest.approx(20.5)
    assert calibration.apply_lookup(_Lookup(), 0, 10.0) == pytest.approx(10.5)


def test_two_point_full_scale_dac():
    coeff = calibration.two_point(CalibrationPoint(0.0, 0.0), CalibrationPoint(255.0, 4.08))
    assert coeff.gain == pytest.approx(0.016)
    assert coeff.offset == pytest.approx(0.0, abs=1e-12)

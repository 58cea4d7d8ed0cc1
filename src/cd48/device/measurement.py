"""Timed acquisition windows built on top of count snapshots."""
from __future__ import annotations

import enum
import logging
import math
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from ..analysis import accidental_rate, true_rate
from .config import MeasurementDefaults
from .driver import CD48
from .errors import MeasurementCancelled, ValidationError
from .responses import CountSnapshot
from .validation import validate_channel, validate_duration

logger = logging.getLogger(__name__)


class MeasurementState(str, enum.Enum):
    ARMED = "armed"
    SAMPLING = "sampling"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class RateMeasurement:
    channel: int
    duration: float
    counts: int
    rate: float
    uncertainty: float

    @staticmethod
    def from_counts(channel: int, counts: int, duration: float) -> "RateMeasurement":
        return RateMeasurement(
            channel=channel,
            duration=duration,
            counts=counts,
            rate=counts / duration,
            uncertainty=math.sqrt(counts) / duration,
        )


@dataclass(frozen=True)
class CoincidenceOptions:
    duration: float = 1.0
    singles_a: int = 0
    singles_b: int = 1
    coincidence: int = 4
    coincidence_window: float = 25e-9

    def __post_init__(self) -> None:
        validate_duration(self.duration)
        for channel in (self.singles_a, self.singles_b, self.coincidence):
            validate_channel(channel)
        if not self.coincidence_window > 0 or math.isinf(self.coincidence_window):
            raise ValidationError("coincidence_window", self.coincidence_window, "must be a positive number of seconds")

    @staticmethod
    def from_defaults(defaults: MeasurementDefaults, **overrides) -> "CoincidenceOptions":
        values = {
            "duration": defaults.duration,
            "singles_a": defaults.singles_a,
            "singles_b": defaults.singles_b,
            "coincidence": defaults.coincidence,
            "coincidence_window": defaults.coincidence_window,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return CoincidenceOptions(**values)


@dataclass(frozen=True)
class CoincidenceMeasurement:
    duration: float
    coincidence_window: float
    singles_a: RateMeasurement
    singles_b: RateMeasurement
    coincidences: RateMeasurement
    accidental_rate: float
    true_coincidence_rate: float

    @property
    def rate_a(self) -> float:
        return self.singles_a.rate

    @property
    def rate_b(self) -> float:
        return self.singles_b.rate

    @property
    def coincidence_rate(self) -> float:
        return self.coincidences.rate


class MeasurementEngine:
    """
    Runs ARMED -> SAMPLING -> COMPLETE acquisitions against one driver.

    Each call takes a snapshot, waits the requested duration, then takes a
    second snapshot; all derived quantities come from that single pair.
    Failures leave the engine in FAILED and propagate to the caller.
    """

    def __init__(self, device: CD48, *, sleep: Optional[Callable[[float], None]] = None):
        self.device = device
        self._sleep = sleep or device.sleep
        self.state = MeasurementState.ARMED

    def measure_rate(
        self,
        channel: int,
        duration: float,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> RateMeasurement:
        self._arm()
        validate_channel(channel)
        validate_duration(duration)
        start, end = self._sample(duration, cancel)
        try:
            counts = end.delta(start, channel)
        except Exception:
            self._fail()
            raise
        self._check_overflow(end, channel)
        result = RateMeasurement.from_counts(channel, counts, duration)
        self._complete()
        logger.info(
            "Channel %d: %d counts in %.3fs (%.3f +/- %.3f Hz)",
            channel, counts, duration, result.rate, result.uncertainty,
        )
        return result

    def measure_coincidence_rate(
        self,
        options: CoincidenceOptions | None = None,
        *,
        cancel: Optional[threading.Event] = None,
    ) -> CoincidenceMeasurement:
        self._arm()
        opts = options or CoincidenceOptions()
        start, end = self._sample(opts.duration, cancel)
        try:
            counts_a = end.delta(start, opts.singles_a)
            counts_b = end.delta(start, opts.singles_b)
            counts_c = end.delta(start, opts.coincidence)
        except Exception:
            self._fail()
            raise
        for channel in (opts.singles_a, opts.singles_b, opts.coincidence):
            self._check_overflow(end, channel)
        singles_a = RateMeasurement.from_counts(opts.singles_a, counts_a, opts.duration)
        singles_b = RateMeasurement.from_counts(opts.singles_b, counts_b, opts.duration)
        coincidences = RateMeasurement.from_counts(opts.coincidence, counts_c, opts.duration)
        accidental = accidental_rate(singles_a.rate, singles_b.rate, opts.coincidence_window)
        result = CoincidenceMeasurement(
            duration=opts.duration,
            coincidence_window=opts.coincidence_window,
            singles_a=singles_a,
            singles_b=singles_b,
            coincidences=coincidences,
            accidental_rate=accidental,
            true_coincidence_rate=true_rate(coincidences.rate, singles_a.rate, singles_b.rate, opts.coincidence_window),
        )
        self._complete()
        logger.info(
            "Coincidence ch%d: %.3f Hz measured, %.3g Hz accidental, %.3f Hz true",
            opts.coincidence, result.coincidence_rate, accidental, result.true_coincidence_rate,
        )
        return result

    def _sample(self, duration: float, cancel: Optional[threading.Event]) -> tuple[CountSnapshot, CountSnapshot]:
        self.state = MeasurementState.SAMPLING
        try:
            start = self.device.read_snapshot()
            self._wait(duration, cancel)
            end = self.device.read_snapshot()
        except Exception:
            self._fail()
            raise
        return start, end

    def _wait(self, duration: float, cancel: Optional[threading.Event]) -> None:
        if cancel is not None and cancel.is_set():
            raise MeasurementCancelled("Measurement cancelled before its window opened")
        self._sleep(duration)
        if cancel is not None and cancel.is_set():
            raise MeasurementCancelled(f"Measurement cancelled during {duration:.3f}s window")

    def _arm(self) -> None:
        self.state = MeasurementState.ARMED

    def _complete(self) -> None:
        self.state = MeasurementState.COMPLETE

    def _fail(self) -> None:
        self.state = MeasurementState.FAILED

    @staticmethod
    def _check_overflow(snapshot: CountSnapshot, channel: int) -> None:
        if snapshot.overflowed(channel):
            logger.warning("Channel %d reported counter overflow; rate may be underestimated", channel)

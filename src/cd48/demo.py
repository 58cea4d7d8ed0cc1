"""Offline demo against the simulated counter."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Sequence

import numpy as np

from .device.config import DeviceConfig
from .device.driver import CD48
from .device.measurement import CoincidenceOptions, MeasurementEngine
from .device.mock import SimulatedCD48, VirtualClock
from .plotting import generate_plots
from .reporting import MeasurementLog, RateRecord, export_series, records_frame

logger = logging.getLogger(__name__)

DEMO_RATES = (120.0, 240.0, 15.0, 0.0, 6.0, 0.0, 0.0, 0.0)


def simulated_device(
    config: DeviceConfig | None = None,
    rates: Sequence[float] = DEMO_RATES,
    seed: int | None = 42,
) -> CD48:
    clock = VirtualClock()
    rng = np.random.default_rng(seed) if seed is not None else None
    simulator = SimulatedCD48(rates, clock=clock, rng=rng)
    return CD48(config, channel_factory=lambda _cfg: simulator, sleep=clock.sleep, clock=clock.now)


def run_demo(out_dir: Path, samples: int = 30, duration: float = 1.0) -> Path:
    config = DeviceConfig()
    device = simulated_device(config)
    engine = MeasurementEngine(device)
    log = MeasurementLog(out_dir / "monitor.csv")
    records: List[RateRecord] = []
    with device:
        log.set_metadata({"device": device.get_version(), "duration_s": str(duration)})
        device.clear_counts()
        for _ in range(samples):
            for channel in (0, 1):
                result = engine.measure_rate(channel, duration)
                record = RateRecord.from_measurement(device.clock(), result)
                records.append(record)
                log.append(record)
        coincidence = engine.measure_coincidence_rate(
            CoincidenceOptions.from_defaults(config.measurement, duration=10.0)
        )
    log.close()

    frame = records_frame(records)
    figure_path = None
    try:
        figure_path = generate_plots(frame, out_dir)
    except RuntimeError as exc:
        logger.warning("Plotting skipped: %s", exc)
    return export_series(frame, out_dir, coincidence=coincidence, figure_path=figure_path, title="CD48 Demo Report")

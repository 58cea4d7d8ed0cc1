"""Persistence of measurement series: streaming CSV log and summary report."""
from __future__ import annotations

import csv
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, TextIO

import pandas as pd

from . import analysis
from .device.measurement import CoincidenceMeasurement, RateMeasurement


@dataclass
class RateRecord:
    """One row of a monitoring run."""

    elapsed_s: float
    channel: int
    duration: float
    counts: int
    rate: float
    uncertainty: float
    calibrated_rate: float

    @staticmethod
    def from_measurement(elapsed_s: float, result: RateMeasurement, calibrated_rate: Optional[float] = None) -> "RateRecord":
        return RateRecord(
            elapsed_s=elapsed_s,
            channel=result.channel,
            duration=result.duration,
            counts=result.counts,
            rate=result.rate,
            uncertainty=result.uncertainty,
            calibrated_rate=result.rate if calibrated_rate is None else calibrated_rate,
        )


FIELDNAMES = [
    "elapsed_s",
    "channel",
    "duration",
    "counts",
    "rate",
    "uncertainty",
    "calibrated_rate",
]


class MeasurementLog:
    """
    Lazily creates a CSV writer when the first record arrives, so dry runs and
    tests do not touch the filesystem.
    """

    def __init__(self, path: Path):
        self.path = path
        self._writer: Optional[csv.DictWriter] = None
        self._file_handle: Optional[TextIO] = None
        self._pending_metadata: List[str] = []

    def append(self, record: RateRecord) -> None:
        if self._writer is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = self.path.open("w", newline="", encoding="utf-8")
            for line in self._pending_metadata:
                self._file_handle.write(line + "\n")
            self._pending_metadata.clear()
            self._writer = csv.DictWriter(self._file_handle, fieldnames=FIELDNAMES)
            self._writer.writeheader()
        assert self._writer is not None
        self._writer.writerow(asdict(record))
        if self._file_handle is not None:
            self._file_handle.flush()

    def set_metadata(self, metadata: Dict[str, str]) -> None:
        if not metadata:
            return
        line = "# " + " ".join(f"{key}={value}" for key, value in metadata.items())
        if self._writer is None:
            self._pending_metadata.append(line)
            return
        if self._file_handle is not None:
            self._file_handle.write(line + "\n")
            self._file_handle.flush()

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._writer = None


def load_log(path: Path) -> pd.DataFrame:
    return pd.read_csv(path, comment="#")


def records_frame(records: Iterable[RateRecord]) -> pd.DataFrame:
    return pd.DataFrame([asdict(record) for record in records], columns=FIELDNAMES)


def summarize(frame: pd.DataFrame) -> pd.DataFrame:
    """Per-channel statistics of the measured rates."""
    rows: List[Dict[str, float]] = []
    for channel, group in frame.groupby("channel"):
        rates = group["rate"].to_numpy(dtype=float)
        stats = analysis.summary(rates)
        rows.append(
            {
                "channel": int(channel),
                "samples": stats["count"],
                "total_counts": int(group["counts"].sum()),
                "mean_rate": stats["mean"],
                "std_rate": stats["std"],
                "min_rate": stats["min"],
                "max_rate": stats["max"],
                "outliers": len(analysis.detect_outliers(rates)),
            }
        )
    return pd.DataFrame(rows)


def export_series(
    frame: pd.DataFrame,
    output_dir: Path,
    *,
    coincidence: Optional[CoincidenceMeasurement] = None,
    figure_path: Optional[Path] = None,
    title: str = "CD48 Measurement Report",
) -> Path:
    """Write `rates.csv`, `summary.csv` and `report.md` to *output_dir*."""
    output_dir.mkdir(parents=True, exist_ok=True)
    frame.to_csv(output_dir / "rates.csv", index=False)
    summary = summarize(frame)
    summary.to_csv(output_dir / "summary.csv", index=False)

    lines: List[str] = [f"# {title}", f"*Samples:* {len(frame)}  ", ""]
    lines.append("## Singles rates")
    lines.append("| Channel | Samples | Counts | Mean (Hz) | Std (Hz) | Min (Hz) | Max (Hz) |")
    lines.append("| ---: | ---: | ---: | ---: | ---: | ---: | ---: |")
    for row in summary.itertuples(index=False):
        lines.append(
            f"| {row.channel} | {row.samples} | {row.total_counts} | {row.mean_rate:.4g} | "
            f"{row.std_rate:.3g} | {row.min_rate:.4g} | {row.max_rate:.4g} |"
        )
    lines.append("")
    if coincidence is not None:
        lines.append("## Coincidences")
        lines.append(f"- Window: {coincidence.duration:.3g} s, coincidence window {coincidence.coincidence_window:.3g} s")
        lines.append(f"- Singles A (ch{coincidence.singles_a.channel}): {coincidence.rate_a:.4g} Hz")
        lines.append(f"- Singles B (ch{coincidence.singles_b.channel}): {coincidence.rate_b:.4g} Hz")
        lines.append(
            f"- Measured coincidences (ch{coincidence.coincidences.channel}): "
            f"{coincidence.coincidence_rate:.4g} +/- {coincidence.coincidences.uncertainty:.2g} Hz"
        )
        lines.append(f"- Accidentals: {coincidence.accidental_rate:.4g} Hz")
        lines.append(f"- True coincidences: {coincidence.true_coincidence_rate:.4g} Hz")
        lines.append("")
    if figure_path is not None:
        lines.append(f"![Rate plot]({figure_path.name})")
        lines.append("")
    report = output_dir / "report.md"
    report.write_text("\n".join(lines), encoding="utf-8")
    return report

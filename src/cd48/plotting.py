"""Plotting helpers for rate series."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd

from .analysis import moving_average


def generate_plots(frame: pd.DataFrame, output_dir: Path, smoothing: int = 5) -> Path:
    plt = _require_matplotlib()
    output_dir.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    _plot_rates(frame, axes[0], smoothing)
    _plot_distribution(frame, axes[1])

    fig.tight_layout()
    out_path = output_dir / "rates.png"
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def _plot_rates(frame: pd.DataFrame, ax, smoothing: int) -> None:
    for channel, group in frame.groupby("channel"):
        t = group["elapsed_s"].to_numpy(dtype=float)
        rate = group["rate"].to_numpy(dtype=float)
        err = group["uncertainty"].to_numpy(dtype=float)
        ax.errorbar(t, rate, yerr=err, fmt="o", markersize=3, alpha=0.6, label=f"ch{channel}")
        if smoothing > 1 and rate.size >= smoothing:
            ax.plot(t, moving_average(rate, smoothing), linestyle="-", linewidth=1.2)
    ax.set_title("Count rate vs. time")
    ax.set_xlabel("Elapsed (s)")
    ax.set_ylabel("Rate (Hz)")
    ax.legend(loc="best")


def _plot_distribution(frame: pd.DataFrame, ax) -> None:
    for channel, group in frame.groupby("channel"):
        ax.hist(group["rate"].to_numpy(dtype=float), bins="sturges", alpha=0.5, label=f"ch{channel}")
    ax.set_title("Rate distribution")
    ax.set_xlabel("Rate (Hz)")
    ax.set_ylabel("Samples")
    if frame["channel"].nunique() <= 8:
        ax.legend(loc="best")


def _require_matplotlib() -> Any:
    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install cd48[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt

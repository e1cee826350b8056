from __future__ import annotations

from pathlib import Path
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

from .ingestion import MeasurementSeries
from .reconstruction import ReconstructionResult


def plot_reconstruction(
    result: ReconstructionResult,
    output_path: Path,
    fine: MeasurementSeries | None = None,
    sparse: MeasurementSeries | None = None,
) -> None:
    times = np.array([item.time for item in result.points])
    medians = np.array([item.posterior_median for item in result.points])
    lows = np.array([item.ci_low for item in result.points])
    highs = np.array([item.ci_high for item in result.points])
    gap_x = [item.time for item in result.points if item.in_gap]
    lo_level, hi_level = result.summary.interval_levels

    plt.figure(figsize=(11, 5.5))
    plt.fill_between(
        times,
        lows,
        highs,
        color="#9ED9A0",
        alpha=0.35,
        label=f"{lo_level:.0%}-{hi_level:.0%} credibility band",
    )
    plt.plot(times, medians, color="#0E7A0D", lw=1.8, label="Posterior median")

    if fine is not None:
        plt.plot(fine.times, fine.values, color="#0F3557", lw=0.8, alpha=0.7, label="Observed")
    if sparse is not None and len(sparse):
        plt.scatter(sparse.times, sparse.values, color="#B84A00", s=28, zorder=3, label="Discrete reference")
    if gap_x:
        plt.scatter(gap_x, np.interp(gap_x, times, medians), color="#7A0E5C", s=6, zorder=3, label="Gap positions")

    plt.title("Gap reconstruction (DEzs posterior)")
    plt.xlabel("Time")
    plt.ylabel("Value")
    plt.grid(axis="y", alpha=0.22)
    plt.legend()
    plt.tight_layout()

    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=150)
    plt.close()

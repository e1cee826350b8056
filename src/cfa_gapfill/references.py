from __future__ import annotations

from dataclasses import dataclass
import logging

import numpy as np

from .config import ReconstructionConfig
from .context import LikelihoodContext, ReferenceProfile, SparseReference, build_likelihood_context
from .errors import ConfigError, DataError
from .ingestion import MeasurementSeries
from .priors import PriorBounds
from .rolling import align_centered, autocorrelation, extend_linear, rolling_mean, rolling_std

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconstructionInputs:
    """Grid, references and bounds derived from the measured series."""

    grid: np.ndarray
    gapped: np.ndarray
    complete: np.ndarray
    profile: ReferenceProfile
    bounds: PriorBounds
    context: LikelihoodContext


def build_time_grid(times: np.ndarray, thinning_factor: int) -> np.ndarray:
    times = np.asarray(times, dtype=float)
    if times.size < 2:
        raise DataError("At least two observations are needed to build a time grid.")
    step = float(thinning_factor) * float(np.median(np.diff(times)))
    if not step > 0.0:
        raise DataError("Observation times must be strictly increasing.")
    count = int(np.floor((times[-1] - times[0]) / step + 1e-9)) + 1
    if count < 2:
        raise DataError(f"Series span is shorter than one grid step ({step:g}).")
    return times[0] + step * np.arange(count)


def complete_mask(grid: np.ndarray, times: np.ndarray, gap_threshold: float) -> np.ndarray:
    """True where a grid point lies inside the observed span and outside every gap."""
    grid = np.asarray(grid, dtype=float)
    times = np.asarray(times, dtype=float)
    inside = (grid >= times[0]) & (grid <= times[-1])
    if times.size < 2:
        return inside & (grid == times[0])
    right = np.clip(np.searchsorted(times, grid, side="right"), 1, times.size - 1)
    left = right - 1
    wide = (times[right] - times[left]) > gap_threshold
    strictly_between = (grid > times[left]) & (grid < times[right])
    return inside & ~(wide & strictly_between)


def interpolate_gapped(grid: np.ndarray, series: MeasurementSeries, gap_threshold: float) -> np.ndarray:
    """Linear interpolation onto the grid with NaN inside gaps and beyond the data."""
    values = np.interp(grid, series.times, series.values)
    values[~complete_mask(grid, series.times, gap_threshold)] = np.nan
    return values


def _fill_everywhere(values: np.ndarray) -> np.ndarray:
    out = extend_linear(values)
    finite = np.isfinite(out)
    if not finite.any():
        return out
    idx = np.arange(out.size)
    out[~finite] = np.interp(idx[~finite], idx[finite], out[finite])
    return out


def build_reference_profile(gapped: np.ndarray, window: int) -> ReferenceProfile:
    """Centred rolling mean/std of the gapped series, covering every grid point."""
    n = gapped.size
    mean = _fill_everywhere(align_centered(rolling_mean(gapped, window), window, n))
    std = _fill_everywhere(align_centered(rolling_std(gapped, window), window, n))
    if not np.all(np.isfinite(mean)):
        raise DataError(f"Rolling window of {window} points exceeds every observed run; no local mean available.")

    spread = std[np.isfinite(std) & (std > 0.0)]
    if spread.size == 0:
        raise DataError("Observed series has no local spread to derive prior bounds from.")
    # Extrapolated edges can dip negative or vanish.
    std = np.where(np.isfinite(std) & (std > 0.0), std, float(np.median(spread)))
    return ReferenceProfile(mean_ref=mean, std_ref=std)


def build_autocorrelation_reference(gapped: np.ndarray, lag_span: int) -> np.ndarray:
    acf = autocorrelation(gapped, lag_span)
    if not np.any(np.isfinite(acf)):
        raise DataError("Autocorrelation reference contains only missing values.")
    return acf


def prepare_inputs(
    fine: MeasurementSeries,
    sparse: MeasurementSeries,
    config: ReconstructionConfig | None = None,
) -> ReconstructionInputs:
    cfg = (config or ReconstructionConfig()).validated()
    grid = build_time_grid(fine.times, cfg.thinning_factor)
    step = float(np.median(np.diff(grid)))
    window = int(round(cfg.rolling_window_years / step))
    if window > grid.size:
        raise ConfigError(f"Rolling window of {window} points is longer than the {grid.size}-point grid.")
    lag_span = min(cfg.autocorrelation_lag_span, grid.size - 1)
    if lag_span < cfg.autocorrelation_lag_span:
        logger.warning("Autocorrelation lag span reduced from %d to %d to fit the grid", cfg.autocorrelation_lag_span, lag_span)

    complete = complete_mask(grid, fine.times, cfg.gap_threshold_years)
    gapped = interpolate_gapped(grid, fine, cfg.gap_threshold_years)
    profile = build_reference_profile(gapped, window)
    bounds = PriorBounds.from_profile(profile, cfg.prior_width_multiplier)
    acf_reference = build_autocorrelation_reference(gapped, lag_span)
    sparse_reference = SparseReference(times=sparse.times, values=sparse.values).within(grid)

    context = build_likelihood_context(grid, sparse_reference, profile, complete, acf_reference, cfg)
    logger.info(
        "Prepared grid of %d points (step %.3f, rolling window %d points, %d in gaps)",
        grid.size,
        step,
        window,
        int(np.count_nonzero(~complete)),
    )
    return ReconstructionInputs(
        grid=grid,
        gapped=gapped,
        complete=complete,
        profile=profile,
        bounds=bounds,
        context=context,
    )

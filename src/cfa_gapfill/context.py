from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .config import ReconstructionConfig
from .errors import DataError


def validate_time_grid(grid) -> np.ndarray:
    arr = np.asarray(grid, dtype=float)
    if arr.ndim != 1 or arr.size < 2:
        raise DataError("Time grid must be a 1-D sequence of at least two points.")
    if not np.all(np.isfinite(arr)):
        raise DataError("Time grid contains missing or infinite values.")
    if not np.all(np.diff(arr) > 0.0):
        raise DataError("Time grid must be strictly increasing.")
    return arr


@dataclass(frozen=True)
class ReferenceProfile:
    mean_ref: np.ndarray
    std_ref: np.ndarray

    def __post_init__(self) -> None:
        mean = np.asarray(self.mean_ref, dtype=float)
        std = np.asarray(self.std_ref, dtype=float)
        if mean.ndim != 1 or mean.shape != std.shape:
            raise DataError("Reference mean and standard deviation must be 1-D arrays of equal length.")
        object.__setattr__(self, "mean_ref", mean)
        object.__setattr__(self, "std_ref", std)


@dataclass(frozen=True)
class SparseReference:
    times: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        times = np.asarray(self.times, dtype=float)
        values = np.asarray(self.values, dtype=float)
        if times.ndim != 1 or times.shape != values.shape:
            raise DataError("Sparse reference times and values must be 1-D arrays of equal length.")
        if not (np.all(np.isfinite(times)) and np.all(np.isfinite(values))):
            raise DataError("Sparse reference contains missing values.")
        if times.size > 1 and not np.all(np.diff(times) >= 0.0):
            raise DataError("Sparse reference must be sorted by time.")
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "values", values)

    def __len__(self) -> int:
        return int(self.times.size)

    def within(self, grid: np.ndarray) -> "SparseReference":
        """Keep the points whose time lies inside the grid span."""
        keep = (self.times >= grid[0]) & (self.times <= grid[-1])
        return SparseReference(times=self.times[keep], values=self.values[keep])


@dataclass(frozen=True)
class LikelihoodContext:
    """Fixed reference data and error constants a likelihood is scored against."""

    grid: np.ndarray
    sparse: SparseReference
    profile: ReferenceProfile
    complete_mask: np.ndarray
    acf_reference: np.ndarray
    analytic_error_sd: float
    discrete_half_width: float
    rolling_window_years: float
    autocorrelation_sd: float

    @property
    def size(self) -> int:
        return int(self.grid.size)

    @property
    def grid_step(self) -> float:
        return float(np.median(np.diff(self.grid)))

    @property
    def lag_span(self) -> int:
        return int(self.acf_reference.size - 1)

    @property
    def description(self) -> str:
        return (
            f"Reconstruction context: N={self.size} grid points, step={self.grid_step:.3f}, "
            f"{len(self.sparse)} sparse references (Dt={self.discrete_half_width:g}), "
            f"{int(self.complete_mask.sum())} complete positions, ACF lags 0..{self.lag_span}, "
            f"sd={self.analytic_error_sd:g}/{self.autocorrelation_sd:g}."
        )


def build_likelihood_context(
    grid,
    sparse: SparseReference,
    profile: ReferenceProfile,
    complete_mask,
    acf_reference,
    config: ReconstructionConfig | None = None,
) -> LikelihoodContext:
    cfg = (config or ReconstructionConfig()).validated()
    grid = validate_time_grid(grid)
    n = grid.size

    if profile.mean_ref.size != n:
        raise DataError(f"Reference profile length {profile.mean_ref.size} does not match grid length {n}.")
    mask = np.asarray(complete_mask, dtype=bool)
    if mask.shape != grid.shape:
        raise DataError(f"Complete-position mask length {mask.size} does not match grid length {n}.")
    acf = np.asarray(acf_reference, dtype=float)
    if acf.ndim != 1 or acf.size < 1:
        raise DataError("Autocorrelation reference must be a non-empty 1-D array.")
    if not np.any(np.isfinite(acf)):
        raise DataError("Autocorrelation reference contains only missing values.")

    return LikelihoodContext(
        grid=grid,
        sparse=sparse,
        profile=profile,
        complete_mask=mask,
        acf_reference=acf,
        analytic_error_sd=float(cfg.analytic_error_sd),
        discrete_half_width=float(cfg.discrete_half_width_years),
        rolling_window_years=float(cfg.rolling_window_years),
        autocorrelation_sd=float(cfg.autocorrelation_sd),
    )

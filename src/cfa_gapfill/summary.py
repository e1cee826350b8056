from __future__ import annotations

from dataclasses import dataclass
import warnings

import numpy as np

from .config import default_quantile_grid
from .errors import ConfigError, DataError

CREDIBLE_INTERVAL = (0.05, 0.95)


@dataclass(frozen=True)
class PosteriorSummary:
    levels: np.ndarray
    quantiles: np.ndarray  # (levels, parameters)
    sample_count: int

    def at(self, level: float) -> np.ndarray:
        idx = np.flatnonzero(np.isclose(self.levels, level))
        if idx.size == 0:
            raise KeyError(f"Quantile level {level} was not computed.")
        return self.quantiles[int(idx[0])]

    @property
    def median(self) -> np.ndarray:
        return self.at(0.5)

    @property
    def interval_levels(self) -> tuple[float, float]:
        """Levels of the credible band: 0.05 and 0.95, or the grid extremes when absent."""
        lo = CREDIBLE_INTERVAL[0] if np.any(np.isclose(self.levels, CREDIBLE_INTERVAL[0])) else self.levels[0]
        hi = CREDIBLE_INTERVAL[1] if np.any(np.isclose(self.levels, CREDIBLE_INTERVAL[1])) else self.levels[-1]
        return float(lo), float(hi)

    @property
    def lower(self) -> np.ndarray:
        return self.at(self.interval_levels[0])

    @property
    def upper(self) -> np.ndarray:
        return self.at(self.interval_levels[1])


def burn_in_count(draw_count: int, fraction: float) -> int:
    if not 0.0 <= fraction < 1.0:
        raise ConfigError(f"Burn-in fraction must lie in [0, 1), got {fraction!r}.")
    return int(np.floor(draw_count * fraction))


def discard_burn_in(draws: np.ndarray, fraction: float = 0.9) -> np.ndarray:
    """Drop the leading ``fraction`` of every chain's retained draws."""
    draws = np.asarray(draws, dtype=float)
    if draws.ndim != 3:
        raise DataError("Draws must be 3-D (chains x draws x parameters).")
    return draws[:, burn_in_count(draws.shape[1], fraction) :, :]


def pool_draws(draws: np.ndarray) -> np.ndarray:
    """Concatenate chains into one (samples, parameters) sample set."""
    draws = np.asarray(draws, dtype=float)
    return draws.reshape(-1, draws.shape[-1])


def summarize(
    draws: np.ndarray,
    burn_in_fraction: float = 0.9,
    quantile_grid=None,
) -> PosteriorSummary:
    levels = np.asarray(default_quantile_grid() if quantile_grid is None else quantile_grid, dtype=float)
    if levels.ndim != 1 or levels.size == 0:
        raise ConfigError("Quantile grid must be a non-empty 1-D sequence.")
    if np.any((levels < 0.0) | (levels > 1.0)) or np.any(np.diff(levels) <= 0.0):
        raise ConfigError("Quantile grid must be strictly increasing within [0, 1].")

    pooled = pool_draws(discard_burn_in(draws, burn_in_fraction))
    if pooled.shape[0] == 0:
        raise DataError("No draws remain after burn-in; run more iterations or lower the burn-in fraction.")

    with warnings.catch_warnings():
        # All-missing columns are reported as NaN quantiles.
        warnings.simplefilter("ignore", category=RuntimeWarning)
        quantiles = np.nanquantile(pooled, levels, axis=0)
    # Interpolation rounding must not break ordering across levels.
    quantiles = np.fmax.accumulate(quantiles, axis=0)
    return PosteriorSummary(levels=levels, quantiles=quantiles, sample_count=int(pooled.shape[0]))

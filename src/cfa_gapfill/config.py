from __future__ import annotations

from dataclasses import dataclass, field, replace
import math

import numpy as np

from .errors import ConfigError


def default_quantile_grid() -> tuple[float, ...]:
    return tuple(float(round(q, 4)) for q in np.arange(0.05, 0.95 + 1e-9, 0.025))


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConfigError(message)


@dataclass(frozen=True)
class ReconstructionConfig:
    gap_threshold_years: float = 2.0
    thinning_factor: int = 5
    rolling_window_years: float = 20.0
    analytic_error_sd: float = 5.0
    discrete_half_width_years: float = 1.0
    autocorrelation_lag_span: int = 150
    autocorrelation_sd: float = 0.05
    prior_width_multiplier: float = 3.0
    iteration_count: int = 100_000
    burn_in_fraction: float = 0.9
    quantile_grid: tuple[float, ...] = field(default_factory=default_quantile_grid)
    chain_count: int = 3
    random_seed: int = 0
    rhat_threshold: float = 1.1

    def validated(self) -> "ReconstructionConfig":
        _require(self.gap_threshold_years > 0.0, "gap_threshold_years must be positive.")
        _require(int(self.thinning_factor) >= 1, "thinning_factor must be at least 1.")
        _require(self.rolling_window_years > 0.0, "rolling_window_years must be positive.")
        _require(self.analytic_error_sd > 0.0, "analytic_error_sd must be positive.")
        _require(self.discrete_half_width_years >= 0.0, "discrete_half_width_years must be non-negative.")
        _require(int(self.autocorrelation_lag_span) >= 1, "autocorrelation_lag_span must be at least 1.")
        _require(self.autocorrelation_sd > 0.0, "autocorrelation_sd must be positive.")
        _require(
            math.isfinite(self.prior_width_multiplier) and self.prior_width_multiplier >= 0.0,
            "prior_width_multiplier must be a finite non-negative number.",
        )
        _require(int(self.iteration_count) >= 1, "iteration_count must be at least 1.")
        _require(0.0 <= self.burn_in_fraction < 1.0, "burn_in_fraction must lie in [0, 1).")
        _require(int(self.chain_count) >= 1, "chain_count must be at least 1.")
        _require(self.rhat_threshold > 1.0, "rhat_threshold must exceed 1.0.")

        grid = tuple(float(q) for q in self.quantile_grid)
        _require(len(grid) > 0, "quantile_grid must not be empty.")
        _require(all(0.0 <= q <= 1.0 for q in grid), "quantile_grid levels must lie in [0, 1].")
        _require(all(a < b for a, b in zip(grid, grid[1:])), "quantile_grid must be strictly increasing.")
        _require(any(abs(q - 0.5) < 1e-9 for q in grid), "quantile_grid must include the 0.5 level.")

        return replace(
            self,
            thinning_factor=int(self.thinning_factor),
            autocorrelation_lag_span=int(self.autocorrelation_lag_span),
            iteration_count=int(self.iteration_count),
            chain_count=int(self.chain_count),
            random_seed=int(self.random_seed),
            quantile_grid=grid,
        )


@dataclass(frozen=True)
class SamplerSettings:
    """Tuning of the DEzs proposal and bookkeeping schedules."""

    p_snooker: float = 0.1
    p_gamma_one: float = 0.1
    eps_mult: float = 0.2
    eps_add: float = 0.0
    archive_thinning: int = 10
    draw_thinning: int = 10
    workers: int = 1
    progress_every: int = 10_000

    def validated(self) -> "SamplerSettings":
        _require(0.0 <= self.p_snooker <= 1.0, "p_snooker must lie in [0, 1].")
        _require(0.0 <= self.p_gamma_one <= 1.0, "p_gamma_one must lie in [0, 1].")
        _require(0.0 <= self.eps_mult < 1.0, "eps_mult must lie in [0, 1).")
        _require(self.eps_add >= 0.0, "eps_add must be non-negative.")
        _require(int(self.archive_thinning) >= 1, "archive_thinning must be at least 1.")
        _require(int(self.draw_thinning) >= 1, "draw_thinning must be at least 1.")
        _require(int(self.workers) >= 1, "workers must be at least 1.")
        _require(int(self.progress_every) >= 1, "progress_every must be at least 1.")
        return replace(
            self,
            archive_thinning=int(self.archive_thinning),
            draw_thinning=int(self.draw_thinning),
            workers=int(self.workers),
            progress_every=int(self.progress_every),
        )

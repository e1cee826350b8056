from __future__ import annotations

from math import log, pi
import numpy as np

from .context import LikelihoodContext
from .errors import ConfigError, DataError, NumericError
from .rolling import autocorrelation, rolling_mean_full

TERM_NAMES = ("discrete", "local_mean", "autocorrelation")

_LOG_SQRT_2PI = 0.5 * log(2.0 * pi)


def log_normal_density(x, mean, sd):
    z = (np.asarray(x, dtype=float) - mean) / sd
    return -0.5 * z * z - np.log(sd) - _LOG_SQRT_2PI


def _checked(term: str, value: float, detail: str = "") -> float:
    if not np.isfinite(value):
        raise NumericError(term, detail or f"evaluated to {value}")
    return float(value)


class LikelihoodEngine:
    """Three-term log-likelihood of a full-resolution candidate series.

    - discrete: window means of the candidate against sparse references
    - local_mean: rolling mean against the reference profile on complete positions
    - autocorrelation: candidate ACF against the reference ACF

    Scoring is pure; bounds are not checked here.
    """

    def __init__(self, context: LikelihoodContext) -> None:
        self.context = context
        self.size = context.size
        self.error_sd = context.analytic_error_sd
        self.acf_sd = context.autocorrelation_sd

        self._starts, self._stops = self._discrete_windows(context)
        self._sparse_values = context.sparse.values

        self.window = int(round(context.rolling_window_years / context.grid_step))
        if self.window < 1 or self.window > self.size:
            raise ConfigError(
                f"Rolling window of {context.rolling_window_years:g} years spans {self.window} grid points; "
                f"it must lie in [1, {self.size}]."
            )
        self._complete = np.flatnonzero(context.complete_mask)
        if self._complete.size == 0:
            raise DataError("No complete grid positions to compare the local mean against.")
        self._mean_ref = context.profile.mean_ref[self._complete]
        if not np.all(np.isfinite(self._mean_ref)):
            raise DataError("Reference local mean is missing at some complete grid positions.")

        self.lag_span = context.lag_span
        if self.lag_span > self.size - 1:
            raise ConfigError(f"Autocorrelation lag span {self.lag_span} exceeds grid length {self.size} - 1.")
        self._lags = np.flatnonzero(np.isfinite(context.acf_reference))
        self._acf_ref = context.acf_reference[self._lags]

    @staticmethod
    def _discrete_windows(context: LikelihoodContext) -> tuple[np.ndarray, np.ndarray]:
        grid = context.grid
        dt = context.discrete_half_width
        starts = np.empty(len(context.sparse), dtype=np.int64)
        stops = np.empty(len(context.sparse), dtype=np.int64)
        for idx, t_ref in enumerate(context.sparse.times):
            start = int(np.searchsorted(grid, t_ref - dt, side="left"))
            stop = int(np.searchsorted(grid, t_ref + dt, side="right"))
            if stop <= start:
                raise DataError(f"Sparse reference at t={t_ref:g} has no grid point within +/-{dt:g}.")
            starts[idx] = start
            stops[idx] = stop
        return starts, stops

    def _as_candidate(self, theta) -> np.ndarray:
        arr = np.asarray(theta, dtype=float)
        if arr.shape != (self.size,):
            raise DataError(f"Candidate vector must have shape ({self.size},), got {arr.shape}.")
        missing = int(np.count_nonzero(~np.isfinite(arr)))
        if missing:
            raise NumericError("candidate", f"{missing} non-finite value(s) in the candidate series")
        return arr

    def discrete_term(self, theta) -> float:
        theta = self._as_candidate(theta)
        if self._starts.size == 0:
            return 0.0
        cumulative = np.concatenate(([0.0], np.cumsum(theta)))
        window_means = (cumulative[self._stops] - cumulative[self._starts]) / (self._stops - self._starts)
        return _checked("discrete", np.sum(log_normal_density(window_means, self._sparse_values, self.error_sd)))

    def local_mean_term(self, theta) -> float:
        theta = self._as_candidate(theta)
        modeled = rolling_mean_full(theta, self.window)[self._complete]
        missing = int(np.count_nonzero(~np.isfinite(modeled)))
        if missing:
            raise NumericError("local_mean", f"{missing} complete position(s) have no windowed mean")
        return _checked("local_mean", np.sum(log_normal_density(modeled, self._mean_ref, self.error_sd)))

    def autocorrelation_term(self, theta) -> float:
        theta = self._as_candidate(theta)
        modeled = autocorrelation(theta, self.lag_span)[self._lags]
        missing = int(np.count_nonzero(~np.isfinite(modeled)))
        if missing:
            raise NumericError("autocorrelation", f"{missing} lag(s) undefined for the candidate")
        return _checked("autocorrelation", np.sum(log_normal_density(modeled, self._acf_ref, self.acf_sd)))

    def terms(self, theta) -> dict[str, float]:
        return {
            "discrete": self.discrete_term(theta),
            "local_mean": self.local_mean_term(theta),
            "autocorrelation": self.autocorrelation_term(theta),
        }

    def __call__(self, theta) -> float:
        parts = self.terms(theta)
        return parts["discrete"] + parts["local_mean"] + parts["autocorrelation"]

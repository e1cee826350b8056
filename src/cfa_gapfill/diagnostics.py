from __future__ import annotations

from dataclasses import dataclass
import logging
import warnings

import numpy as np

from .errors import ConvergenceWarning

logger = logging.getLogger(__name__)


def gelman_rubin(draws: np.ndarray) -> np.ndarray:
    """
    Gelman & Rubin (1992) potential scale reduction factor per parameter.

    Parameters
    ----------
    draws : ndarray, shape (chains, draws, parameters)
        Post-burn-in draws of every chain.

    Returns
    -------
    ndarray, shape (parameters,)
        R-hat (>= 1 up to sampling noise). Parameters with no spread at all
        (point-mass priors) and runs with fewer than two chains or draws
        give NaN; zero within-chain spread with distinct chain means gives inf.
    """
    x = np.asarray(draws, dtype=float)
    if x.ndim != 3:
        raise ValueError("draws must be 3-D (chains x draws x parameters)")

    m, n, p = x.shape  # m = chains, n = draws per chain
    if n < 2 or m < 2:
        return np.full(p, np.nan)

    chain_means = np.mean(x, axis=1)
    chain_vars = np.var(x, axis=1, ddof=1)

    W = np.mean(chain_vars, axis=0)  # within-chain variance
    B = n * np.var(chain_means, axis=0, ddof=1)  # between-chain variance
    var_hat = ((n - 1) / n) * W + (B / n)  # marginal posterior variance estimate

    rhat = np.full(p, np.nan)
    positive = W > 0.0
    rhat[positive] = np.sqrt(var_hat[positive] / W[positive])
    rhat[~positive & (B > 0.0)] = np.inf
    return rhat


@dataclass(frozen=True)
class ConvergenceReport:
    rhat: np.ndarray
    threshold: float
    max_rhat: float
    unconverged: int

    @property
    def assessed(self) -> bool:
        return bool(np.any(~np.isnan(self.rhat)))

    @property
    def converged(self) -> bool:
        return self.assessed and self.unconverged == 0


def check_convergence(rhat: np.ndarray, threshold: float = 1.1) -> ConvergenceReport:
    """Summarise R-hat and warn when any parameter exceeds ``threshold``.

    Also warns when no R-hat is defined (a single chain or fewer than two
    draws), in which case the report is neither assessed nor converged.
    Advisory only: nothing here extends or stops sampling.
    """
    rhat = np.asarray(rhat, dtype=float)
    defined = rhat[~np.isnan(rhat)]
    max_rhat = float(defined.max()) if defined.size else float("nan")
    unconverged = int(np.count_nonzero(defined > threshold))
    if defined.size == 0:
        message = f"R-hat undefined for all {rhat.size} parameters; convergence was not assessed."
        logger.warning(message)
        warnings.warn(message, ConvergenceWarning, stacklevel=2)
    if unconverged:
        message = f"R-hat above {threshold:g} for {unconverged} of {rhat.size} parameters (max {max_rhat:.3f})."
        logger.warning(message)
        warnings.warn(message, ConvergenceWarning, stacklevel=2)
    return ConvergenceReport(rhat=rhat, threshold=threshold, max_rhat=max_rhat, unconverged=unconverged)

from __future__ import annotations

import numpy as np
import pytest

from cfa_gapfill.config import ReconstructionConfig
from cfa_gapfill.context import ReferenceProfile, SparseReference, build_likelihood_context
from cfa_gapfill.ingestion import series_from_arrays
from cfa_gapfill.likelihood import LikelihoodEngine
from cfa_gapfill.priors import PriorBounds


class CountingLikelihood:
    """Isotropic Gaussian log-likelihood that records how often it is called."""

    def __init__(self, center: np.ndarray, scale: float = 1.0) -> None:
        self.center = np.asarray(center, dtype=float)
        self.scale = scale
        self.calls = 0

    def __call__(self, theta: np.ndarray) -> float:
        self.calls += 1
        z = (np.asarray(theta) - self.center) / self.scale
        return float(-0.5 * np.dot(z, z))


@pytest.fixture
def small_config() -> ReconstructionConfig:
    return ReconstructionConfig(
        rolling_window_years=2.0,
        discrete_half_width_years=0.5,
        autocorrelation_lag_span=2,
        analytic_error_sd=5.0,
    )


@pytest.fixture
def boundary_context(small_config):
    grid = np.arange(5.0)
    profile = ReferenceProfile(mean_ref=np.full(5, 10.0), std_ref=np.full(5, 5.0 / 3.0))
    sparse = SparseReference(times=[2.0], values=[10.0])
    return build_likelihood_context(grid, sparse, profile, np.ones(5, dtype=bool), np.array([1.0, 0.5, 0.1]), small_config)


@pytest.fixture
def boundary_engine(boundary_context) -> LikelihoodEngine:
    return LikelihoodEngine(boundary_context)


@pytest.fixture
def boundary_bounds() -> PriorBounds:
    return PriorBounds(low=np.full(5, 5.0), up=np.full(5, 15.0))


@pytest.fixture
def gaussian_problem():
    center = np.linspace(-1.0, 1.0, 6)
    bounds = PriorBounds(low=center - 4.0, up=center + 4.0)
    return CountingLikelihood(center), bounds


@pytest.fixture
def gapped_series():
    rng = np.random.default_rng(3)
    times = np.arange(0.0, 200.0, 1.0)
    values = 50.0 + 10.0 * np.sin(2.0 * np.pi * times / 50.0) + rng.normal(0.0, 1.0, times.size)
    keep = (times <= 80.0) | (times >= 100.0)
    fine = series_from_arrays(times[keep], values[keep])
    sparse_times = np.arange(0.0, 200.0, 20.0)
    sparse = series_from_arrays(sparse_times, 50.0 + 10.0 * np.sin(2.0 * np.pi * sparse_times / 50.0))
    return fine, sparse

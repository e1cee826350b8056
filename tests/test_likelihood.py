from __future__ import annotations

from math import log, pi

import numpy as np
import pytest

from cfa_gapfill.config import ReconstructionConfig
from cfa_gapfill.context import ReferenceProfile, SparseReference, build_likelihood_context
from cfa_gapfill.errors import ConfigError, DataError, NumericError
from cfa_gapfill.likelihood import LikelihoodEngine, log_normal_density
from cfa_gapfill.rolling import autocorrelation, rolling_mean_full


def _engine(theta, small_config, **overrides):
    grid = np.arange(float(theta.size))
    profile = ReferenceProfile(mean_ref=rolling_mean_full(theta, 2), std_ref=np.ones(theta.size))
    sparse = overrides.pop("sparse", SparseReference(times=[2.0], values=[float(theta[2])]))
    acf = overrides.pop("acf", autocorrelation(theta, 2))
    complete = overrides.pop("complete", np.ones(theta.size, dtype=bool))
    context = build_likelihood_context(grid, sparse, profile, complete, acf, small_config)
    return LikelihoodEngine(context)


def test_log_normal_density_at_mean():
    assert float(log_normal_density(10.0, 10.0, 5.0)) == pytest.approx(-log(5.0) - 0.5 * log(2.0 * pi))


def test_boundary_discrete_term_at_reference_value(boundary_engine):
    value = boundary_engine.discrete_term(np.full(5, 10.0))
    assert np.isfinite(value)
    assert value == pytest.approx(float(log_normal_density(10.0, 10.0, 5.0)))


def test_discrete_term_averages_the_window():
    theta = np.array([0.0, 1.0, 4.0, 9.0, 16.0])
    cfg = ReconstructionConfig(
        rolling_window_years=2.0, discrete_half_width_years=1.0, autocorrelation_lag_span=2, analytic_error_sd=5.0
    )
    engine = _engine(theta, cfg, sparse=SparseReference(times=[2.0], values=[3.0]))
    expected = float(log_normal_density((1.0 + 4.0 + 9.0) / 3.0, 3.0, 5.0))
    assert engine.discrete_term(theta) == pytest.approx(expected)


def test_constant_candidate_fails_autocorrelation_explicitly(boundary_engine):
    with pytest.raises(NumericError) as info:
        boundary_engine(np.full(5, 10.0))
    assert info.value.term == "autocorrelation"


def test_repeat_evaluation_is_bit_identical(boundary_engine):
    theta = 10.0 + np.sin(np.arange(5.0))
    first = boundary_engine(theta)
    second = boundary_engine(theta)
    assert first == second
    assert np.isfinite(first)


def test_total_is_sum_of_terms(boundary_engine):
    theta = np.array([9.0, 11.0, 10.5, 8.0, 12.0])
    parts = boundary_engine.terms(theta)
    assert set(parts) == {"discrete", "local_mean", "autocorrelation"}
    assert boundary_engine(theta) == parts["discrete"] + parts["local_mean"] + parts["autocorrelation"]


def test_local_mean_term_matches_reference_profile(small_config):
    theta = np.arange(5.0)
    engine = _engine(theta, small_config)
    assert engine.window == 2
    assert engine.local_mean_term(theta) == pytest.approx(5 * float(log_normal_density(0.0, 0.0, 5.0)))


def test_local_mean_term_uses_complete_positions_only(small_config):
    theta = np.arange(5.0)
    complete = np.array([True, True, False, False, True])
    engine = _engine(theta, small_config, complete=complete)
    assert engine.local_mean_term(theta) == pytest.approx(3 * float(log_normal_density(0.0, 0.0, 5.0)))
    shifted = theta.copy()
    shifted[1] += 1.0
    assert engine.local_mean_term(shifted) < engine.local_mean_term(theta)


def test_autocorrelation_term_matches_reference(small_config):
    theta = np.array([1.0, 3.0, 2.0, 5.0, 4.0])
    engine = _engine(theta, small_config)
    assert engine.autocorrelation_term(theta) == pytest.approx(3 * float(log_normal_density(0.0, 0.0, 0.05)))


def test_missing_reference_lags_are_skipped(small_config):
    theta = np.array([1.0, 3.0, 2.0, 5.0, 4.0])
    acf = autocorrelation(theta, 2)
    acf[1] = np.nan
    engine = _engine(theta, small_config, acf=acf)
    assert engine.autocorrelation_term(theta) == pytest.approx(2 * float(log_normal_density(0.0, 0.0, 0.05)))


def test_sparse_reference_without_grid_window_is_data_error():
    cfg = ReconstructionConfig(rolling_window_years=2.0, discrete_half_width_years=0.2, autocorrelation_lag_span=2)
    with pytest.raises(DataError):
        _engine(np.arange(5.0), cfg, sparse=SparseReference(times=[2.5], values=[1.0]))


def test_all_missing_autocorrelation_reference_is_data_error(small_config):
    with pytest.raises(DataError):
        _engine(np.arange(5.0), small_config, acf=np.full(3, np.nan))


def test_no_complete_positions_is_data_error(small_config):
    with pytest.raises(DataError):
        _engine(np.arange(5.0), small_config, complete=np.zeros(5, dtype=bool))


def test_window_longer_than_grid_is_config_error():
    cfg = ReconstructionConfig(rolling_window_years=10.0, discrete_half_width_years=0.5, autocorrelation_lag_span=2)
    with pytest.raises(ConfigError):
        _engine(np.arange(5.0), cfg)


def test_non_increasing_grid_is_data_error(small_config):
    profile = ReferenceProfile(mean_ref=np.zeros(3), std_ref=np.ones(3))
    with pytest.raises(DataError):
        build_likelihood_context(
            [0.0, 2.0, 1.0], SparseReference([], []), profile, np.ones(3, dtype=bool), [1.0, 0.5], small_config
        )


def test_bad_candidates(boundary_engine):
    with pytest.raises(DataError):
        boundary_engine(np.zeros(4))
    with pytest.raises(NumericError):
        boundary_engine(np.full(5, np.nan))


def test_candidate_with_missing_value_is_rejected(boundary_engine):
    theta = 10.0 + np.sin(np.arange(5.0))
    theta[4] = np.nan
    for score in (boundary_engine, boundary_engine.local_mean_term, boundary_engine.autocorrelation_term):
        with pytest.raises(NumericError) as info:
            score(theta)
        assert info.value.term == "candidate"
    theta[4] = np.inf
    with pytest.raises(NumericError):
        boundary_engine.discrete_term(theta)

from __future__ import annotations

import numpy as np
import pytest

from cfa_gapfill.errors import ConfigError, DataError
from cfa_gapfill.summary import discard_burn_in, pool_draws, summarize


def test_burn_in_discards_leading_fraction_per_chain():
    draws = np.arange(2 * 10 * 1, dtype=float).reshape(2, 10, 1)
    kept = discard_burn_in(draws, 0.9)
    assert kept.shape == (2, 1, 1)
    np.testing.assert_array_equal(kept[:, 0, 0], [9.0, 19.0])
    assert discard_burn_in(draws, 0.0).shape == (2, 10, 1)
    with pytest.raises(ConfigError):
        discard_burn_in(draws, 1.0)


def test_pool_concatenates_chains():
    draws = np.arange(12.0).reshape(2, 3, 2)
    pooled = pool_draws(draws)
    assert pooled.shape == (6, 2)
    np.testing.assert_array_equal(pooled[3], [6.0, 7.0])


def test_default_grid_and_band():
    rng = np.random.default_rng(0)
    draws = rng.normal(loc=[0.0, 10.0, -5.0], scale=1.0, size=(3, 4000, 3))
    summary = summarize(draws, burn_in_fraction=0.5)
    assert summary.levels.size == 37
    assert summary.levels[0] == pytest.approx(0.05)
    assert summary.levels[-1] == pytest.approx(0.95)
    assert summary.sample_count == 6000
    np.testing.assert_allclose(summary.median, [0.0, 10.0, -5.0], atol=0.1)
    np.testing.assert_allclose(summary.upper - summary.lower, 2 * 1.645, atol=0.15)


def test_quantiles_monotone_in_level():
    rng = np.random.default_rng(4)
    draws = rng.standard_cauchy(size=(2, 300, 25))
    draws[0, ::7, 3] = np.nan
    summary = summarize(draws, burn_in_fraction=0.0)
    assert np.all(np.diff(summary.quantiles, axis=0) >= 0.0)


def test_missing_entries_ignored():
    draws = np.array([[[1.0], [np.nan], [3.0]], [[np.nan], [5.0], [2.0]]])
    summary = summarize(draws, burn_in_fraction=0.0, quantile_grid=[0.5])
    assert summary.median[0] == pytest.approx(2.5)


def test_nothing_left_after_burn_in():
    with pytest.raises(DataError):
        summarize(np.zeros((2, 0, 3)))


def test_bad_quantile_grid():
    with pytest.raises(ConfigError):
        summarize(np.zeros((1, 5, 1)), quantile_grid=[0.5, 0.2])


def test_credible_band_stays_at_five_and_ninety_five_percent_on_wider_grid():
    draws = np.random.default_rng(5).normal(size=(2, 2000, 2))
    wide = tuple(np.round(np.arange(0.025, 0.976, 0.025), 3))
    summary = summarize(draws, burn_in_fraction=0.0, quantile_grid=wide)
    assert summary.levels[0] == pytest.approx(0.025)
    assert summary.interval_levels == pytest.approx((0.05, 0.95))
    np.testing.assert_array_equal(summary.lower, summary.at(0.05))
    np.testing.assert_array_equal(summary.upper, summary.at(0.95))

    coarse = summarize(draws, burn_in_fraction=0.0, quantile_grid=(0.1, 0.5, 0.9))
    assert coarse.interval_levels == pytest.approx((0.1, 0.9))
    np.testing.assert_array_equal(coarse.lower, coarse.quantiles[0])

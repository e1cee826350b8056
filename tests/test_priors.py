from __future__ import annotations

import numpy as np
import pytest

from cfa_gapfill.context import ReferenceProfile
from cfa_gapfill.errors import ConfigError, DataError
from cfa_gapfill.priors import PriorBounds


def test_bounds_from_profile_use_multiplier():
    profile = ReferenceProfile(mean_ref=np.array([10.0, 20.0, 30.0]), std_ref=np.array([1.0, 0.0, 2.0]))
    bounds = PriorBounds.from_profile(profile, k=3.0)
    np.testing.assert_allclose(bounds.low, [7.0, 20.0, 24.0])
    np.testing.assert_allclose(bounds.up, [13.0, 20.0, 36.0])
    assert np.all(bounds.low <= bounds.up)
    np.testing.assert_array_equal(bounds.free_mask, [True, False, True])


def test_default_multiplier_is_three():
    profile = ReferenceProfile(mean_ref=np.zeros(2), std_ref=np.ones(2))
    np.testing.assert_allclose(PriorBounds.from_profile(profile).up, [3.0, 3.0])


def test_lower_above_upper_rejected():
    with pytest.raises(ConfigError):
        PriorBounds(low=np.array([0.0, 2.0]), up=np.array([1.0, 1.0]))


def test_negative_multiplier_rejected():
    profile = ReferenceProfile(mean_ref=np.zeros(2), std_ref=np.ones(2))
    with pytest.raises(ConfigError):
        PriorBounds.from_profile(profile, k=-1.0)


def test_missing_bound_is_data_error():
    with pytest.raises(DataError):
        PriorBounds(low=np.array([0.0, np.nan]), up=np.array([1.0, 1.0]))


def test_contains_checks_every_coordinate(boundary_bounds):
    assert boundary_bounds.contains(np.full(5, 10.0))
    assert boundary_bounds.contains(np.full(5, 15.0))
    outside = np.full(5, 10.0)
    outside[3] = 20.0
    assert not boundary_bounds.contains(outside)
    assert not boundary_bounds.contains(np.full(5, np.nan))
    assert not boundary_bounds.contains(np.full(4, 10.0))


def test_uniform_samples_stay_in_box_including_point_masses():
    bounds = PriorBounds(low=np.array([0.0, 5.0, -1.0]), up=np.array([1.0, 5.0, 1.0]))
    draws = bounds.sample_uniform(np.random.default_rng(0), 500)
    assert draws.shape == (500, 3)
    assert np.all(draws >= bounds.low) and np.all(draws <= bounds.up)
    assert np.all(draws[:, 1] == 5.0)

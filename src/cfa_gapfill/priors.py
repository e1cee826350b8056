from __future__ import annotations

from dataclasses import dataclass
import math

import numpy as np

from .context import ReferenceProfile
from .errors import ConfigError, DataError


@dataclass(frozen=True)
class PriorBounds:
    """Per-grid-point box of a flat prior.

    Zero-width dimensions are point masses; the sampler leaves them untouched.
    """

    low: np.ndarray
    up: np.ndarray

    def __post_init__(self) -> None:
        low = np.asarray(self.low, dtype=float)
        up = np.asarray(self.up, dtype=float)
        if low.ndim != 1 or low.shape != up.shape:
            raise ConfigError("Prior bounds must be 1-D arrays of equal length.")
        if low.size == 0:
            raise ConfigError("Prior bounds must cover at least one parameter.")
        if not (np.all(np.isfinite(low)) and np.all(np.isfinite(up))):
            raise DataError("Prior bounds contain missing or infinite values.")
        bad = np.flatnonzero(low > up)
        if bad.size:
            raise ConfigError(f"Lower bound exceeds upper bound at {bad.size} parameter(s), first index {int(bad[0])}.")
        object.__setattr__(self, "low", low)
        object.__setattr__(self, "up", up)

    @classmethod
    def from_profile(cls, profile: ReferenceProfile, k: float = 3.0) -> "PriorBounds":
        if not (math.isfinite(k) and k >= 0.0):
            raise ConfigError(f"Prior width multiplier must be finite and non-negative, got {k!r}.")
        std = np.asarray(profile.std_ref, dtype=float)
        if np.any(std < 0.0):
            raise DataError("Reference standard deviation must be non-negative.")
        mean = np.asarray(profile.mean_ref, dtype=float)
        return cls(low=mean - k * std, up=mean + k * std)

    @property
    def size(self) -> int:
        return int(self.low.size)

    @property
    def width(self) -> np.ndarray:
        return self.up - self.low

    @property
    def free_mask(self) -> np.ndarray:
        return self.width > 0.0

    def contains(self, theta: np.ndarray) -> bool:
        theta = np.asarray(theta, dtype=float)
        if theta.shape != self.low.shape:
            return False
        return bool(np.all((theta >= self.low) & (theta <= self.up)))

    def sample_uniform(self, rng: np.random.Generator, count: int) -> np.ndarray:
        draws = self.low + rng.random((count, self.size)) * self.width
        return np.minimum(draws, self.up)

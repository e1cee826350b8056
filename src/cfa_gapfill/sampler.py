from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Protocol
import logging
import math

import numpy as np

from .archive import HistoryArchive, draw_rows
from .checkpoint import SamplerState, save_checkpoint
from .config import SamplerSettings
from .errors import ConfigError, NumericError
from .priors import PriorBounds

logger = logging.getLogger(__name__)

MIN_ARCHIVE_SIZE = 3
SNOOKER_GAMMA_RANGE = (1.2, 2.2)


class CancelFlag(Protocol):
    def is_set(self) -> bool: ...


class DEzsSampler:
    """Differential-evolution MCMC with snooker updates and a shared past-state archive.

    Proposals for each chain are built from states drawn out of the archive;
    the archive grows with the chains' current states every
    ``archive_thinning`` iterations. The prior is flat inside ``bounds`` so
    any proposal leaving the box is rejected before the likelihood is called.
    """

    def __init__(
        self,
        log_likelihood: Callable[[np.ndarray], float],
        bounds: PriorBounds,
        chain_count: int = 3,
        settings: SamplerSettings | None = None,
    ) -> None:
        if int(chain_count) < 1:
            raise ConfigError("At least one chain is required.")
        self.log_likelihood = log_likelihood
        self.bounds = bounds
        self.chain_count = int(chain_count)
        self.settings = (settings or SamplerSettings()).validated()
        self.free = bounds.free_mask
        self.free_dims = int(np.count_nonzero(self.free))
        self.gamma = 2.38 / math.sqrt(2.0 * max(1, self.free_dims))

    # -- setup ---------------------------------------------------------------

    def initialize(self, seed: int | None = None) -> SamplerState:
        children = np.random.SeedSequence(seed).spawn(self.chain_count + 1)
        rngs = [np.random.default_rng(child) for child in children[: self.chain_count]]
        positions = np.vstack([self.bounds.sample_uniform(rng, 1) for rng in rngs])
        log_likelihoods = np.array(
            [self._evaluate(positions[chain], chain, 0) for chain in range(self.chain_count)], dtype=float
        )

        archive = HistoryArchive.from_rows(positions)
        extra = MIN_ARCHIVE_SIZE - self.chain_count
        if extra > 0:
            archive.extend(self.bounds.sample_uniform(np.random.default_rng(children[-1]), extra))

        logger.info(
            "Initialised %d chain(s) over %d parameters (%d free), archive size %d",
            self.chain_count,
            self.bounds.size,
            self.free_dims,
            len(archive),
        )
        return SamplerState(positions=positions, log_likelihoods=log_likelihoods, archive=archive, rngs=rngs)

    def _evaluate(self, theta: np.ndarray, chain: int, iteration: int) -> float:
        try:
            return float(self.log_likelihood(theta))
        except NumericError as exc:
            raise exc.located(chain, iteration) from exc

    # -- proposals -----------------------------------------------------------

    def _differential_move(self, x: np.ndarray, rng: np.random.Generator, rows: np.ndarray) -> np.ndarray:
        z1, z2 = draw_rows(rows, rng, 2)
        cfg = self.settings
        gamma = 1.0 if rng.random() < cfg.p_gamma_one else self.gamma
        scale = gamma * (1.0 + rng.uniform(-cfg.eps_mult, cfg.eps_mult, size=x.size))
        step = scale * (z1 - z2)
        if cfg.eps_add > 0.0:
            step = step + rng.normal(0.0, cfg.eps_add, size=x.size)
        return np.where(self.free, x + step, x)

    def _snooker_move(
        self, x: np.ndarray, rng: np.random.Generator, rows: np.ndarray
    ) -> tuple[np.ndarray, float] | None:
        z, z1, z2 = draw_rows(rows, rng, 3)
        direction = x - z
        norm2 = float(np.dot(direction, direction))
        if norm2 == 0.0:
            return None
        gamma = rng.uniform(*SNOOKER_GAMMA_RANGE)
        shift = (np.dot(z1, direction) - np.dot(z2, direction)) / norm2
        candidate = np.where(self.free, x + gamma * shift * direction, x)
        distance = float(np.linalg.norm(candidate - z))
        if distance == 0.0:
            return None
        log_jacobian = (self.free_dims - 1) * (math.log(distance) - 0.5 * math.log(norm2))
        return candidate, log_jacobian

    def propose(
        self, x: np.ndarray, rng: np.random.Generator, rows: np.ndarray
    ) -> tuple[np.ndarray, float] | None:
        """Return ``(candidate, log_jacobian)`` or None for a null move."""
        if rng.random() < self.settings.p_snooker:
            return self._snooker_move(x, rng, rows)
        return self._differential_move(x, rng, rows), 0.0

    def step_chain(
        self,
        chain: int,
        x: np.ndarray,
        log_likelihood: float,
        rng: np.random.Generator,
        rows: np.ndarray,
        iteration: int,
    ) -> tuple[np.ndarray, float, bool]:
        proposal = self.propose(x, rng, rows)
        if proposal is None:
            return x, log_likelihood, False
        candidate, log_jacobian = proposal
        if not self.bounds.contains(candidate):
            return x, log_likelihood, False

        candidate_ll = self._evaluate(candidate, chain, iteration)
        log_ratio = candidate_ll - log_likelihood + log_jacobian
        if log_ratio >= 0.0 or rng.random() < math.exp(log_ratio):
            return candidate, candidate_ll, True
        return x, log_likelihood, False

    # -- driver --------------------------------------------------------------

    def _iterate(self, state: SamplerState, executor: ThreadPoolExecutor | None) -> None:
        rows = state.archive.snapshot()
        iteration = state.iteration + 1
        args = [
            (chain, state.positions[chain], float(state.log_likelihoods[chain]), state.rngs[chain], rows, iteration)
            for chain in range(state.chain_count)
        ]
        if executor is None:
            results = [self.step_chain(*item) for item in args]
        else:
            futures = [executor.submit(self.step_chain, *item) for item in args]
            results = [future.result() for future in futures]

        for chain, (x, ll, accepted) in enumerate(results):
            state.positions[chain] = x
            state.log_likelihoods[chain] = ll
            state.proposed[chain] += 1
            if accepted:
                state.accepted[chain] += 1
        state.iteration = iteration

        if iteration % self.settings.archive_thinning == 0:
            state.archive.extend(state.positions.copy())
        if iteration % self.settings.draw_thinning == 0:
            state.draw_records.append(state.positions.copy())

    def _check_state(self, state: SamplerState) -> None:
        expected = (self.chain_count, self.bounds.size)
        if state.positions.shape != expected:
            raise ConfigError(f"Sampler state has shape {state.positions.shape}, expected {expected}.")
        if state.archive.dimension != self.bounds.size:
            raise ConfigError("Archive dimension does not match the parameter count.")

    def run(
        self,
        iterations: int,
        state: SamplerState | None = None,
        seed: int | None = None,
        cancel: CancelFlag | None = None,
        checkpoint_path: Path | None = None,
        checkpoint_every: int | None = None,
    ) -> SamplerState:
        """Advance every chain by ``iterations`` steps.

        Passing the state returned by a previous call (or a loaded checkpoint)
        continues that run; otherwise a fresh state is drawn from ``seed``.
        The cancel flag is polled between iterations; a cancelled run returns
        its state with ``cancelled`` set and can be resumed like any other.
        """
        if int(iterations) < 0:
            raise ConfigError("Iteration count must be non-negative.")
        if checkpoint_every is not None and int(checkpoint_every) < 1:
            raise ConfigError("checkpoint_every must be at least 1.")
        if state is None:
            state = self.initialize(seed)
        else:
            self._check_state(state)
            state.cancelled = False

        workers = min(self.settings.workers, self.chain_count)
        executor = ThreadPoolExecutor(max_workers=workers) if workers > 1 else None
        target = state.iteration + int(iterations)
        try:
            while state.iteration < target:
                if cancel is not None and cancel.is_set():
                    state.cancelled = True
                    logger.warning("Sampling cancelled at iteration %d", state.iteration)
                    break
                self._iterate(state, executor)
                if checkpoint_path is not None and checkpoint_every and state.iteration % checkpoint_every == 0:
                    save_checkpoint(checkpoint_path, state)
                if state.iteration % self.settings.progress_every == 0:
                    logger.info(
                        "Iteration %d/%d: acceptance %.3f, archive size %d, best log-likelihood %.3f",
                        state.iteration,
                        target,
                        float(np.mean(state.acceptance_rates)),
                        len(state.archive),
                        float(np.max(state.log_likelihoods)),
                    )
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        if checkpoint_path is not None:
            save_checkpoint(checkpoint_path, state)
        return state

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import logging

import numpy as np

from .checkpoint import SamplerState
from .config import ReconstructionConfig, SamplerSettings
from .diagnostics import ConvergenceReport, check_convergence, gelman_rubin
from .ingestion import MeasurementSeries
from .likelihood import LikelihoodEngine
from .references import ReconstructionInputs, prepare_inputs
from .sampler import CancelFlag, DEzsSampler
from .summary import PosteriorSummary, discard_burn_in, summarize

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconstructedPoint:
    time: float
    observed_value: float | None
    posterior_median: float
    ci_low: float
    ci_high: float
    in_gap: bool


@dataclass(frozen=True)
class ReconstructionResult:
    inputs: ReconstructionInputs
    summary: PosteriorSummary
    convergence: ConvergenceReport
    state: SamplerState
    points: list[ReconstructedPoint]

    @property
    def times(self) -> np.ndarray:
        return self.inputs.grid

    @property
    def values(self) -> np.ndarray:
        return self.summary.median


def build_points(inputs: ReconstructionInputs, summary: PosteriorSummary) -> list[ReconstructedPoint]:
    output: list[ReconstructedPoint] = []
    for idx, time in enumerate(inputs.grid):
        observed = inputs.gapped[idx]
        output.append(
            ReconstructedPoint(
                time=float(time),
                observed_value=float(observed) if np.isfinite(observed) else None,
                posterior_median=float(summary.median[idx]),
                ci_low=float(summary.lower[idx]),
                ci_high=float(summary.upper[idx]),
                in_gap=not bool(inputs.complete[idx]),
            )
        )
    return output


def reconstruct(
    fine: MeasurementSeries,
    sparse: MeasurementSeries,
    config: ReconstructionConfig | None = None,
    settings: SamplerSettings | None = None,
    state: SamplerState | None = None,
    cancel: CancelFlag | None = None,
    checkpoint_path: Path | None = None,
    checkpoint_every: int | None = None,
) -> ReconstructionResult:
    """Sample gap-filled reconstructions of ``fine`` and summarise them.

    A ``state`` from an earlier (checkpointed or cancelled) run is continued
    until it has completed ``config.iteration_count`` iterations in total.
    """
    cfg = (config or ReconstructionConfig()).validated()
    inputs = prepare_inputs(fine, sparse, cfg)
    logger.info(inputs.context.description)

    engine = LikelihoodEngine(inputs.context)
    sampler = DEzsSampler(engine, inputs.bounds, chain_count=cfg.chain_count, settings=settings)
    remaining = cfg.iteration_count if state is None else max(0, cfg.iteration_count - state.iteration)
    state = sampler.run(
        remaining,
        state=state,
        seed=cfg.random_seed,
        cancel=cancel,
        checkpoint_path=checkpoint_path,
        checkpoint_every=checkpoint_every,
    )
    if state.cancelled:
        logger.warning("Summarising a cancelled run after %d of %d iterations", state.iteration, cfg.iteration_count)

    draws = state.draws
    summary = summarize(draws, burn_in_fraction=cfg.burn_in_fraction, quantile_grid=cfg.quantile_grid)
    convergence = check_convergence(gelman_rubin(discard_burn_in(draws, cfg.burn_in_fraction)), cfg.rhat_threshold)
    logger.info(
        "Summarised %d posterior samples; acceptance %.3f, max R-hat %.3f",
        summary.sample_count,
        float(np.mean(state.acceptance_rates)),
        convergence.max_rhat,
    )
    return ReconstructionResult(
        inputs=inputs,
        summary=summary,
        convergence=convergence,
        state=state,
        points=build_points(inputs, summary),
    )

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import json
import logging

import numpy as np

from .archive import HistoryArchive

logger = logging.getLogger(__name__)


@dataclass
class SamplerState:
    """Everything needed to continue a DEzs run exactly where it stopped."""

    positions: np.ndarray
    log_likelihoods: np.ndarray
    archive: HistoryArchive
    rngs: list[np.random.Generator]
    iteration: int = 0
    accepted: np.ndarray | None = None
    proposed: np.ndarray | None = None
    draw_records: list[np.ndarray] = field(default_factory=list)
    cancelled: bool = False

    def __post_init__(self) -> None:
        chains = self.positions.shape[0]
        if self.accepted is None:
            self.accepted = np.zeros(chains, dtype=np.int64)
        if self.proposed is None:
            self.proposed = np.zeros(chains, dtype=np.int64)

    @property
    def chain_count(self) -> int:
        return int(self.positions.shape[0])

    @property
    def dimension(self) -> int:
        return int(self.positions.shape[1])

    @property
    def draws(self) -> np.ndarray:
        """Retained draws shaped (chains, draws, parameters)."""
        if not self.draw_records:
            return np.empty((self.chain_count, 0, self.dimension))
        return np.stack(self.draw_records, axis=1)

    @property
    def acceptance_rates(self) -> np.ndarray:
        rates = np.zeros(self.chain_count)
        np.divide(self.accepted, self.proposed, out=rates, where=self.proposed > 0)
        return rates


def save_checkpoint(path: Path, state: SamplerState) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    rng_states = json.dumps([rng.bit_generator.state for rng in state.rngs])
    tmp_path = path.with_name(path.name + ".tmp")
    with tmp_path.open("wb") as handle:
        np.savez(
            handle,
            positions=state.positions,
            log_likelihoods=state.log_likelihoods,
            archive=np.asarray(state.archive.snapshot()),
            draws=state.draws,
            iteration=np.array(state.iteration, dtype=np.int64),
            accepted=state.accepted,
            proposed=state.proposed,
            rng_states=np.array(rng_states),
        )
    tmp_path.replace(path)
    logger.info("Checkpoint at iteration %d written to %s", state.iteration, path)
    return path


def _restore_generator(saved: dict) -> np.random.Generator:
    bit_generator = getattr(np.random, saved["bit_generator"])()
    bit_generator.state = saved
    return np.random.Generator(bit_generator)


def load_checkpoint(path: Path) -> SamplerState:
    with np.load(Path(path), allow_pickle=False) as data:
        draws = data["draws"]
        state = SamplerState(
            positions=data["positions"].copy(),
            log_likelihoods=data["log_likelihoods"].copy(),
            archive=HistoryArchive.from_rows(data["archive"]),
            rngs=[_restore_generator(item) for item in json.loads(str(data["rng_states"]))],
            iteration=int(data["iteration"]),
            accepted=data["accepted"].copy(),
            proposed=data["proposed"].copy(),
            draw_records=[draws[:, k, :].copy() for k in range(draws.shape[1])],
        )
    logger.info("Resuming from checkpoint %s at iteration %d", path, state.iteration)
    return state

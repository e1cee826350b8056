from __future__ import annotations


class ReconstructionError(Exception):
    """Base class for failures surfaced by the reconstruction pipeline."""


class DataError(ReconstructionError, ValueError):
    """Input series or references cannot support a likelihood evaluation."""


class ConfigError(ReconstructionError, ValueError):
    """A configuration value is out of its admissible range."""


class NumericError(ReconstructionError, ArithmeticError):
    """A likelihood term evaluated to NaN or infinity.

    ``term`` names the misfit term; ``chain`` and ``iteration`` are filled in
    by the sampler when the failure happens inside a run.
    """

    def __init__(self, term: str, detail: str = "", chain: int | None = None, iteration: int | None = None) -> None:
        self.term = term
        self.detail = detail
        self.chain = chain
        self.iteration = iteration
        super().__init__(self._message())

    def _message(self) -> str:
        where = ""
        if self.chain is not None:
            where = f" (chain {self.chain}, iteration {self.iteration})"
        detail = f": {self.detail}" if self.detail else ""
        return f"Likelihood term '{self.term}' is not finite{where}{detail}"

    def located(self, chain: int, iteration: int) -> "NumericError":
        return NumericError(self.term, self.detail, chain=chain, iteration=iteration)


class ConvergenceWarning(UserWarning):
    """Potential scale reduction above threshold for some parameters."""

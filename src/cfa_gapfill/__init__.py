"""Bayesian gap reconstruction of continuous time series with DEzs MCMC."""

from .reconstruction import ReconstructedPoint, ReconstructionResult, reconstruct

__all__ = ["ReconstructedPoint", "ReconstructionResult", "reconstruct"]

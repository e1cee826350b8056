from __future__ import annotations

from argparse import ArgumentParser
from pathlib import Path
import csv
import logging
import signal
import sys
import threading

import numpy as np

from .checkpoint import load_checkpoint
from .config import ReconstructionConfig, SamplerSettings
from .errors import ReconstructionError
from .ingestion import load_series_csv
from .plotting import plot_reconstruction
from .reconstruction import ReconstructionResult, reconstruct

logger = logging.getLogger(__name__)


def parse_quantile_grid(value: str) -> tuple[float, ...]:
    """Either ``start:stop:step`` or a comma-separated list of levels."""
    token = value.strip()
    if token.count(":") == 2:
        start, stop, step = (float(part) for part in token.split(":"))
        return tuple(float(round(q, 6)) for q in np.arange(start, stop + step * 1e-6, step))
    return tuple(float(part) for part in token.split(",") if part.strip())


def write_reconstruction_csv(result: ReconstructionResult, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["time", "value"])
        for item in sorted(result.points, key=lambda point: point.time):
            writer.writerow([f"{item.time:.6f}", f"{item.posterior_median:.6f}"])


def write_bands_csv(result: ReconstructionResult, output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    levels = result.summary.levels
    with output_path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(["time", "observed", "in_gap", *[f"q{level:.3f}" for level in levels], "rhat"])
        for idx, item in enumerate(result.points):
            writer.writerow(
                [
                    f"{item.time:.6f}",
                    "" if item.observed_value is None else f"{item.observed_value:.6f}",
                    int(item.in_gap),
                    *[f"{value:.6f}" for value in result.summary.quantiles[:, idx]],
                    f"{result.convergence.rhat[idx]:.4f}",
                ]
            )


def build_parser() -> ArgumentParser:
    defaults = ReconstructionConfig()
    tuning = SamplerSettings()
    parser = ArgumentParser(description="Bayesian gap reconstruction of continuous time series (DEzs MCMC)")
    parser.add_argument("--fine-csv", type=Path, required=True, help="CSV file with time,value columns (fine series)")
    parser.add_argument("--sparse-csv", type=Path, required=True, help="CSV file with time,value columns (discrete reference)")
    parser.add_argument("--output-csv", type=Path, default=Path("outputs/reconstruction.csv"), help="Reconstruction output CSV path")
    parser.add_argument("--bands-csv", type=Path, default=None, help="Optional CSV with every posterior quantile per time point")
    parser.add_argument("--output-plot", type=Path, default=None, help="Optional PNG path for the reconstruction chart")
    parser.add_argument("--gap-threshold", type=float, default=defaults.gap_threshold_years, help="Spacing (years) above which observations bound a gap")
    parser.add_argument("--thinning-factor", type=int, default=defaults.thinning_factor, help="Grid step as a multiple of the median sampling interval")
    parser.add_argument("--rolling-window", type=float, default=defaults.rolling_window_years, help="Local-mean window in years")
    parser.add_argument("--analytic-error", type=float, default=defaults.analytic_error_sd, help="Measurement sd for discrete and local-mean terms")
    parser.add_argument("--discrete-half-width", type=float, default=defaults.discrete_half_width_years, help="Half-width Dt of discrete reference windows")
    parser.add_argument("--lag-span", type=int, default=defaults.autocorrelation_lag_span, help="Largest autocorrelation lag compared")
    parser.add_argument("--acf-error", type=float, default=defaults.autocorrelation_sd, help="sd of the autocorrelation term")
    parser.add_argument("--prior-width", type=float, default=defaults.prior_width_multiplier, help="Prior half-width in local standard deviations")
    parser.add_argument("--iterations", type=int, default=defaults.iteration_count, help="Sampler iterations per chain")
    parser.add_argument("--burn-in", type=float, default=defaults.burn_in_fraction, help="Fraction of retained draws discarded as burn-in")
    parser.add_argument(
        "--quantiles",
        type=parse_quantile_grid,
        default=defaults.quantile_grid,
        help='Quantile grid, "0.05:0.95:0.025" or "0.05,0.5,0.95"',
    )
    parser.add_argument("--chains", type=int, default=defaults.chain_count, help="Number of parallel chains")
    parser.add_argument("--seed", type=int, default=defaults.random_seed, help="Random seed for reproducibility")
    parser.add_argument("--rhat-threshold", type=float, default=defaults.rhat_threshold, help="R-hat above which a warning is raised")
    parser.add_argument("--p-snooker", type=float, default=tuning.p_snooker, help="Probability of a snooker update")
    parser.add_argument("--archive-thinning", type=int, default=tuning.archive_thinning, help="Iterations between archive appends")
    parser.add_argument("--draw-thinning", type=int, default=tuning.draw_thinning, help="Iterations between retained draws")
    parser.add_argument("--workers", type=int, default=tuning.workers, help="Threads used to step chains")
    parser.add_argument("--checkpoint", type=Path, default=None, help="Checkpoint file (.npz) written during the run")
    parser.add_argument("--checkpoint-every", type=int, default=None, help="Iterations between checkpoints")
    parser.add_argument("--resume", action="store_true", help="Continue from --checkpoint if it exists")
    parser.add_argument("--log-level", type=str, default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging verbosity")
    return parser


def _config_from_args(args) -> tuple[ReconstructionConfig, SamplerSettings]:
    config = ReconstructionConfig(
        gap_threshold_years=args.gap_threshold,
        thinning_factor=args.thinning_factor,
        rolling_window_years=args.rolling_window,
        analytic_error_sd=args.analytic_error,
        discrete_half_width_years=args.discrete_half_width,
        autocorrelation_lag_span=args.lag_span,
        autocorrelation_sd=args.acf_error,
        prior_width_multiplier=args.prior_width,
        iteration_count=args.iterations,
        burn_in_fraction=args.burn_in,
        quantile_grid=args.quantiles,
        chain_count=args.chains,
        random_seed=args.seed,
        rhat_threshold=args.rhat_threshold,
    ).validated()
    settings = SamplerSettings(
        p_snooker=args.p_snooker,
        archive_thinning=args.archive_thinning,
        draw_thinning=args.draw_thinning,
        workers=args.workers,
    ).validated()
    return config, settings


def run(args) -> ReconstructionResult:
    config, settings = _config_from_args(args)
    fine = load_series_csv(args.fine_csv)
    sparse = load_series_csv(args.sparse_csv)

    state = None
    if args.resume and args.checkpoint is not None and args.checkpoint.exists():
        state = load_checkpoint(args.checkpoint)

    cancel = threading.Event()

    def _interrupt(signum, frame) -> None:
        logger.warning("Interrupt received; stopping after the current iteration")
        cancel.set()

    previous = signal.signal(signal.SIGINT, _interrupt)
    try:
        result = reconstruct(
            fine,
            sparse,
            config=config,
            settings=settings,
            state=state,
            cancel=cancel,
            checkpoint_path=args.checkpoint,
            checkpoint_every=args.checkpoint_every,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    write_reconstruction_csv(result, args.output_csv)
    if args.bands_csv is not None:
        write_bands_csv(result, args.bands_csv)
    if args.output_plot is not None:
        plot_reconstruction(result, args.output_plot, fine=fine, sparse=sparse)
    return result


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    try:
        result = run(args)
    except ReconstructionError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)

    print(result.inputs.context.description)
    print(f"Saved reconstruction CSV: {args.output_csv}")
    if args.bands_csv is not None:
        print(f"Saved quantile bands CSV: {args.bands_csv}")
    if args.output_plot is not None:
        print(f"Saved reconstruction plot: {args.output_plot}")
    if result.state.cancelled:
        print(f"Run cancelled at iteration {result.state.iteration}; resume with --resume --checkpoint.")
    if not result.convergence.assessed:
        status = "not assessed"
    else:
        status = "converged" if result.convergence.converged else "NOT converged"
    print(f"Samples: {result.summary.sample_count}  max R-hat: {result.convergence.max_rhat:.3f} ({status})")
    print("Time         Median     Low      High   Gap")
    for item in result.points:
        print(f"{item.time:10.3f}  {item.posterior_median:8.3f}  {item.ci_low:8.3f}  {item.ci_high:8.3f}  {'*' if item.in_gap else ''}")


if __name__ == "__main__":
    main()

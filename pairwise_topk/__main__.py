"""
CLI entry point for the pairwise top-k ranking system.

Runs a simulated ranking session: parses arguments, wires a judge, a compute
backend and the orchestrator, and prints the final ranking.
"""

import argparse
import asyncio
import sys
from argparse import Namespace
from collections.abc import Sequence
from pathlib import Path
from typing import TypedDict

from prettytable import PrettyTable

from .backends import BACKEND_CHOICES, make_backend
from .exceptions import ConfigurationError, RankingError
from .fetchers import TextFileFetcher
from .interfaces import Judge
from .judges import DUMMY_MODES, DummyJudge, SimulatedJudge
from .logging_config import get_logger, setup_logging
from .models import ComparisonOutcome
from .orchestrator import RankingConfig, RankingOrchestrator


class CLIArgs(TypedDict):
    """Typed representation of parsed CLI arguments."""
    items_file: str | None
    num_items: int
    k: int
    z: float
    stability_window: int
    max_comparisons: int
    prior_variance: float
    confidence_threshold: float
    estimator: str
    monte_carlo_samples: int
    quadrature_points: int
    recency_discount: float
    seed: int
    no_cache: bool
    no_speculate: bool
    backend: str
    workers: int | None
    judge_type: str
    dummy_mode: str
    noise: float
    progress_every: int
    debug: bool
    log_level: str
    log_file: str | None


def parse_args(argv: Sequence[str] | None = None) -> Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Pairwise Top-K - Active top-k identification from pairwise comparisons"
    )

    # Items
    _ = parser.add_argument(
        "--items-file",
        help="Text file with one item per line, strongest first (default: synthetic items)"
    )
    _ = parser.add_argument(
        "--num-items",
        type=int,
        default=12,
        help="Number of synthetic items when no items file is given (default: 12)"
    )

    # Ranking configuration
    _ = parser.add_argument("-k", "--k", type=int, default=5, help="Size of the top set (default: 5)")
    _ = parser.add_argument("--z", type=float, default=1.96, help="Z-score for confidence bounds (default: 1.96)")
    _ = parser.add_argument(
        "--stability-window",
        type=int,
        default=10,
        help="Consecutive unchanged rounds that stop the session (default: 10)"
    )
    _ = parser.add_argument(
        "--max-comparisons",
        type=int,
        default=80,
        help="Hard cap on comparisons (default: 80)"
    )
    _ = parser.add_argument("--prior-variance", type=float, default=1.0, help="Prior variance (default: 1.0)")
    _ = parser.add_argument(
        "--confidence-threshold",
        type=float,
        default=0.0,
        help="Gap the confidence bounds must exceed (default: 0.0)"
    )
    _ = parser.add_argument(
        "--estimator",
        choices=["quadrature", "monte-carlo"],
        default="quadrature",
        help="Top-k uncertainty estimator (default: quadrature)"
    )
    _ = parser.add_argument(
        "--monte-carlo-samples",
        type=int,
        default=500,
        help="Samples for the monte-carlo estimator (default: 500)"
    )
    _ = parser.add_argument(
        "--quadrature-points",
        type=int,
        default=7,
        help="Gauss-Hermite order for the quadrature estimator (default: 7)"
    )
    _ = parser.add_argument(
        "--recency-discount",
        type=float,
        default=0.5,
        help="Penalty for repeating items from the last comparison, in (0, 1] (default: 0.5)"
    )
    _ = parser.add_argument("--seed", type=int, default=0, help="Base seed (default: 0)")
    _ = parser.add_argument("--no-cache", action="store_true", help="Bypass backend result caches")
    _ = parser.add_argument("--no-speculate", action="store_true", help="Disable speculative precomputation")

    # Backend
    _ = parser.add_argument(
        "--backend",
        choices=list(BACKEND_CHOICES),
        default="in-process",
        help="Where the statistical engine runs (default: in-process)"
    )
    _ = parser.add_argument(
        "--workers",
        type=int,
        help="Pool size for thread/process backends (default: executor default)"
    )

    # Judge selection
    _ = parser.add_argument(
        "--judge-type",
        choices=["simulated", "dummy"],
        default="simulated",
        help="Type of judge to use (default: simulated)"
    )
    _ = parser.add_argument(
        "--dummy-mode",
        choices=list(DUMMY_MODES),
        default="deterministic",
        help="Decision rule for the dummy judge (default: deterministic)"
    )
    _ = parser.add_argument(
        "--noise",
        type=float,
        default=0.5,
        help="Noise standard deviation for the simulated judge (default: 0.5)"
    )
    _ = parser.add_argument(
        "--progress-every",
        type=int,
        default=10,
        help="Print progress every N comparisons, 0 to disable (default: 10)"
    )
    _ = parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )
    _ = parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="WARNING",
        help="Set logging level (default: WARNING)"
    )
    _ = parser.add_argument(
        "--log-file",
        help="Also write logs to this file (rotated at 10 MB)"
    )

    return parser.parse_args(argv)


def args_to_typed(ns: Namespace) -> CLIArgs:
    """Convert argparse Namespace to typed CLIArgs."""
    return CLIArgs(
        items_file=ns.items_file,
        num_items=ns.num_items,
        k=ns.k,
        z=ns.z,
        stability_window=ns.stability_window,
        max_comparisons=ns.max_comparisons,
        prior_variance=ns.prior_variance,
        confidence_threshold=ns.confidence_threshold,
        estimator=ns.estimator,
        monte_carlo_samples=ns.monte_carlo_samples,
        quadrature_points=ns.quadrature_points,
        recency_discount=ns.recency_discount,
        seed=ns.seed,
        no_cache=ns.no_cache,
        no_speculate=ns.no_speculate,
        backend=ns.backend,
        workers=ns.workers,
        judge_type=ns.judge_type,
        dummy_mode=ns.dummy_mode,
        noise=ns.noise,
        progress_every=ns.progress_every,
        debug=ns.debug,
        log_level=ns.log_level,
        log_file=ns.log_file,
    )


def load_items(args: CLIArgs) -> list[str]:
    """Items from the file, or synthetic ``item_NN`` names (item_01 strongest)."""
    if args["items_file"] is not None:
        return list(TextFileFetcher(Path(args["items_file"])).list_items())
    if args["num_items"] < 2:
        raise RankingError(f"num_items must be at least 2, got {args['num_items']}")
    width = len(str(args["num_items"]))
    return [f"item_{i:0{width}d}" for i in range(1, args["num_items"] + 1)]


def build_config(args: CLIArgs) -> RankingConfig:
    """Ranking configuration from CLI arguments."""
    return RankingConfig(
        k=args["k"],
        z=args["z"],
        stability_window=args["stability_window"],
        max_comparisons=args["max_comparisons"],
        prior_variance=args["prior_variance"],
        confidence_threshold=args["confidence_threshold"],
        estimator=args["estimator"],  # type: ignore[arg-type]
        monte_carlo_samples=args["monte_carlo_samples"],
        quadrature_points=args["quadrature_points"],
        recency_discount=args["recency_discount"],
        seed=args["seed"],
        no_cache=args["no_cache"],
        speculate=not args["no_speculate"],
    )


def build_judge(args: CLIArgs, items: Sequence[str]) -> Judge[str]:
    """Judge from CLI arguments; simulated strengths follow item order."""
    logger = get_logger("build_judge")
    if args["judge_type"] == "simulated":
        n = len(items)
        ground_truth = {item: float(n - i) for i, item in enumerate(items)}
        logger.info(f"Simulated judge created with {n} items, noise={args['noise']}")
        return SimulatedJudge(ground_truth, noise=args["noise"], seed=args["seed"])
    if args["judge_type"] == "dummy":
        logger.info(f"Dummy judge created (mode={args['dummy_mode']})")
        return DummyJudge(mode=args["dummy_mode"], seed=args["seed"])
    raise ConfigurationError(f"Unknown judge type: {args['judge_type']}")


def print_progress(orchestrator: RankingOrchestrator[str]) -> None:
    """One progress line with the current top-k and the stability forecast."""
    forecast = orchestrator.estimate_remaining()
    if forecast is None:
        remaining = "n/a"
    else:
        remaining = f"~{forecast.mid:.0f} ({forecast.low:.0f}-{forecast.high:.0f})"
    top = ", ".join(orchestrator.top_k)
    print(f"Round {orchestrator.round}/{orchestrator.config.max_comparisons}: top-{orchestrator.config.k} [{top}], remaining {remaining}")


async def run_session(
    orchestrator: RankingOrchestrator[str],
    judge: Judge[str],
    progress_every: int = 0,
) -> ComparisonOutcome:
    """Drive a session with the judge until a stopping criterion fires."""
    logger = get_logger("run_session")
    outcome = ComparisonOutcome(stopped=orchestrator.stopped, stop_reason=orchestrator.stop_reason)
    while not orchestrator.stopped:
        pair = await orchestrator.select_pair()
        record = judge.judge_pair(pair.a, pair.b)
        outcome = await orchestrator.record_comparison(record.winner, record.loser)
        if progress_every > 0 and orchestrator.round % progress_every == 0:
            print_progress(orchestrator)
    await orchestrator.drain_speculation()
    logger.info(f"Session finished after {orchestrator.round} comparisons: {outcome.stop_reason}")
    return outcome


def build_results_table(orchestrator: RankingOrchestrator[str], judge: Judge[str]) -> PrettyTable:
    """Final ranking: every item by descending mu."""
    top = set(orchestrator.top_k)
    mu = orchestrator.mu
    sigma = orchestrator.sigma
    order = sorted(range(len(orchestrator.items)), key=lambda i: -mu[i])

    true_rank = dict[str, int]()
    if isinstance(judge, SimulatedJudge):
        true_rank = {item: rank for rank, item in enumerate(judge.true_top_k(len(orchestrator.items)), 1)}

    table = PrettyTable()
    table.field_names = ["Rank", "Item", "Mu", "Sigma", "Top-K", "True Rank"]
    table.align["Rank"] = "r"
    table.align["Item"] = "l"
    table.align["Mu"] = "r"
    table.align["Sigma"] = "r"
    table.align["True Rank"] = "r"

    for rank, i in enumerate(order, 1):
        item = orchestrator.items[i]
        table.add_row([
            rank,
            item,
            f"{mu[i]:.3f}",
            f"{sigma[i]:.3f}",
            "yes" if item in top else "",
            true_rank.get(item, ""),
        ])
    return table


async def run(args: CLIArgs) -> RankingOrchestrator[str]:
    """Wire components, run the session and print the result."""
    logger = get_logger("run")

    items = load_items(args)
    config = build_config(args)
    judge = build_judge(args, items)

    print("Pairwise Top-K - Active top-k identification")
    print("=" * 60)
    print(f"Items: {len(items)}")
    print(f"k: {config.k}")
    print(f"Estimator: {config.estimator} (precision {config.precision})")
    print(f"Backend: {args['backend']}")
    print(f"Judge type: {args['judge_type']}")
    if args["judge_type"] == "simulated":
        print(f"Noise level: {args['noise']}")
    print("=" * 60)

    backend = make_backend(args["backend"], max_workers=args["workers"])
    async with backend:
        orchestrator = RankingOrchestrator(items, backend, config)
        logger.info("Starting ranking session")
        outcome = await run_session(orchestrator, judge, args["progress_every"])

    print(f"\nStopped after {orchestrator.round} comparisons: {outcome.stop_reason}")
    print(build_results_table(orchestrator, judge))

    if isinstance(judge, SimulatedJudge):
        found = set(orchestrator.top_k) == set(judge.true_top_k(config.k))
        print(f"Top-{config.k} matches ground truth: {'yes' if found else 'no'}")

    return orchestrator


def main(argv: Sequence[str] | None = None) -> None:
    """Main CLI entry point."""
    raw_args = parse_args(argv)
    args = args_to_typed(raw_args)

    # Setup logging
    setup_logging(level=args["log_level"], debug=args["debug"], log_file=args["log_file"])
    logger = get_logger("main")

    try:
        _ = asyncio.run(run(args))
    except (RankingError, FileNotFoundError, IsADirectoryError) as e:
        logger.error(f"{type(e).__name__}: {e}")
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logger.warning("Session interrupted by user")
        print("\nSession interrupted by user")
        sys.exit(1)


if __name__ == "__main__":
    main()

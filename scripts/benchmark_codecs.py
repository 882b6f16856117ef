"""Codec benchmark: encode/decode the fixture with every strategy.

Runs each selected strategy through an encode trial and a decode trial,
checks every decoded value against the fixture, and reports latency
percentiles, throughput and encoded size side by side.

Usage:
    python -m scripts.benchmark_codecs
    python -m scripts.benchmark_codecs --strategies msgpack,orjson --threads 4
    python -m scripts.benchmark_codecs --operations decode --oracle identity
    python -m scripts.benchmark_codecs --list

Configuration:
    Every option can also be set through an environment variable,
    optionally loaded from a ``.env`` file (see ``.env.sample``).
    Command-line flags win over the environment.

    ==============================  ==========================
    Variable                        Flag
    ==============================  ==========================
    ``CODEC_BENCH_STRATEGIES``      ``--strategies``
    ``CODEC_BENCH_OPERATIONS``      ``--operations``
    ``CODEC_BENCH_ITERATIONS``      ``--iterations``
    ``CODEC_BENCH_WARMUP``          ``--warmup``
    ``CODEC_BENCH_THREADS``         ``--threads``
    ``CODEC_BENCH_POOL_CAPACITY``   ``--pool-capacity``
    ``CODEC_BENCH_ORACLE``          ``--oracle``
    ``CODEC_BENCH_LOG_LEVEL``       ``--log-level``
    ==============================  ==========================

Output:
    JSON-formatted :class:`BenchmarkReport` to stdout.
    Progress logging and the results table to stderr.

Exit status:
    0 when every trial succeeded, 1 when any trial failed or the run
    was interrupted, 2 on invalid arguments.

Press Ctrl+C to abort; the current trial fails and the rest are skipped.
"""

import argparse
import logging
import os
import sys
import threading

from dotenv import load_dotenv
from pydantic import ValidationError

from core.oracle import OracleMode
from core.pool import PoolConfig
from core.registry import StrategyRegistry
from core.runner import BenchmarkRunner, RunnerConfig, RunResult
from core.strategy import OperationKind, Strategy
from infra import build_default_registry
from scripts.benchmark_utils import (
    BenchmarkReport,
    build_report,
    format_report_table,
    report_to_json,
)

logger: logging.Logger = logging.getLogger(__name__)

_ENV_PREFIX: str = "CODEC_BENCH_"

# Poll interval of the main thread while the run executes (seconds).
# Keeps Ctrl+C responsive.
_JOIN_INTERVAL_S: float = 0.5


def _env(name: str, default: str) -> str:
    return os.environ.get(_ENV_PREFIX + name, default)


def _csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with environment-aware defaults."""
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        prog="python -m scripts.benchmark_codecs",
        description="Comparative encode/decode benchmark of codec strategies",
    )
    parser.add_argument(
        "--strategies",
        type=str,
        default=_env("STRATEGIES", ""),
        help="Comma-separated strategy names (default: all registered)",
    )
    parser.add_argument(
        "--operations",
        type=str,
        default=_env("OPERATIONS", "encode,decode"),
        help="Comma-separated operations: encode, decode (default: both)",
    )
    parser.add_argument(
        "--iterations",
        type=int,
        default=_env("ITERATIONS", "10000"),
        help="Measured calls per trial (default: 10000)",
    )
    parser.add_argument(
        "--warmup",
        type=int,
        default=_env("WARMUP", "1000"),
        help="Warmup calls discarded before measuring (default: 1000)",
    )
    parser.add_argument(
        "--threads",
        type=int,
        default=_env("THREADS", "1"),
        help="Worker threads per trial (default: 1)",
    )
    parser.add_argument(
        "--pool-capacity",
        type=int,
        default=_env("POOL_CAPACITY", "16"),
        help="Codec instances per pooled strategy (default: 16)",
    )
    parser.add_argument(
        "--non-blocking-pool",
        action="store_true",
        help="Fail with PoolExhausted instead of waiting for an instance",
    )
    parser.add_argument(
        "--oracle",
        type=str,
        choices=[mode.value for mode in OracleMode],
        default=_env("ORACLE", OracleMode.FULL.value),
        help="Correctness check: full deep compare or identity (default: full)",
    )
    parser.add_argument(
        "--gc-disabled",
        action="store_true",
        help="Disable GC during measurement (isolation mode)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="List registered strategies and exit",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=_env("LOG_LEVEL", "INFO"),
        help="Logging level for progress output (default: INFO)",
    )
    return parser


def _select_strategies(
    parser: argparse.ArgumentParser,
    registry: StrategyRegistry,
    spec: str,
) -> list[Strategy]:
    names: list[str] = _csv(spec)
    if not names:
        return list(registry)
    try:
        return registry.select(names)
    except ValueError as exc:
        parser.error(str(exc))


def _build_config(
    parser: argparse.ArgumentParser,
    args: argparse.Namespace,
) -> RunnerConfig:
    try:
        operations: tuple[OperationKind, ...] = tuple(
            OperationKind(op) for op in _csv(args.operations)
        )
        return RunnerConfig(
            iterations=args.iterations,
            warmup_iterations=args.warmup,
            threads=args.threads,
            operations=operations,
            oracle_mode=OracleMode(args.oracle),
            pool=PoolConfig(
                capacity=args.pool_capacity,
                blocking=not args.non_blocking_pool,
            ),
            gc_disabled=args.gc_disabled,
        )
    except (ValueError, ValidationError) as exc:
        parser.error(f"invalid configuration: {exc}")


def _run_interruptible(
    runner: BenchmarkRunner,
    strategies: list[Strategy],
) -> RunResult | None:
    """Run in a worker thread so Ctrl+C in the main thread can abort."""
    results: list[RunResult] = []

    def _target() -> None:
        try:
            results.append(runner.run(strategies))
        except Exception:
            logger.exception("Benchmark run crashed")

    worker: threading.Thread = threading.Thread(
        target=_target,
        name="bench-run",
        daemon=True,
    )
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=_JOIN_INTERVAL_S)
    except KeyboardInterrupt:
        logger.warning("Interrupted, aborting benchmark run")
        runner.abort()
        worker.join()
    return results[0] if results else None


def main(argv: list[str] | None = None) -> int:
    """Run the codec benchmark and print the JSON report.

    Returns:
        Process exit status (0 success, 1 failed trials).
    """
    load_dotenv()

    # String defaults go through argparse type conversion, so a bad
    # CODEC_BENCH_* value exits with status 2
    parser: argparse.ArgumentParser = build_parser()
    args: argparse.Namespace = parser.parse_args(argv)

    log_level: int | str = logging.getLevelName(args.log_level.upper())
    if not isinstance(log_level, int):
        parser.error(f"invalid log level: {args.log_level!r}")

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    registry: StrategyRegistry = build_default_registry()
    if args.list:
        for strategy in registry:
            pooled: str = " (pooled)" if strategy.requires_pool else ""
            print(f"{strategy.name}{pooled}")
        return 0

    strategies: list[Strategy] = _select_strategies(
        parser, registry, args.strategies,
    )
    config: RunnerConfig = _build_config(parser, args)

    print(
        f"Codec Benchmark: {len(strategies)} strategies, "
        f"{config.iterations} iterations, warmup={config.warmup_iterations}, "
        f"threads={config.threads}",
        file=sys.stderr,
    )

    runner: BenchmarkRunner = BenchmarkRunner(config=config)
    run: RunResult | None = _run_interruptible(runner, strategies)
    if run is None:
        return 1

    report: BenchmarkReport = build_report(run)
    print(format_report_table(report), file=sys.stderr)
    print(report_to_json(report))
    return 1 if report.has_failures else 0


if __name__ == "__main__":
    sys.exit(main())

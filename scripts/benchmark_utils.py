"""Shared benchmark utilities for latency statistics and reporting.

This module turns a :class:`~core.runner.RunResult` into something a
human or a CI job can read. It includes:

- Linear-interpolation percentile calculation (matches numpy default)
- Per-trial latency summaries in microseconds
- A run report separating measured strategies from failed ones
- Formatted ASCII table output, fastest strategy first per operation
- JSON round-trip of the report for archiving and comparison

Design principles:
    - Pure Python, no numpy or external benchmark dependencies
    - Pydantic models for all report data structures
    - Failed strategies never appear in timing rows; they are listed
      separately with the reason they were excluded

Percentile method:
    Linear interpolation between adjacent sorted ranks. Matches
    ``numpy.percentile(method='linear')``.
    Algorithm: ``k = (n-1) * p; f = floor(k); c = ceil(k);
    result = sorted[f] + (sorted[c] - sorted[f]) * (k - f)``

Example:
    >>> from scripts.benchmark_utils import calculate_latency_stats
    >>> stats = calculate_latency_stats([1000, 2000, 3000, 4000, 5000])
    >>> stats.p50_us
    3.0
"""

import math
import os
import platform
import statistics
import sys

from pydantic import BaseModel, ConfigDict, Field

from core.runner import RunnerConfig, RunResult, TrialResult
from core.strategy import OperationKind


# ---------------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------------


class LatencyStats(BaseModel):
    """Percentile latency statistics in microseconds.

    Calculated using linear interpolation between adjacent sorted
    ranks, matching ``numpy.percentile(method='linear')``.

    Attributes:
        p50_us: Median (50th percentile) latency in microseconds.
        p95_us: 95th percentile latency in microseconds.
        p99_us: 99th percentile latency in microseconds.
        min_us: Minimum observed latency in microseconds.
        max_us: Maximum observed latency in microseconds.
        mean_us: Arithmetic mean latency in microseconds.
        stddev_us: Standard deviation of latency in microseconds.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    p50_us: float = Field(description="P50 (median) latency in microseconds")
    p95_us: float = Field(description="P95 latency in microseconds")
    p99_us: float = Field(description="P99 latency in microseconds")
    min_us: float = Field(description="Minimum latency in microseconds")
    max_us: float = Field(description="Maximum latency in microseconds")
    mean_us: float = Field(description="Mean latency in microseconds")
    stddev_us: float = Field(description="Stddev of latency in microseconds")


class TrialSummary(BaseModel):
    """Timing summary of one successful trial.

    Attributes:
        strategy: Strategy name.
        operation: Measured operation.
        encoded_size: Encoded fixture size in bytes, reported once.
        latency: Per-call latency statistics.
        throughput_ops_per_sec: Calls per wall-clock second.
        cpu_percent: CPU usage normalized per core.
        gc_collections: GC collections (all generations) while measuring.
        num_samples: Number of measured calls.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: str = Field(description="Strategy name")
    operation: OperationKind = Field(description="Measured operation")
    encoded_size: int = Field(ge=0, description="Encoded size (bytes)")
    latency: LatencyStats = Field(description="Latency statistics")
    throughput_ops_per_sec: float = Field(
        ge=0.0,
        description="Calls per wall-clock second",
    )
    cpu_percent: float = Field(ge=0.0, description="CPU per core (%%)")
    gc_collections: int = Field(ge=0, description="GC collections")
    num_samples: int = Field(gt=0, description="Measured calls")


class FailureEntry(BaseModel):
    """A trial excluded from timing output, with its reason."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: str = Field(description="Strategy name")
    operation: OperationKind = Field(description="Operation of the trial")
    error_type: str = Field(description="Exception class name")
    reason: str = Field(description="Failure message")


class BenchmarkReport(BaseModel):
    """Complete report of one benchmark run.

    Attributes:
        environment: Interpreter, platform and CPU count.
        config: Runner configuration used.
        summaries: One entry per successful trial of a strategy with no
            failed trial, in run order.
        failures: One entry per failed trial, plus one per sibling
            trial excluded because its strategy failed elsewhere.
        aborted: True if the run was aborted before completion.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    environment: dict[str, str] = Field(description="Runtime environment")
    config: RunnerConfig = Field(description="Configuration used")
    summaries: list[TrialSummary] = Field(default_factory=list)
    failures: list[FailureEntry] = Field(default_factory=list)
    aborted: bool = Field(default=False, description="Run was aborted")

    @property
    def has_failures(self) -> bool:
        return bool(self.failures) or self.aborted


# ---------------------------------------------------------------------------
# Percentile Calculation (Linear Interpolation)
# ---------------------------------------------------------------------------


def calculate_percentile(sorted_values: list[float], percentile: float) -> float:
    """Calculate percentile using linear interpolation.

    Matches ``numpy.percentile(method='linear')``. Interpolates between
    the two nearest ranks when the desired percentile falls between
    data points.

    Args:
        sorted_values: Pre-sorted list of values (ascending).
            Must not be empty.
        percentile: Percentile to compute, in range [0.0, 1.0].
            E.g., 0.99 for P99.

    Returns:
        Interpolated percentile value.

    Raises:
        ValueError: If sorted_values is empty or percentile is
            out of [0.0, 1.0] range.

    Example:
        >>> calculate_percentile([1.0, 2.0, 3.0, 4.0, 5.0], 0.5)
        3.0
        >>> calculate_percentile([1.0, 2.0, 3.0, 4.0, 5.0], 0.99)
        4.96
    """
    if not sorted_values:
        raise ValueError("sorted_values must not be empty")
    if not 0.0 <= percentile <= 1.0:
        raise ValueError(f"percentile must be in [0.0, 1.0], got {percentile}")

    n: int = len(sorted_values)
    if n == 1:
        return sorted_values[0]

    k: float = (n - 1) * percentile
    f: int = math.floor(k)
    c: int = math.ceil(k)

    if f == c:
        return sorted_values[f]

    return sorted_values[f] + (sorted_values[c] - sorted_values[f]) * (k - f)


# ---------------------------------------------------------------------------
# Latency Statistics
# ---------------------------------------------------------------------------


def calculate_latency_stats(latencies_ns: list[int]) -> LatencyStats:
    """Compute latency statistics from nanosecond measurements.

    Args:
        latencies_ns: Latency measurements in nanoseconds. Must
            contain at least one value.

    Returns:
        :class:`LatencyStats` with all values in microseconds.

    Raises:
        ValueError: If latencies_ns is empty.
    """
    if not latencies_ns:
        raise ValueError("latencies_ns must not be empty")

    sorted_floats: list[float] = [float(x) for x in sorted(latencies_ns)]
    mean_ns: float = statistics.mean(sorted_floats)
    stddev_ns: float = (
        statistics.stdev(sorted_floats) if len(sorted_floats) > 1 else 0.0
    )

    ns_to_us: float = 1e-3

    return LatencyStats(
        p50_us=calculate_percentile(sorted_floats, 0.50) * ns_to_us,
        p95_us=calculate_percentile(sorted_floats, 0.95) * ns_to_us,
        p99_us=calculate_percentile(sorted_floats, 0.99) * ns_to_us,
        min_us=sorted_floats[0] * ns_to_us,
        max_us=sorted_floats[-1] * ns_to_us,
        mean_us=mean_ns * ns_to_us,
        stddev_us=stddev_ns * ns_to_us,
    )


# ---------------------------------------------------------------------------
# Report Building
# ---------------------------------------------------------------------------


def summarize_trial(trial: TrialResult) -> TrialSummary:
    """Summarize a successful trial.

    Raises:
        ValueError: If the trial failed or recorded no samples.
    """
    if not trial.succeeded:
        raise ValueError(
            f"Cannot summarize failed trial {trial.strategy}/"
            f"{trial.operation.value}"
        )
    if not trial.samples or trial.metrics is None:
        raise ValueError(
            f"Trial {trial.strategy}/{trial.operation.value} has no samples"
        )

    return TrialSummary(
        strategy=trial.strategy,
        operation=trial.operation,
        encoded_size=trial.encoded_size or 0,
        latency=calculate_latency_stats([s.elapsed_ns for s in trial.samples]),
        throughput_ops_per_sec=trial.metrics.throughput_ops_per_sec,
        cpu_percent=trial.metrics.cpu_percent,
        gc_collections=trial.metrics.gc_collections,
        num_samples=len(trial.samples),
    )


def _failure_entry(trial: TrialResult) -> FailureEntry | None:
    if trial.failure is None:
        return None
    return FailureEntry(
        strategy=trial.strategy,
        operation=trial.operation,
        error_type=trial.failure.error_type,
        reason=trial.failure.message,
    )


def build_report(run: RunResult) -> BenchmarkReport:
    """Split a run into timing summaries and failure entries.

    A strategy with any failed trial contributes no timing rows at
    all: its successful sibling trials are listed as failures too,
    naming the trial that disqualified them.
    """
    first_failure: dict[str, FailureEntry] = {}
    for trial in run.trials:
        entry: FailureEntry | None = _failure_entry(trial)
        if entry is not None:
            first_failure.setdefault(trial.strategy, entry)

    summaries: list[TrialSummary] = []
    failures: list[FailureEntry] = []
    for trial in run.trials:
        entry = _failure_entry(trial)
        if entry is not None:
            failures.append(entry)
        elif trial.strategy in first_failure:
            cause: FailureEntry = first_failure[trial.strategy]
            failures.append(
                FailureEntry(
                    strategy=trial.strategy,
                    operation=trial.operation,
                    error_type=cause.error_type,
                    reason=(
                        f"excluded: {cause.operation.value} trial failed "
                        f"({cause.reason})"
                    ),
                )
            )
        else:
            summaries.append(summarize_trial(trial))

    return BenchmarkReport(
        environment=_environment(),
        config=run.config,
        summaries=summaries,
        failures=failures,
        aborted=run.aborted,
    )


def _environment() -> dict[str, str]:
    return {
        "python": sys.version.split()[0],
        "implementation": platform.python_implementation(),
        "platform": sys.platform,
        "cpu_count": str(os.cpu_count() or 1),
    }


# ---------------------------------------------------------------------------
# Table Formatting
# ---------------------------------------------------------------------------


def format_report_table(report: BenchmarkReport) -> str:
    """Generate a formatted ASCII results table.

    One section per operation, strategies sorted by P50 latency
    (fastest first) with their slowdown relative to the fastest.
    Failed trials are listed only in the failures section.

    Args:
        report: Report from :func:`build_report`.

    Returns:
        Formatted multi-line string.
    """
    config: RunnerConfig = report.config
    env: dict[str, str] = report.environment
    lines: list[str] = []

    lines.append("=" * 86)
    lines.append("CODEC BENCHMARK RESULTS")
    lines.append("=" * 86)
    lines.append(
        f"Environment:  {env.get('platform', '?')}, "
        f"{env.get('implementation', 'Python')} {env.get('python', '?')}, "
        f"{env.get('cpu_count', '?')} CPU"
    )
    lines.append(f"Iterations:   {config.iterations:,} per trial")
    lines.append(f"Warmup:       {config.warmup_iterations:,} (discarded)")
    lines.append(f"Threads:      {config.threads}")
    lines.append(f"Oracle:       {config.oracle_mode.value}")
    if report.aborted:
        lines.append("Status:       ABORTED")
    lines.append("=" * 86)

    for operation in config.operations:
        rows: list[TrialSummary] = sorted(
            (s for s in report.summaries if s.operation == operation),
            key=lambda s: s.latency.p50_us,
        )
        lines.append("")
        lines.append(f"[{operation.value}]")
        lines.append(
            f"{'Strategy':<12} {'Size (B)':>9} {'P50 (us)':>10} "
            f"{'P95 (us)':>10} {'P99 (us)':>10} {'Ops/s':>12} "
            f"{'CPU %':>7} {'Relative':>10}"
        )
        lines.append("-" * 86)
        if not rows:
            lines.append("  (no successful trials)")
            continue
        fastest: float = rows[0].latency.p50_us
        for row in rows:
            relative: str = (
                f"{row.latency.p50_us / fastest:.2f}x" if fastest > 0 else "N/A"
            )
            lines.append(
                f"{row.strategy:<12} {row.encoded_size:>9,} "
                f"{row.latency.p50_us:>10.2f} {row.latency.p95_us:>10.2f} "
                f"{row.latency.p99_us:>10.2f} "
                f"{row.throughput_ops_per_sec:>12,.0f} "
                f"{row.cpu_percent:>7.1f} {relative:>10}"
            )

    if report.failures:
        lines.append("")
        lines.append("=" * 86)
        lines.append("FAILED TRIALS (excluded from timing)")
        lines.append("-" * 86)
        for failure in report.failures:
            lines.append(
                f"  {failure.strategy}/{failure.operation.value}: "
                f"{failure.error_type}: {failure.reason}"
            )

    lines.append("")
    lines.append("=" * 86)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# JSON Serialization
# ---------------------------------------------------------------------------


def report_to_json(report: BenchmarkReport) -> str:
    """Serialize a report to an indented JSON string."""
    return report.model_dump_json(indent=2)


def report_from_json(json_str: str) -> BenchmarkReport:
    """Deserialize a report produced by :func:`report_to_json`."""
    return BenchmarkReport.model_validate_json(json_str)

"""Benchmark runner: drives each strategy through a measured trial.

One *trial* is one strategy measured on one :class:`OperationKind`.
Each trial walks a small state machine::

    UNSTARTED ─► SETTING_UP ─► WARMING ─► MEASURING ─► TEARING_DOWN ─► DONE
                     │           (optional)  │               │
                     └──────────► FAILED ◄───┴───────────────┘

A failure in ``SETTING_UP`` goes straight to ``FAILED`` (setup already
released what it acquired). A failure in ``WARMING`` or ``MEASURING``
still passes through ``TEARING_DOWN`` before ending in ``FAILED``; the
phase the failure happened in is kept in :class:`TrialFailure`.

Measuring loop:
    Each iteration times exactly one ``encode`` or ``decode`` call with
    ``time.perf_counter_ns()``. Decode results go through the
    correctness oracle; encode results must have the byte size
    reported at setup. Only then is a :class:`Sample` recorded.
    Samples are built with ``model_construct()`` to keep Pydantic
    validation out of the hot path.

Threading:
    With ``threads > 1`` the iterations are split across worker
    threads sharing one :class:`TrialState`. Each worker appends to
    its own sample list; lists are merged after join, so sample order
    carries no meaning. The first failing worker signals the others to
    stop after their current iteration. All workers are joined before
    teardown, so every pooled lease is back before the pool closes.

Failure policy:
    Errors are strategy-local. A failed trial keeps **no** samples,
    so a broken codec can never contribute timing numbers. Other
    strategies still run.

Cancellation:
    ``abort()`` may be called from any thread. Running workers stop at
    the next iteration boundary, the current trial fails with
    :class:`TrialAborted`, and remaining trials are skipped.

Example:
    >>> from core.runner import BenchmarkRunner, RunnerConfig
    >>> from infra import build_default_registry
    >>> runner = BenchmarkRunner(config=RunnerConfig(iterations=1000))
    >>> result = runner.run(build_default_registry())
    >>> [t.strategy for t in result.failed()]
    []
"""

import logging
import threading
import time
from enum import Enum
from typing import Iterable

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core.errors import BenchmarkError, CorrectnessFailure, TrialAborted
from core.fixture import FixtureProvider, UserService
from core.measurement import measurement_window
from core.oracle import CorrectnessOracle, OracleMode
from core.pool import PoolConfig, PoolStats
from core.strategy import OperationKind, Strategy, TrialState

logger: logging.Logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Trial phases
# ---------------------------------------------------------------------------


class TrialPhase(str, Enum):
    """Lifecycle phase of one trial."""

    UNSTARTED = "UNSTARTED"
    SETTING_UP = "SETTING_UP"
    WARMING = "WARMING"
    MEASURING = "MEASURING"
    TEARING_DOWN = "TEARING_DOWN"
    DONE = "DONE"
    FAILED = "FAILED"


_TRANSITIONS: dict[TrialPhase, frozenset[TrialPhase]] = {
    TrialPhase.UNSTARTED: frozenset({TrialPhase.SETTING_UP}),
    TrialPhase.SETTING_UP: frozenset({
        TrialPhase.WARMING,
        TrialPhase.MEASURING,
        TrialPhase.TEARING_DOWN,
        TrialPhase.FAILED,
    }),
    TrialPhase.WARMING: frozenset({
        TrialPhase.MEASURING,
        TrialPhase.TEARING_DOWN,
    }),
    TrialPhase.MEASURING: frozenset({TrialPhase.TEARING_DOWN}),
    TrialPhase.TEARING_DOWN: frozenset({TrialPhase.DONE, TrialPhase.FAILED}),
    TrialPhase.DONE: frozenset(),
    TrialPhase.FAILED: frozenset(),
}
"""Legal phase transitions. DONE and FAILED are terminal."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class RunnerConfig(BaseModel):
    """Configuration for :class:`BenchmarkRunner`.

    Attributes:
        iterations: Measured iterations per trial, split across
            threads.
        warmup_iterations: Iterations run before measuring. The oracle
            is enforced but no samples are kept. 0 skips ``WARMING``.
        threads: Worker threads per trial. Must not exceed
            ``iterations``.
        operations: Operation kinds measured for every strategy, in
            order.
        oracle_mode: Correctness comparison mode.
        pool: Configuration for pooled strategies.
        gc_disabled: Disable GC while measuring (isolation mode).

    Example:
        >>> config = RunnerConfig(iterations=5000, threads=4)
        >>> config.warmup_iterations
        1000
    """

    iterations: int = Field(
        default=10_000,
        gt=0,
        description="Measured iterations per trial.",
    )
    warmup_iterations: int = Field(
        default=1_000,
        ge=0,
        description="Unrecorded iterations before measuring.",
    )
    threads: int = Field(
        default=1,
        gt=0,
        description="Worker threads sharing one trial state.",
    )
    operations: tuple[OperationKind, ...] = Field(
        default=(OperationKind.ENCODE, OperationKind.DECODE),
        min_length=1,
        description="Operation kinds measured per strategy.",
    )
    oracle_mode: OracleMode = Field(
        default=OracleMode.FULL,
        description="FULL deep compare (default) or IDENTITY fields only.",
    )
    pool: PoolConfig = Field(
        default_factory=PoolConfig,
        description="Resource pool configuration for pooled strategies.",
    )
    gc_disabled: bool = Field(
        default=False,
        description="Disable GC during measurement. Default False.",
    )

    @model_validator(mode="after")
    def validate_threads_and_operations(self) -> "RunnerConfig":
        """Reject idle workers and duplicate operations."""
        if self.threads > self.iterations:
            raise ValueError(
                f"threads ({self.threads}) must not exceed "
                f"iterations ({self.iterations})"
            )
        if len(set(self.operations)) != len(self.operations):
            raise ValueError(
                f"operations must be unique, got {list(self.operations)}"
            )
        return self


# ---------------------------------------------------------------------------
# Result Models
# ---------------------------------------------------------------------------


class Sample(BaseModel):
    """One recorded measurement. Immutable.

    Attributes:
        strategy: Strategy name.
        operation: Measured operation.
        elapsed_ns: Duration of the single encode/decode call.
        size_bytes: Encoded payload size.
        passed: Outcome of the correctness check. Retained samples
            always passed; failures abort the trial instead.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: str = Field(min_length=1, description="Strategy name")
    operation: OperationKind = Field(description="Measured operation")
    elapsed_ns: int = Field(ge=0, description="Call duration (ns)")
    size_bytes: int = Field(ge=0, description="Encoded size (bytes)")
    passed: bool = Field(description="Correctness check outcome")


class TrialFailure(BaseModel):
    """Why a trial failed.

    Attributes:
        error_type: Exception class name (``"CorrectnessFailure"``...).
        message: Exception message.
        phase: Phase the failure happened in.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    error_type: str = Field(description="Exception class name")
    message: str = Field(description="Failure reason")
    phase: TrialPhase = Field(description="Phase where the failure occurred")


class TrialMetrics(BaseModel):
    """Process-level metrics around the measuring phase."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    wall_time_s: float = Field(ge=0.0, description="Measuring wall time")
    throughput_ops_per_sec: float = Field(
        ge=0.0,
        description="Recorded samples per wall-clock second",
    )
    cpu_percent: float = Field(ge=0.0, description="CPU per core (%%)")
    gc_collections: int = Field(
        ge=0,
        description="GC collections across all generations",
    )


class TrialResult(BaseModel):
    """Outcome of one (strategy, operation) trial.

    A failed trial has ``failure`` set and an empty ``samples`` list.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: str = Field(description="Strategy name")
    operation: OperationKind = Field(description="Measured operation")
    phase: TrialPhase = Field(description="Terminal phase (DONE/FAILED)")
    encoded_size: int | None = Field(
        default=None,
        ge=0,
        description="Encoded size reported at setup (None if setup failed)",
    )
    samples: list[Sample] = Field(default_factory=list)
    metrics: TrialMetrics | None = Field(default=None)
    pool_stats: PoolStats | None = Field(
        default=None,
        description="Pool snapshot before teardown (pooled strategies)",
    )
    failure: TrialFailure | None = Field(default=None)

    @property
    def succeeded(self) -> bool:
        return self.failure is None


class RunResult(BaseModel):
    """All trial results of one run."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    config: RunnerConfig
    trials: list[TrialResult]
    aborted: bool = False

    def succeeded(self) -> list[TrialResult]:
        return [t for t in self.trials if t.succeeded]

    def failed(self) -> list[TrialResult]:
        return [t for t in self.trials if not t.succeeded]


# ---------------------------------------------------------------------------
# Trial execution record
# ---------------------------------------------------------------------------


class _TrialExecution:
    """Phase tracking and first-failure capture for one trial."""

    def __init__(self, strategy: str, kind: OperationKind) -> None:
        self.strategy: str = strategy
        self.kind: OperationKind = kind
        self.phase: TrialPhase = TrialPhase.UNSTARTED
        self.failure: TrialFailure | None = None

    def transition(self, target: TrialPhase) -> None:
        if target not in _TRANSITIONS[self.phase]:
            raise RuntimeError(
                f"Illegal trial transition for {self.strategy}/"
                f"{self.kind.value}: {self.phase.value} -> {target.value}"
            )
        logger.debug(
            "Trial %s/%s: %s -> %s",
            self.strategy,
            self.kind.value,
            self.phase.value,
            target.value,
        )
        self.phase = target

    def record_failure(self, exc: BaseException) -> None:
        # First failure wins; later ones are consequences
        if self.failure is not None:
            logger.error(
                "Trial %s/%s: additional failure in %s: %s",
                self.strategy,
                self.kind.value,
                self.phase.value,
                exc,
            )
            return
        self.failure = TrialFailure(
            error_type=type(exc).__name__,
            message=str(exc),
            phase=self.phase,
        )
        if isinstance(exc, BenchmarkError):
            logger.error(
                "Trial %s/%s failed in %s: %s",
                self.strategy,
                self.kind.value,
                self.phase.value,
                exc,
            )
        else:
            logger.error(
                "Trial %s/%s failed in %s with unexpected %s",
                self.strategy,
                self.kind.value,
                self.phase.value,
                type(exc).__name__,
                exc_info=exc,
            )


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class BenchmarkRunner:
    """Runs trials for strategies and collects samples.

    Args:
        config: Runner configuration. Defaults to ``RunnerConfig()``.
        fixture_provider: Zero-argument fixture factory. Defaults to
            ``UserService().get``. Called once per trial.

    Example:
        >>> runner = BenchmarkRunner(RunnerConfig(iterations=100))
        >>> trial = runner.run_trial(PickleStrategy(), OperationKind.DECODE)
        >>> trial.succeeded, len(trial.samples)
        (True, 100)
    """

    def __init__(
        self,
        config: RunnerConfig | None = None,
        fixture_provider: FixtureProvider | None = None,
    ) -> None:
        self._config: RunnerConfig = config or RunnerConfig()
        self._fixture_provider: FixtureProvider = (
            fixture_provider or UserService().get
        )
        self._abort_event: threading.Event = threading.Event()

    @property
    def config(self) -> RunnerConfig:
        return self._config

    @property
    def aborted(self) -> bool:
        return self._abort_event.is_set()

    def abort(self) -> None:
        """Request cancellation of the current and remaining trials.

        Safe to call from any thread.
        """
        if not self._abort_event.is_set():
            logger.warning("Benchmark run abort requested")
        self._abort_event.set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, strategies: Iterable[Strategy]) -> RunResult:
        """Run every configured operation for every strategy.

        Args:
            strategies: Strategies in run order (a
                :class:`~core.registry.StrategyRegistry` works).

        Returns:
            :class:`RunResult` with one :class:`TrialResult` per
            executed trial. Trials skipped after ``abort()`` are
            absent.
        """
        trials: list[TrialResult] = []
        for strategy in strategies:
            for kind in self._config.operations:
                if self._abort_event.is_set():
                    logger.warning(
                        "Run aborted, skipping %s/%s",
                        strategy.name,
                        kind.value,
                    )
                    continue
                trials.append(self.run_trial(strategy=strategy, kind=kind))

        result: RunResult = RunResult(
            config=self._config,
            trials=trials,
            aborted=self._abort_event.is_set(),
        )
        logger.info(
            "Run finished: %d trial(s) succeeded, %d failed",
            len(result.succeeded()),
            len(result.failed()),
        )
        return result

    def run_trial(self, strategy: Strategy, kind: OperationKind) -> TrialResult:
        """Set up, measure and tear down one trial.

        Never raises for strategy-level failures; they are returned as
        a FAILED :class:`TrialResult`. ``KeyboardInterrupt`` and other
        non-``Exception`` errors propagate after teardown.
        """
        trial: _TrialExecution = _TrialExecution(strategy.name, kind)
        logger.info("Trial %s/%s starting", strategy.name, kind.value)

        trial.transition(TrialPhase.SETTING_UP)
        try:
            fixture = self._fixture_provider()
            oracle: CorrectnessOracle = CorrectnessOracle(
                expected=fixture,
                mode=self._config.oracle_mode,
            )
            state: TrialState = strategy.setup(
                kind,
                fixture,
                oracle,
                self._config.pool,
            )
        except Exception as exc:
            trial.record_failure(exc)
            trial.transition(TrialPhase.FAILED)
            return self._result(trial=trial)

        samples: list[Sample] = []
        metrics: TrialMetrics | None = None
        pool_stats: PoolStats | None = None
        try:
            samples, metrics = self._exercise(
                trial=trial,
                strategy=strategy,
                state=state,
                oracle=oracle,
            )
        except Exception as exc:
            trial.record_failure(exc)
        finally:
            trial.transition(TrialPhase.TEARING_DOWN)
            if state.pool is not None:
                pool_stats = state.pool.stats()
            try:
                strategy.teardown(state)
            except Exception as exc:
                trial.record_failure(exc)

        if trial.failure is not None:
            trial.transition(TrialPhase.FAILED)
            return self._result(
                trial=trial,
                encoded_size=state.encoded_size,
                pool_stats=pool_stats,
            )

        trial.transition(TrialPhase.DONE)
        logger.info(
            "Trial %s/%s done: %d samples, %d bytes",
            strategy.name,
            kind.value,
            len(samples),
            state.encoded_size,
        )
        return self._result(
            trial=trial,
            encoded_size=state.encoded_size,
            samples=samples,
            metrics=metrics,
            pool_stats=pool_stats,
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def _exercise(
        self,
        trial: _TrialExecution,
        strategy: Strategy,
        state: TrialState,
        oracle: CorrectnessOracle,
    ) -> tuple[list[Sample], TrialMetrics]:
        """Run the optional warmup and the measured iterations."""
        config: RunnerConfig = self._config

        if config.warmup_iterations > 0:
            trial.transition(TrialPhase.WARMING)
            self._run_workers(
                strategy=strategy,
                state=state,
                oracle=oracle,
                iterations=config.warmup_iterations,
                record=False,
            )

        trial.transition(TrialPhase.MEASURING)
        with measurement_window(gc_disabled=config.gc_disabled) as window:
            samples: list[Sample] = self._run_workers(
                strategy=strategy,
                state=state,
                oracle=oracle,
                iterations=config.iterations,
                record=True,
            )

        metrics: TrialMetrics = TrialMetrics(
            wall_time_s=window.wall_s,
            throughput_ops_per_sec=(
                len(samples) / window.wall_s if window.wall_s > 0 else 0.0
            ),
            cpu_percent=window.cpu_percent,
            gc_collections=window.total_gc_collections,
        )
        return samples, metrics

    def _run_workers(
        self,
        strategy: Strategy,
        state: TrialState,
        oracle: CorrectnessOracle,
        iterations: int,
        record: bool,
    ) -> list[Sample]:
        """Run ``iterations`` across the configured worker threads.

        Raises:
            Exception: The first error raised by any worker.
            TrialAborted: If ``abort()`` was called meanwhile.
        """
        stop: threading.Event = threading.Event()
        shares: list[int] = _split_iterations(
            iterations=iterations,
            workers=self._config.threads,
        )

        if len(shares) == 1:
            samples: list[Sample] = []
            self._worker_loop(
                strategy=strategy,
                state=state,
                oracle=oracle,
                iterations=shares[0],
                out=samples if record else None,
                stop=stop,
            )
        else:
            chunks: list[list[Sample]] = [[] for _ in shares]
            errors: list[BaseException] = []
            errors_lock: threading.Lock = threading.Lock()

            def work(index: int) -> None:
                try:
                    self._worker_loop(
                        strategy=strategy,
                        state=state,
                        oracle=oracle,
                        iterations=shares[index],
                        out=chunks[index] if record else None,
                        stop=stop,
                    )
                except BaseException as exc:
                    with errors_lock:
                        errors.append(exc)
                    stop.set()

            workers: list[threading.Thread] = [
                threading.Thread(
                    target=work,
                    args=(index,),
                    name=f"bench-{strategy.name}-{index}",
                    daemon=True,
                )
                for index in range(len(shares))
            ]
            for worker in workers:
                worker.start()
            try:
                for worker in workers:
                    worker.join()
            except BaseException:
                # Interrupted while joining: stop workers, let leases return
                stop.set()
                for worker in workers:
                    worker.join()
                raise

            if errors:
                raise errors[0]
            samples = [sample for chunk in chunks for sample in chunk]

        if self._abort_event.is_set():
            raise TrialAborted(strategy.name, "run aborted")
        return samples

    def _worker_loop(
        self,
        strategy: Strategy,
        state: TrialState,
        oracle: CorrectnessOracle,
        iterations: int,
        out: list[Sample] | None,
        stop: threading.Event,
    ) -> None:
        """Hot loop: time, check, record. One call per iteration."""
        name: str = strategy.name
        kind: OperationKind = state.kind
        fixture = state.fixture
        payload: bytes = state.payload
        expected_size: int = state.encoded_size
        abort: threading.Event = self._abort_event
        clock = time.perf_counter_ns

        for _ in range(iterations):
            if stop.is_set() or abort.is_set():
                return

            if kind is OperationKind.ENCODE:
                t0: int = clock()
                data: bytes = strategy.encode(state, fixture)
                t1: int = clock()
                size: int = len(data)
                if size != expected_size:
                    raise CorrectnessFailure(
                        name,
                        f"encoded size {size} differs from setup size "
                        f"{expected_size}",
                    )
            else:
                t0 = clock()
                value = strategy.decode(state, payload)
                t1 = clock()
                oracle.check(name, value)
                size = len(payload)

            if out is not None:
                out.append(Sample.model_construct(
                    strategy=name,
                    operation=kind,
                    elapsed_ns=t1 - t0,
                    size_bytes=size,
                    passed=True,
                ))

    @staticmethod
    def _result(
        trial: _TrialExecution,
        encoded_size: int | None = None,
        samples: list[Sample] | None = None,
        metrics: TrialMetrics | None = None,
        pool_stats: PoolStats | None = None,
    ) -> TrialResult:
        return TrialResult(
            strategy=trial.strategy,
            operation=trial.kind,
            phase=trial.phase,
            encoded_size=encoded_size,
            samples=samples or [],
            metrics=metrics,
            pool_stats=pool_stats,
            failure=trial.failure,
        )


def _split_iterations(iterations: int, workers: int) -> list[int]:
    """Split ``iterations`` into ``workers`` near-equal positive shares.

    Example:
        >>> _split_iterations(10, 3)
        [4, 3, 3]
    """
    workers = max(1, min(workers, iterations))
    base, extra = divmod(iterations, workers)
    return [base + (1 if i < extra else 0) for i in range(workers)]

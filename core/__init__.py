"""Core harness for the codec benchmark.

This package provides the strategy contract and registry, per-trial
state, the bounded resource pool for non-thread-safe codec instances,
the correctness oracle, and the benchmark runner. Configuration and
result models are Pydantic-based; result models are frozen.
"""

from core.errors import (
    BenchmarkError,
    CorrectnessFailure,
    DecodeError,
    EncodeError,
    PoolExhausted,
    SetupError,
    TrialAborted,
)
from core.fixture import FIXTURE_ID, Address, User, UserService
from core.oracle import CorrectnessOracle, OracleMode
from core.pool import PoolConfig, PoolStats, ResourcePool
from core.registry import StrategyRegistry
from core.runner import (
    BenchmarkRunner,
    RunnerConfig,
    RunResult,
    Sample,
    TrialFailure,
    TrialMetrics,
    TrialPhase,
    TrialResult,
)
from core.strategy import OperationKind, Strategy, TrialState

__all__: list[str] = [
    "FIXTURE_ID",
    "Address",
    "BenchmarkError",
    "BenchmarkRunner",
    "CorrectnessFailure",
    "CorrectnessOracle",
    "DecodeError",
    "EncodeError",
    "OperationKind",
    "OracleMode",
    "PoolConfig",
    "PoolExhausted",
    "PoolStats",
    "ResourcePool",
    "RunResult",
    "RunnerConfig",
    "Sample",
    "SetupError",
    "Strategy",
    "StrategyRegistry",
    "TrialAborted",
    "TrialFailure",
    "TrialMetrics",
    "TrialPhase",
    "TrialResult",
    "TrialState",
    "User",
    "UserService",
]

"""Integration tests for the built-in encoding strategies.

Every strategy in the default registry is driven through the real
setup/encode/decode/teardown lifecycle against the canonical fixture.
Covers the round-trip law, the scenario identifier, deterministic
encoded size, malformed-payload handling, the decode-trial setup probe,
pool release on failing encodes and decodes, and a short end-to-end run.
"""

from typing import Iterator

import pytest

from core.errors import DecodeError, EncodeError
from core.fixture import FIXTURE_ID, User, UserService
from core.oracle import CorrectnessOracle
from core.pool import PoolConfig, PoolStats
from core.runner import BenchmarkRunner, RunnerConfig, RunResult
from core.strategy import OperationKind, Strategy, TrialState
from infra import (
    MsgpackStrategy,
    MsgspecStrategy,
    OrjsonStrategy,
    PickleStrategy,
    ProtobufStrategy,
    PydanticJsonStrategy,
    build_default_registry,
)

_MALFORMED: bytes = b"\xff" * 11
"""Not valid in any of the built-in wire formats."""

_STRATEGIES: list[Strategy] = list(build_default_registry())


@pytest.fixture
def user() -> User:
    """Return the canonical fixture."""
    return UserService().get()


@pytest.fixture(params=_STRATEGIES, ids=lambda s: s.name)
def strategy(request: pytest.FixtureRequest) -> Strategy:
    """Yield each built-in strategy."""
    return request.param


@pytest.fixture
def state(strategy: Strategy, user: User) -> Iterator[TrialState]:
    """Set up an encode trial and tear it down afterwards."""
    trial_state: TrialState = strategy.setup(
        OperationKind.ENCODE,
        user,
        CorrectnessOracle(expected=user),
        PoolConfig(capacity=2),
    )
    yield trial_state
    strategy.teardown(trial_state)


# ---------------------------------------------------------------------------
# Registry Tests
# ---------------------------------------------------------------------------


class TestDefaultRegistry:
    """Tests for build_default_registry()."""

    def test_all_strategies_registered_in_order(self) -> None:
        """Six built-ins, in reporting order."""
        assert build_default_registry().names() == [
            "msgpack",
            "msgspec",
            "protobuf",
            "pydantic",
            "orjson",
            "pickle",
        ]

    def test_only_msgpack_is_pooled(self) -> None:
        """Only the stateful packer/unpacker pair needs a pool."""
        pooled: list[str] = [
            s.name for s in build_default_registry() if s.requires_pool
        ]
        assert pooled == ["msgpack"]

    def test_concrete_types(self) -> None:
        """Registry entries are the exported classes."""
        types: list[type] = [type(s) for s in build_default_registry()]
        assert types == [
            MsgpackStrategy,
            MsgspecStrategy,
            ProtobufStrategy,
            PydanticJsonStrategy,
            OrjsonStrategy,
            PickleStrategy,
        ]


# ---------------------------------------------------------------------------
# Round-trip Tests
# ---------------------------------------------------------------------------


class TestRoundTrip:
    """Tests for the encode/decode contract of every strategy."""

    def test_round_trip_equals_fixture(
        self, strategy: Strategy, state: TrialState, user: User,
    ) -> None:
        """decode(encode(x)) == x, including nested and tuple fields."""
        decoded: User = strategy.decode(state, strategy.encode(state, user))
        assert decoded == user
        assert type(decoded) is User
        assert isinstance(decoded.hobbies, tuple)

    def test_scenario_identifier(
        self, strategy: Strategy, state: TrialState, user: User,
    ) -> None:
        """The decoded id is the scenario id."""
        decoded: User = strategy.decode(state, strategy.encode(state, user))
        assert decoded.id == FIXTURE_ID

    def test_full_oracle_passes(
        self, strategy: Strategy, state: TrialState, user: User,
    ) -> None:
        """The full-compare oracle finds no mismatch."""
        oracle = CorrectnessOracle(expected=user)
        assert oracle.mismatches(strategy.decode(state, state.payload)) == []

    def test_encoded_size_is_deterministic(
        self, strategy: Strategy, state: TrialState, user: User,
    ) -> None:
        """Repeated encodes produce identical bytes."""
        sizes: set[int] = {
            len(strategy.encode(state, user)) for _ in range(20)
        }
        assert sizes == {state.encoded_size}
        assert strategy.encode(state, user) == state.payload

    def test_malformed_payload_raises_decode_error(
        self, strategy: Strategy, state: TrialState,
    ) -> None:
        """Garbage input is a DecodeError naming the strategy."""
        with pytest.raises(DecodeError) as info:
            strategy.decode(state, _MALFORMED)
        assert info.value.strategy == strategy.name

    def test_truncated_payload_never_yields_fixture(
        self, strategy: Strategy, state: TrialState, user: User,
    ) -> None:
        """A payload cut in half fails or decodes to something else."""
        truncated: bytes = state.payload[: len(state.payload) // 2]
        try:
            decoded: User = strategy.decode(state, truncated)
        except DecodeError:
            return
        assert decoded != user


# ---------------------------------------------------------------------------
# Setup Probe Tests
# ---------------------------------------------------------------------------


class TestDecodeSetup:
    """Tests for decode-trial setup of every strategy."""

    def test_setup_size_equals_independent_encode(
        self, strategy: Strategy, user: User,
    ) -> None:
        """Decode setup encodes once and reports the true size."""
        state: TrialState = strategy.setup(
            OperationKind.DECODE, user, CorrectnessOracle(expected=user),
        )
        try:
            assert state.setup_encodes == 1
            assert state.encoded_size == len(strategy.encode(state, user))
        finally:
            strategy.teardown(state)


# ---------------------------------------------------------------------------
# Pooled Strategy Tests
# ---------------------------------------------------------------------------


class TestMsgpackPool:
    """Tests for the pooled msgpack strategy."""

    def test_failed_encode_returns_packer(self, user: User) -> None:
        """An encode that raises still releases its packer."""
        strategy = MsgpackStrategy()
        state: TrialState = strategy.setup(
            OperationKind.ENCODE,
            user,
            CorrectnessOracle(expected=user),
            PoolConfig(capacity=1, blocking=False),
        )
        try:
            assert state.pool is not None
            idle_before: int = state.pool.stats().idle

            with pytest.raises(EncodeError, match=r"\[msgpack\]"):
                strategy.encode(state, object())  # type: ignore[arg-type]

            stats: PoolStats = state.pool.stats()
            assert stats.idle == idle_before
            assert stats.in_use == 0
            # Capacity 1, non-blocking: would raise if the packer leaked
            assert strategy.encode(state, user) == state.payload
        finally:
            strategy.teardown(state)

    def test_decode_leases_from_pool(self, user: User) -> None:
        """Decode checks a codec out and returns it, even on failure."""
        strategy = MsgpackStrategy()
        state: TrialState = strategy.setup(
            OperationKind.DECODE,
            user,
            CorrectnessOracle(expected=user),
            PoolConfig(capacity=1, blocking=False),
        )
        try:
            assert state.pool is not None
            checkouts_before: int = state.pool.stats().total_checkouts

            with pytest.raises(DecodeError):
                strategy.decode(state, state.payload[:-3])
            assert state.pool.stats().in_use == 0

            # The same codec decodes cleanly after the truncated payload
            assert strategy.decode(state, state.payload) == user
            assert state.pool.stats().total_checkouts == checkouts_before + 2
        finally:
            strategy.teardown(state)

    def test_trailing_bytes_rejected(self, user: User) -> None:
        """One payload must hold exactly one value."""
        strategy = MsgpackStrategy()
        state: TrialState = strategy.setup(
            OperationKind.DECODE, user, CorrectnessOracle(expected=user),
        )
        try:
            with pytest.raises(DecodeError, match="trailing"):
                strategy.decode(state, state.payload + b"\x00")
            assert strategy.decode(state, state.payload) == user
        finally:
            strategy.teardown(state)

    def test_non_dataclass_payload_rejected(self, user: User) -> None:
        """A well-formed msgpack value that is not a User fails."""
        strategy = MsgpackStrategy()
        state: TrialState = strategy.setup(
            OperationKind.DECODE, user, CorrectnessOracle(expected=user),
        )
        try:
            with pytest.raises(DecodeError, match="expected User"):
                strategy.decode(state, b"\x93\x01\x02\x03")
        finally:
            strategy.teardown(state)


# ---------------------------------------------------------------------------
# End-to-end Tests
# ---------------------------------------------------------------------------


class TestEndToEnd:
    """Short benchmark run over every built-in strategy."""

    def test_every_strategy_succeeds(self) -> None:
        """All built-ins pass both trials under two threads."""
        runner = BenchmarkRunner(
            config=RunnerConfig(
                iterations=40,
                warmup_iterations=4,
                threads=2,
                pool=PoolConfig(capacity=2),
            ),
        )
        result: RunResult = runner.run(build_default_registry())
        assert [t.failure for t in result.trials if t.failure] == []
        assert len(result.trials) == 12
        for trial in result.trials:
            assert len(trial.samples) == 40

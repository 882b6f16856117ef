"""Unit tests for core.oracle, core.fixture and core.errors.

Covers the canonical fixture, full and identity comparison modes,
mismatch paths for nested fields, sequence type strictness, and the
error message format shared by the error hierarchy.
"""

import dataclasses

import pytest

from core.errors import (
    BenchmarkError,
    CorrectnessFailure,
    DecodeError,
    PoolExhausted,
    SetupError,
)
from core.fixture import FIXTURE_ID, Address, User, UserService
from core.oracle import CorrectnessOracle, OracleMode


@pytest.fixture
def user() -> User:
    """Return the canonical fixture."""
    return UserService().get()


# ---------------------------------------------------------------------------
# Fixture Tests
# ---------------------------------------------------------------------------


class TestFixture:
    """Tests for the canonical fixture provider."""

    def test_identifier(self, user: User) -> None:
        """Fixture id is the well-known scenario id."""
        assert user.id == FIXTURE_ID == "zzs0"

    def test_nested_address(self, user: User) -> None:
        """Fixture carries a nested Address value."""
        assert isinstance(user.address, Address)
        assert user.address.city == "Guangzhou"

    def test_hobbies_are_tuple(self, user: User) -> None:
        """Sequence field is an immutable tuple."""
        assert isinstance(user.hobbies, tuple)
        assert len(user.hobbies) == 3

    def test_provider_is_deterministic(self) -> None:
        """Two calls return equal values."""
        assert UserService().get() == UserService().get()

    def test_frozen(self, user: User) -> None:
        """Fixture is immutable."""
        with pytest.raises(dataclasses.FrozenInstanceError):
            user.id = "other"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Oracle Tests
# ---------------------------------------------------------------------------


class TestFullMode:
    """Tests for deep comparison (default mode)."""

    def test_default_mode_is_full(self, user: User) -> None:
        """Oracle defaults to FULL."""
        assert CorrectnessOracle(expected=user).mode is OracleMode.FULL

    def test_equal_value_passes(self, user: User) -> None:
        """An equal but distinct instance passes."""
        oracle = CorrectnessOracle(expected=user)
        oracle.check("test", UserService().get())

    def test_scalar_mismatch_reported(self, user: User) -> None:
        """A changed scalar is reported by field name."""
        oracle = CorrectnessOracle(expected=user)
        assert oracle.mismatches(dataclasses.replace(user, age=1)) == ["age"]

    def test_nested_mismatch_reported_with_path(self, user: User) -> None:
        """A changed nested field is reported as a dotted path."""
        oracle = CorrectnessOracle(expected=user)
        broken: User = dataclasses.replace(
            user,
            address=dataclasses.replace(user.address, city="Shenzhen"),
        )
        assert oracle.mismatches(broken) == ["address.city"]

    def test_list_instead_of_tuple_rejected(self, user: User) -> None:
        """A list where the fixture holds a tuple is a mismatch."""
        oracle = CorrectnessOracle(expected=user)
        broken: User = dataclasses.replace(user, hobbies=list(user.hobbies))
        assert oracle.mismatches(broken) == ["hobbies"]

    def test_wrong_root_type_rejected(self, user: User) -> None:
        """A dict shaped like the fixture is still wrong."""
        oracle = CorrectnessOracle(expected=user)
        assert oracle.mismatches(dataclasses.asdict(user)) == ["<type>"]

    def test_check_raises_correctness_failure(self, user: User) -> None:
        """check() raises with every mismatching field listed."""
        oracle = CorrectnessOracle(expected=user)
        broken: User = dataclasses.replace(user, id="zzs1", score=0.0)
        with pytest.raises(CorrectnessFailure, match="id, score") as info:
            oracle.check("codec", broken)
        assert info.value.strategy == "codec"


class TestIdentityMode:
    """Tests for identity-only comparison."""

    def test_only_id_compared(self, user: User) -> None:
        """Non-identity fields may differ."""
        oracle = CorrectnessOracle(expected=user, mode=OracleMode.IDENTITY)
        oracle.check("test", dataclasses.replace(user, name="other"))

    def test_id_mismatch_raises(self, user: User) -> None:
        """Identity mismatch raises CorrectnessFailure."""
        oracle = CorrectnessOracle(expected=user, mode=OracleMode.IDENTITY)
        with pytest.raises(CorrectnessFailure, match="identity compare"):
            oracle.check("test", dataclasses.replace(user, id="nope"))

    def test_missing_attribute_is_mismatch(self, user: User) -> None:
        """A value without the identity field fails."""
        oracle = CorrectnessOracle(expected=user, mode=OracleMode.IDENTITY)
        assert oracle.mismatches(object()) == ["id"]

    def test_empty_identity_fields_rejected(self, user: User) -> None:
        """At least one identity field is required."""
        with pytest.raises(ValueError, match="identity_fields"):
            CorrectnessOracle(expected=user, identity_fields=())


# ---------------------------------------------------------------------------
# Error Tests
# ---------------------------------------------------------------------------


class TestErrors:
    """Tests for the error hierarchy."""

    @pytest.mark.parametrize(
        "cls",
        [SetupError, DecodeError, CorrectnessFailure, PoolExhausted],
    )
    def test_subclasses_carry_strategy(self, cls: type) -> None:
        """Every harness error names its strategy."""
        err: BenchmarkError = cls("msgpack", "bad")
        assert isinstance(err, BenchmarkError)
        assert err.strategy == "msgpack"
        assert err.reason == "bad"
        assert str(err) == "[msgpack] bad"

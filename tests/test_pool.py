"""Unit tests for core.pool module.

Tests the ResourcePool (bounded pool of non-thread-safe instances),
PoolConfig and PoolStats. Covers configuration validation, lazy
creation, reuse, exclusive ownership under concurrency, blocking and
non-blocking exhaustion, release on failure, drain and close.
"""

import threading
import time

import pytest
from pydantic import ValidationError

from core.errors import PoolExhausted
from core.pool import PoolConfig, PoolStats, ResourcePool


class _Codec:
    """Stand-in for a non-thread-safe codec instance."""

    def __init__(self) -> None:
        self.busy: bool = False


def _pool(capacity: int = 2, **kwargs: object) -> ResourcePool[_Codec]:
    return ResourcePool(
        factory=_Codec,
        config=PoolConfig(capacity=capacity, **kwargs),
        name="test",
    )


# ---------------------------------------------------------------------------
# PoolConfig Tests
# ---------------------------------------------------------------------------


class TestPoolConfig:
    """Tests for PoolConfig Pydantic model."""

    def test_defaults(self) -> None:
        """Default capacity is 16, blocking, no checkout timeout."""
        config: PoolConfig = PoolConfig()
        assert config.capacity == 16
        assert config.blocking is True
        assert config.checkout_timeout_seconds is None
        assert config.drain_timeout_seconds == 5.0

    def test_zero_capacity_rejected(self) -> None:
        """capacity=0 is rejected (gt=0)."""
        with pytest.raises(ValidationError):
            PoolConfig(capacity=0)

    def test_non_positive_timeout_rejected(self) -> None:
        """checkout_timeout_seconds must be positive."""
        with pytest.raises(ValidationError):
            PoolConfig(checkout_timeout_seconds=0.0)

    def test_frozen(self) -> None:
        """Frozen model rejects attribute assignment."""
        config: PoolConfig = PoolConfig()
        with pytest.raises(ValidationError):
            config.capacity = 4  # type: ignore[misc]

    def test_extra_fields_rejected(self) -> None:
        """Extra fields are rejected (extra='forbid')."""
        with pytest.raises(ValidationError):
            PoolConfig(size=4)  # type: ignore[call-arg]


# ---------------------------------------------------------------------------
# Checkout / Release Tests
# ---------------------------------------------------------------------------


class TestCheckoutRelease:
    """Tests for basic checkout and release."""

    def test_lazy_creation(self) -> None:
        """No instance is created before the first checkout."""
        pool = _pool()
        assert pool.stats().created == 0

    def test_release_then_reuse(self) -> None:
        """A released instance is handed out again."""
        pool = _pool()
        first: _Codec = pool.checkout()
        pool.release(first)
        second: _Codec = pool.checkout()
        assert second is first
        assert pool.stats().created == 1

    def test_concurrent_holders_get_distinct_instances(self) -> None:
        """Two outstanding checkouts never share an instance."""
        pool = _pool(capacity=2)
        a: _Codec = pool.checkout()
        b: _Codec = pool.checkout()
        assert a is not b
        stats: PoolStats = pool.stats()
        assert stats.in_use == 2
        assert stats.idle == 0

    def test_double_release_rejected(self) -> None:
        """Releasing the same instance twice raises ValueError."""
        pool = _pool()
        instance: _Codec = pool.checkout()
        pool.release(instance)
        with pytest.raises(ValueError, match="not checked out"):
            pool.release(instance)

    def test_foreign_instance_rejected(self) -> None:
        """Releasing an object the pool never issued raises ValueError."""
        pool = _pool()
        with pytest.raises(ValueError, match="not checked out"):
            pool.release(_Codec())

    def test_lease_releases_on_exception(self) -> None:
        """An exception inside lease() still returns the instance."""
        pool = _pool()
        with pool.lease():
            pass
        idle_before: int = pool.stats().idle

        with pytest.raises(RuntimeError, match="boom"):
            with pool.lease():
                raise RuntimeError("boom")

        stats: PoolStats = pool.stats()
        assert stats.idle == idle_before
        assert stats.in_use == 0

    def test_factory_failure_frees_slot(self) -> None:
        """A failing factory does not consume capacity."""
        calls: list[int] = []

        def flaky() -> _Codec:
            calls.append(1)
            if len(calls) == 1:
                raise OSError("cannot build")
            return _Codec()

        pool: ResourcePool[_Codec] = ResourcePool(
            factory=flaky,
            config=PoolConfig(capacity=1, blocking=False),
        )
        with pytest.raises(OSError):
            pool.checkout()
        instance: _Codec = pool.checkout()
        assert pool.stats().created == 1
        pool.release(instance)

    def test_stats_counters(self) -> None:
        """Checkout and release counters track every call."""
        pool = _pool(capacity=2)
        a: _Codec = pool.checkout()
        b: _Codec = pool.checkout()
        pool.release(a)
        pool.release(b)
        pool.release(pool.checkout())

        stats: PoolStats = pool.stats()
        assert stats.total_checkouts == 3
        assert stats.total_releases == 3
        assert stats.peak_in_use == 2
        assert stats.created == 2
        assert stats.idle + stats.in_use == stats.created


# ---------------------------------------------------------------------------
# Exhaustion Tests
# ---------------------------------------------------------------------------


class TestExhaustion:
    """Tests for behaviour at capacity."""

    def test_non_blocking_raises_pool_exhausted(self) -> None:
        """Non-blocking pool at capacity raises PoolExhausted."""
        pool = _pool(capacity=1, blocking=False)
        held: _Codec = pool.checkout()
        with pytest.raises(PoolExhausted, match=r"\[test\]"):
            pool.checkout()
        assert pool.stats().exhausted == 1
        pool.release(held)

    def test_blocking_timeout_raises_pool_exhausted(self) -> None:
        """A bounded blocking wait fails with PoolExhausted."""
        pool = _pool(capacity=1, checkout_timeout_seconds=0.05)
        held: _Codec = pool.checkout()
        start: float = time.monotonic()
        with pytest.raises(PoolExhausted, match="timed out"):
            pool.checkout()
        assert time.monotonic() - start >= 0.04
        pool.release(held)

    def test_blocking_waiter_gets_released_instance(self) -> None:
        """Capacity 1: the second caller blocks until the first releases."""
        pool = _pool(capacity=1)
        held: _Codec = pool.checkout()
        got: list[_Codec] = []
        started: threading.Event = threading.Event()

        def waiter() -> None:
            started.set()
            got.append(pool.checkout())

        thread: threading.Thread = threading.Thread(target=waiter)
        thread.start()
        started.wait(timeout=1.0)
        time.sleep(0.05)
        assert got == []

        pool.release(held)
        thread.join(timeout=2.0)
        assert got == [held]
        assert pool.stats().created == 1
        pool.release(got[0])


# ---------------------------------------------------------------------------
# Concurrency Tests
# ---------------------------------------------------------------------------


class TestConcurrency:
    """Tests for exclusive ownership under contention."""

    def test_never_more_than_capacity_outstanding(self) -> None:
        """With capacity C < N callers, at most C instances are out."""
        capacity: int = 3
        pool = _pool(capacity=capacity)
        lock: threading.Lock = threading.Lock()
        outstanding: list[int] = [0]
        max_seen: list[int] = [0]
        violations: list[str] = []

        def worker() -> None:
            for _ in range(200):
                with pool.lease() as codec:
                    if codec.busy:
                        violations.append("instance shared")
                    codec.busy = True
                    with lock:
                        outstanding[0] += 1
                        max_seen[0] = max(max_seen[0], outstanding[0])
                    time.sleep(0)
                    with lock:
                        outstanding[0] -= 1
                    codec.busy = False

        threads: list[threading.Thread] = [
            threading.Thread(target=worker) for _ in range(8)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10.0)

        stats: PoolStats = pool.stats()
        assert violations == []
        assert max_seen[0] <= capacity
        assert stats.created <= capacity
        assert stats.peak_in_use <= capacity
        assert stats.in_use == 0
        assert stats.total_checkouts == 8 * 200


# ---------------------------------------------------------------------------
# Drain / Close Tests
# ---------------------------------------------------------------------------


class TestDrainClose:
    """Tests for shutdown."""

    def test_close_disposes_idle_instances(self) -> None:
        """close() hands every idle instance to the disposer."""
        disposed: list[_Codec] = []
        pool: ResourcePool[_Codec] = ResourcePool(
            factory=_Codec,
            config=PoolConfig(capacity=2),
            disposer=disposed.append,
        )
        a: _Codec = pool.checkout()
        b: _Codec = pool.checkout()
        pool.release(a)
        pool.release(b)

        pool.close()
        assert len(disposed) == 2
        assert pool.stats().idle == 0

    def test_checkout_after_close_rejected(self) -> None:
        """A closed pool refuses new checkouts."""
        pool = _pool()
        pool.close()
        with pytest.raises(RuntimeError, match="closed"):
            pool.checkout()

    def test_close_is_idempotent(self) -> None:
        """Closing twice is harmless."""
        pool = _pool()
        pool.close()
        pool.close()

    def test_close_with_leaked_lease_raises(self) -> None:
        """close() reports checkouts that never came back."""
        pool = _pool()
        pool.checkout()
        with pytest.raises(RuntimeError, match="leaked"):
            pool.close(timeout=0.05)

    def test_drain_waits_for_in_flight_lease(self) -> None:
        """drain() returns True once a concurrent holder releases."""
        pool = _pool()
        held: _Codec = pool.checkout()
        timer: threading.Timer = threading.Timer(0.05, pool.release, (held,))
        timer.start()
        assert pool.drain(timeout=2.0) is True
        timer.join()
        assert pool.stats().in_use == 0

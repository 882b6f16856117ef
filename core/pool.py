"""Bounded checkout/release pool for non-thread-safe codec instances.

Some codecs expose runtime objects (packers, encoders with internal
buffers) that must never be used by two threads at once, yet are too
expensive to construct per call: construction cost would dominate the
measurement. ``ResourcePool`` hands out such instances with exclusive,
temporary ownership.

Capacity contract:
    Capacity is fixed at construction (default 16). Instances are
    created lazily, on demand, up to capacity and are then reused
    forever. The pool never resets an instance between uses; it relies
    on the codec's own guarantees.

Ownership:
    - Idle instance: owned by the pool.
    - Checked-out instance: owned exclusively by the caller until
      ``release()``.
    - Every successful ``checkout()`` must be paired with exactly one
      ``release()`` on every exit path. Use ``lease()`` to get that
      pairing for free.

Thread safety:
    All state is guarded by a single ``threading.Condition``. The
    factory runs **outside** the lock so slow construction never
    blocks releases; a capacity slot is reserved before the factory is
    called and returned if the factory raises.

Exhaustion policy:
    - ``blocking=True`` (default): the caller waits until an instance
      is released. With ``checkout_timeout_seconds`` set, the wait is
      bounded and expiry raises :class:`PoolExhausted`.
    - ``blocking=False``: raises :class:`PoolExhausted` immediately.

Shutdown:
    ``drain()`` refuses new checkouts and waits for in-flight leases to
    come back. ``close()`` drains and then disposes idle instances. A
    drain that times out is reported as ``RuntimeError`` rather than
    silently orphaning exclusive ownership.

Example:
    >>> from core.pool import PoolConfig, ResourcePool
    >>> pool = ResourcePool(factory=list, config=PoolConfig(capacity=2))
    >>> with pool.lease() as buf:
    ...     buf.append(1)
    >>> pool.stats().idle
    1
    >>> pool.close()
"""

import contextlib
import logging
import threading
import time
from typing import Callable, Generic, Iterator, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from core.errors import PoolExhausted

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")
"""Type of the pooled codec instance."""


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class PoolConfig(BaseModel):
    """Configuration for :class:`ResourcePool`.

    Attributes:
        capacity: Maximum number of instances ever created. Must be
            greater than zero. Default 16.
        blocking: Wait for a release when at capacity (``True``) or
            raise :class:`PoolExhausted` immediately (``False``).
        checkout_timeout_seconds: Upper bound on a blocking wait.
            ``None`` waits indefinitely.
        drain_timeout_seconds: Upper bound on waiting for in-flight
            leases during ``close()``.

    Example:
        >>> PoolConfig().capacity
        16
        >>> PoolConfig(capacity=1, blocking=False).blocking
        False
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    capacity: int = Field(
        default=16,
        gt=0,
        description="Maximum number of pooled instances. Default 16.",
    )
    blocking: bool = Field(
        default=True,
        description="Block on exhaustion (True) or raise PoolExhausted.",
    )
    checkout_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Bound on blocking checkout wait. None = wait forever.",
    )
    drain_timeout_seconds: float = Field(
        default=5.0,
        gt=0.0,
        description="Bound on waiting for in-flight leases on close().",
    )


# ---------------------------------------------------------------------------
# Stats Model
# ---------------------------------------------------------------------------


class PoolStats(BaseModel):
    """Immutable snapshot of pool statistics.

    Taken under the pool lock, so all fields are mutually consistent.
    Until ``close()`` disposes the idle set, ``idle + in_use == created``
    holds.

    Attributes:
        capacity: Configured capacity.
        created: Instances constructed so far.
        idle: Instances currently owned by the pool.
        in_use: Instances currently checked out.
        peak_in_use: Highest ``in_use`` ever observed.
        total_checkouts: Successful checkouts.
        total_releases: Releases.
        exhausted: Checkouts that failed with :class:`PoolExhausted`.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    capacity: int = Field(gt=0, description="Configured capacity.")
    created: int = Field(ge=0, description="Instances constructed.")
    idle: int = Field(ge=0, description="Instances owned by the pool.")
    in_use: int = Field(ge=0, description="Instances checked out.")
    peak_in_use: int = Field(ge=0, description="Peak concurrent checkouts.")
    total_checkouts: int = Field(ge=0, description="Successful checkouts.")
    total_releases: int = Field(ge=0, description="Releases.")
    exhausted: int = Field(ge=0, description="Failed checkouts.")


# ---------------------------------------------------------------------------
# Pool
# ---------------------------------------------------------------------------


class ResourcePool(Generic[T]):
    """Bounded pool of reusable, non-thread-safe instances.

    Args:
        factory: Zero-argument callable creating one instance.
        config: Pool configuration. Defaults to ``PoolConfig()``.
        name: Label used in logs and in :class:`PoolExhausted`
            (usually the owning strategy's name).
        disposer: Optional callable invoked on each idle instance
            during ``close()``.

    Example:
        >>> pool: ResourcePool[bytearray] = ResourcePool(
        ...     factory=bytearray,
        ...     config=PoolConfig(capacity=4),
        ...     name="demo",
        ... )
        >>> buf = pool.checkout()
        >>> try:
        ...     buf.extend(b"abc")
        ... finally:
        ...     pool.release(buf)
    """

    def __init__(
        self,
        factory: Callable[[], T],
        config: PoolConfig | None = None,
        name: str = "pool",
        disposer: Callable[[T], None] | None = None,
    ) -> None:
        self._factory: Callable[[], T] = factory
        self._config: PoolConfig = config or PoolConfig()
        self._capacity: int = self._config.capacity
        self._name: str = name
        self._disposer: Callable[[T], None] | None = disposer

        self._cond: threading.Condition = threading.Condition()
        self._idle: list[T] = []
        # Checked-out instances keyed by id(); identity, not equality
        self._in_use: dict[int, T] = {}
        # Slots reserved while a factory call is in flight
        self._creating: int = 0
        self._created: int = 0
        self._closing: bool = False

        self._peak_in_use: int = 0
        self._total_checkouts: int = 0
        self._total_releases: int = 0
        self._exhausted: int = 0

        logger.debug(
            "ResourcePool %s created with capacity=%d blocking=%s",
            self._name,
            self._capacity,
            self._config.blocking,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def capacity(self) -> int:
        return self._capacity

    # ------------------------------------------------------------------
    # Checkout / Release
    # ------------------------------------------------------------------

    def checkout(self) -> T:
        """Take exclusive ownership of one instance.

        Order of preference: an idle instance, then a newly created
        one if below capacity, then waiting for a release.

        Returns:
            A pooled instance no other caller currently holds.

        Raises:
            PoolExhausted: Non-blocking pool at capacity, or the
                blocking wait exceeded ``checkout_timeout_seconds``.
            RuntimeError: The pool is draining or closed.
            Exception: Whatever the factory raised while creating a
                new instance (the reserved slot is returned first).
        """
        timeout: float | None = self._config.checkout_timeout_seconds
        deadline: float | None = (
            time.monotonic() + timeout if timeout is not None else None
        )

        with self._cond:
            while True:
                if self._closing:
                    raise RuntimeError(f"Pool {self._name} is closed")
                if self._idle:
                    instance: T = self._idle.pop()
                    self._mark_checked_out(instance)
                    return instance
                if self._created + self._creating < self._capacity:
                    self._creating += 1
                    break
                if not self._config.blocking:
                    self._exhausted += 1
                    raise PoolExhausted(
                        self._name,
                        f"no instance available (capacity={self._capacity})",
                    )
                remaining: float | None = None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self._exhausted += 1
                        raise PoolExhausted(
                            self._name,
                            f"checkout timed out after {timeout}s "
                            f"(capacity={self._capacity})",
                        )
                self._cond.wait(timeout=remaining)

        # Slot reserved; construct outside the lock
        try:
            instance = self._factory()
        except Exception:
            with self._cond:
                self._creating -= 1
                self._cond.notify()
            raise

        with self._cond:
            self._creating -= 1
            self._created += 1
            self._mark_checked_out(instance)
        logger.debug(
            "ResourcePool %s created instance %d/%d",
            self._name,
            self._created,
            self._capacity,
        )
        return instance

    def release(self, instance: T) -> None:
        """Return a checked-out instance to the idle set.

        Must be called exactly once per successful :meth:`checkout`,
        even if the caller's own operation failed.

        Args:
            instance: The instance obtained from :meth:`checkout`.

        Raises:
            ValueError: If ``instance`` is not currently checked out
                from this pool (double release or foreign object).
        """
        with self._cond:
            if self._in_use.pop(id(instance), None) is None:
                raise ValueError(
                    f"Instance is not checked out from pool {self._name}"
                )
            self._idle.append(instance)
            self._total_releases += 1
            self._cond.notify_all()

    @contextlib.contextmanager
    def lease(self) -> Iterator[T]:
        """Check out an instance for the duration of a ``with`` block.

        The instance is released on every exit path, including
        exceptions raised inside the block.

        Example:
            >>> with pool.lease() as packer:
            ...     data = packer.pack(value)
        """
        instance: T = self.checkout()
        try:
            yield instance
        finally:
            self.release(instance)

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def drain(self, timeout: float | None = None) -> bool:
        """Stop new checkouts and wait for in-flight leases to return.

        Waiters blocked in :meth:`checkout` are woken and fail with
        ``RuntimeError``.

        Args:
            timeout: Seconds to wait. ``None`` uses
                ``drain_timeout_seconds`` from the config.

        Returns:
            ``True`` if every instance is back in the pool.
        """
        wait_for: float = (
            timeout if timeout is not None
            else self._config.drain_timeout_seconds
        )
        with self._cond:
            self._closing = True
            self._cond.notify_all()
            drained: bool = self._cond.wait_for(
                lambda: not self._in_use and self._creating == 0,
                timeout=wait_for,
            )
        if not drained:
            logger.warning(
                "ResourcePool %s drain timed out with %d leases outstanding",
                self._name,
                len(self._in_use),
            )
        return drained

    def close(self, timeout: float | None = None) -> None:
        """Drain the pool and dispose of all idle instances.

        Idempotent.

        Raises:
            RuntimeError: If in-flight leases did not return in time.
        """
        if not self.drain(timeout=timeout):
            raise RuntimeError(
                f"Pool {self._name} closed with "
                f"{self.stats().in_use} leaked checkout(s)"
            )
        with self._cond:
            idle: list[T] = self._idle
            self._idle = []
        if self._disposer is not None:
            for instance in idle:
                self._disposer(instance)
        logger.debug(
            "ResourcePool %s closed (created=%d, checkouts=%d)",
            self._name,
            self._created,
            self._total_checkouts,
        )

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def stats(self) -> PoolStats:
        """Return a consistent snapshot of pool statistics."""
        with self._cond:
            return PoolStats(
                capacity=self._capacity,
                created=self._created,
                idle=len(self._idle),
                in_use=len(self._in_use),
                peak_in_use=self._peak_in_use,
                total_checkouts=self._total_checkouts,
                total_releases=self._total_releases,
                exhausted=self._exhausted,
            )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _mark_checked_out(self, instance: T) -> None:
        # Caller holds self._cond
        self._in_use[id(instance)] = instance
        self._total_checkouts += 1
        if len(self._in_use) > self._peak_in_use:
            self._peak_in_use = len(self._in_use)

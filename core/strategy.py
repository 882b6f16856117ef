"""Strategy contract and per-trial state.

A *strategy* is one way to turn the fixture into bytes and back. The
runner only ever talks to this contract, so adding a codec means
subclassing :class:`Strategy`; the measurement loop and the pool never
special-case a strategy.

Lifecycle of one trial (one strategy, one :class:`OperationKind`)::

    state = strategy.setup(kind, fixture, oracle, pool_config)
    try:
        for _ in range(n):
            strategy.encode(state, fixture)   # or decode(state, payload)
    finally:
        strategy.teardown(state)

Implementer hooks:
    - ``create_config()``: build the codec's reusable configuration
      object (mapper, encoder/decoder pair, schema). Called **once per
      process** per strategy via :meth:`Strategy.shared_config`; the
      result is shared by reference into every trial and must be
      read-only after creation.
    - ``create_codec(config)``: build one non-thread-safe runtime
      instance. Only called by the pool of strategies that set
      ``requires_pool = True``.
    - ``encode`` / ``decode``: the measured operations. Pooled
      strategies lease their instance with ``state.lease()``.

Setup probe:
    ``setup()`` encodes the fixture exactly once, decodes the result
    and runs the oracle on it. The payload becomes the decode-trial
    input and its length the reported encoded size. Any failure is
    wrapped in :class:`SetupError` and all acquired resources are
    released before raising.
"""

import contextlib
import logging
import threading
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Iterator

from core.errors import SetupError
from core.fixture import User
from core.oracle import CorrectnessOracle
from core.pool import PoolConfig, ResourcePool

logger: logging.Logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Process-wide shared configuration objects
# ---------------------------------------------------------------------------

_SHARED_CONFIGS: dict[str, Any] = {}
_SHARED_CONFIGS_LOCK: threading.Lock = threading.Lock()


class OperationKind(str, Enum):
    """Which operation a trial measures."""

    ENCODE = "encode"
    DECODE = "decode"


# ---------------------------------------------------------------------------
# Trial State
# ---------------------------------------------------------------------------


class TrialState:
    """Materialized setup output for one strategy's benchmark phase.

    Owned by exactly one strategy for one trial and never shared
    across strategies. Immutable after setup except for the pool's own
    internal bookkeeping.

    Attributes:
        strategy_name: Owning strategy.
        kind: Operation measured by this trial.
        fixture: The canonical value.
        config: Shared configuration object, or ``None``.
        pool: Resource pool for pooled strategies, or ``None``.
        payload: Fixture encoded once during setup.
        encoded_size: ``len(payload)``, reported once per trial.
        setup_encodes: Encodes performed during setup (always 1).
    """

    __slots__ = (
        "strategy_name",
        "kind",
        "fixture",
        "config",
        "pool",
        "payload",
        "encoded_size",
        "setup_encodes",
    )

    def __init__(
        self,
        strategy_name: str,
        kind: OperationKind,
        fixture: User,
        config: Any = None,
        pool: ResourcePool[Any] | None = None,
    ) -> None:
        self.strategy_name: str = strategy_name
        self.kind: OperationKind = kind
        self.fixture: User = fixture
        self.config: Any = config
        self.pool: ResourcePool[Any] | None = pool
        self.payload: bytes = b""
        self.encoded_size: int = 0
        self.setup_encodes: int = 0

    @contextlib.contextmanager
    def lease(self) -> Iterator[Any]:
        """Lease a pooled codec instance for one encode/decode call.

        Raises:
            RuntimeError: If this trial has no pool.
        """
        if self.pool is None:
            raise RuntimeError(
                f"Strategy {self.strategy_name} has no resource pool"
            )
        with self.pool.lease() as instance:
            yield instance


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class Strategy(ABC):
    """Base class for all encoding strategies.

    Subclasses set :attr:`name`, optionally :attr:`requires_pool`, and
    implement :meth:`encode` / :meth:`decode`. Strategies hold no
    mutable state of their own.

    Class attributes:
        name: Unique registry name.
        requires_pool: ``True`` if runtime codec instances are not
            safe for concurrent reuse and must be pooled.
    """

    name: ClassVar[str] = ""
    requires_pool: ClassVar[bool] = False

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def create_config(self) -> Any:
        """Build the reusable configuration object. Default: none."""
        return None

    def create_codec(self, config: Any) -> Any:
        """Build one pooled runtime instance."""
        raise NotImplementedError(
            f"Strategy {self.name} requires a pool but has no create_codec()"
        )

    @abstractmethod
    def encode(self, state: TrialState, value: User) -> bytes:
        """Encode ``value``. Raises :class:`EncodeError` on failure."""

    @abstractmethod
    def decode(self, state: TrialState, payload: bytes) -> User:
        """Decode ``payload``. Raises :class:`DecodeError` on failure."""

    # ------------------------------------------------------------------
    # Shared configuration
    # ------------------------------------------------------------------

    def shared_config(self) -> Any:
        """Return the process-wide configuration object for this strategy.

        Created on first use under a lock, then reused for the life of
        the process. Never reinitialized mid-run.
        """
        key: str = f"{type(self).__module__}.{type(self).__qualname__}"
        with _SHARED_CONFIGS_LOCK:
            if key not in _SHARED_CONFIGS:
                _SHARED_CONFIGS[key] = self.create_config()
                logger.debug("Created shared config for %s", self.name)
            return _SHARED_CONFIGS[key]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def setup(
        self,
        kind: OperationKind,
        fixture: User,
        oracle: CorrectnessOracle,
        pool_config: PoolConfig | None = None,
    ) -> TrialState:
        """Acquire trial resources and run the probe round-trip.

        Args:
            kind: Operation the trial will measure.
            fixture: Canonical value from the fixture provider.
            oracle: Oracle the probe decode must pass.
            pool_config: Pool configuration for pooled strategies.

        Returns:
            A ready :class:`TrialState`.

        Raises:
            SetupError: On any failure, with the cause chained. All
                resources acquired so far are released first.
        """
        state: TrialState | None = None
        try:
            config: Any = self.shared_config()
            pool: ResourcePool[Any] | None = None
            if self.requires_pool:
                pool = ResourcePool(
                    factory=lambda: self.create_codec(config),
                    config=pool_config,
                    name=self.name,
                )
            state = TrialState(
                strategy_name=self.name,
                kind=kind,
                fixture=fixture,
                config=config,
                pool=pool,
            )

            payload: bytes = self.encode(state, fixture)
            state.setup_encodes += 1
            oracle.check(self.name, self.decode(state, payload))

            state.payload = payload
            state.encoded_size = len(payload)
        except Exception as exc:
            if state is not None:
                self._release_quietly(state)
            raise SetupError(
                self.name,
                f"setup failed: {type(exc).__name__}: {exc}",
            ) from exc

        logger.info(
            "%s serialized data size: %d bytes",
            self.name,
            state.encoded_size,
        )
        return state

    def teardown(self, state: TrialState) -> None:
        """Release trial resources.

        Drains and closes the pool, so no exclusive ownership survives
        the trial.

        Raises:
            RuntimeError: If pooled instances were still checked out
                after the drain timeout.
        """
        if state.pool is not None:
            state.pool.close()

    def _release_quietly(self, state: TrialState) -> None:
        # Setup is already failing; keep the original error primary
        try:
            self.teardown(state)
        except Exception:
            logger.exception(
                "Teardown after failed setup of %s also failed", self.name,
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

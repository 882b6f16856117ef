"""Error taxonomy for the codec benchmark harness.

Every error raised by the harness is strategy-local: it names the
strategy it belongs to so the runner can mark exactly that trial as
failed while sibling strategies keep running.

Hierarchy::

    BenchmarkError
    ├── SetupError          expensive-resource acquisition or probe failed
    ├── EncodeError         codec rejected the fixture on encode
    ├── DecodeError         codec rejected a payload it produced itself
    ├── CorrectnessFailure  decoded value / encoded size diverged
    ├── TrialAborted        run cancelled mid-trial
    └── PoolExhausted       no pooled instance available (misconfiguration)

None of these are ever retried. Payloads are deterministic, so a retry
would reproduce the same failure.
"""


class BenchmarkError(Exception):
    """Base class for all harness errors.

    Args:
        strategy: Name of the strategy (or pool) the error belongs to.
        reason: Human-readable failure reason.

    Example:
        >>> err = DecodeError("pickle", "invalid load key")
        >>> str(err)
        '[pickle] invalid load key'
        >>> err.strategy
        'pickle'
    """

    def __init__(self, strategy: str, reason: str) -> None:
        super().__init__(f"[{strategy}] {reason}")
        self.strategy: str = strategy
        self.reason: str = reason


class SetupError(BenchmarkError):
    """A strategy's setup failed; the strategy is excluded from the run."""


class EncodeError(BenchmarkError):
    """A codec failed to encode the fixture."""


class DecodeError(BenchmarkError):
    """A codec rejected a payload it should have been able to decode."""


class CorrectnessFailure(BenchmarkError):
    """Decoded value or encoded output diverged from the known fixture."""


class TrialAborted(BenchmarkError):
    """The run was aborted while this strategy's trial was in progress."""


class PoolExhausted(BenchmarkError):
    """No pooled instance became available.

    Raised by a non-blocking pool at capacity, or by a blocking pool
    whose checkout timeout expired. Under a correct configuration
    (capacity >= concurrent workers) this never happens.
    """

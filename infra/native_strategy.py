"""Native object-graph serialization strategy (``pickle``).

The platform's own serializer: no configuration object, no pooling.
``pickle.dumps`` / ``pickle.loads`` are reentrant and safe to call
from any number of threads.

The protocol is pinned (``pickle.HIGHEST_PROTOCOL`` at import time) so
the encoded size is stable for the life of the process.
"""

import pickle

from core.errors import DecodeError, EncodeError
from core.fixture import User
from core.strategy import Strategy, TrialState

PICKLE_PROTOCOL: int = pickle.HIGHEST_PROTOCOL


class PickleStrategy(Strategy):
    """Round-trips the fixture through ``pickle``."""

    name = "pickle"

    def encode(self, state: TrialState, value: User) -> bytes:
        try:
            return pickle.dumps(value, protocol=PICKLE_PROTOCOL)
        except Exception as exc:
            raise EncodeError(self.name, f"{type(exc).__name__}: {exc}") from exc

    def decode(self, state: TrialState, payload: bytes) -> User:
        try:
            return pickle.loads(payload)
        except Exception as exc:
            raise DecodeError(self.name, f"{type(exc).__name__}: {exc}") from exc

"""Reflection-based binary strategy backed by ``msgspec.msgpack``.

``msgspec`` introspects the ``User`` dataclass once, when the encoder
and decoder are built, and then encodes and decodes without any
per-call reflection. Building that pair is the expensive part, so it is
the strategy's shared configuration object: created once per process
and reused by every trial.

Thread safety:
    ``Encoder.encode`` allocates a fresh output buffer per call and
    ``Decoder.decode`` keeps no state between calls, so one pair is
    shared read-only by all worker threads; no pooling required.

Validation:
    The decoder is typed (``Decoder(User)``), so structurally wrong
    payloads fail inside msgspec with ``msgspec.ValidationError`` (a
    subclass of ``msgspec.DecodeError``) rather than producing a
    half-built value.
"""

from typing import NamedTuple

import msgspec

from core.errors import DecodeError, EncodeError
from core.fixture import User
from core.strategy import Strategy, TrialState


class MsgspecCodec(NamedTuple):
    """Shared, read-only encoder/decoder pair."""

    encoder: msgspec.msgpack.Encoder
    decoder: msgspec.msgpack.Decoder


class MsgspecStrategy(Strategy):
    """Typed msgpack round-trip with a shared encoder/decoder pair."""

    name = "msgspec"

    def create_config(self) -> MsgspecCodec:
        return MsgspecCodec(
            encoder=msgspec.msgpack.Encoder(),
            decoder=msgspec.msgpack.Decoder(User),
        )

    def encode(self, state: TrialState, value: User) -> bytes:
        try:
            return state.config.encoder.encode(value)
        except Exception as exc:
            raise EncodeError(self.name, f"{type(exc).__name__}: {exc}") from exc

    def decode(self, state: TrialState, payload: bytes) -> User:
        try:
            return state.config.decoder.decode(payload)
        except msgspec.DecodeError as exc:
            raise DecodeError(self.name, str(exc)) from exc

"""JSON text strategies.

Two JSON codecs with different binding models:

- :class:`PydanticJsonStrategy` (``"pydantic"``): a reusable
  ``TypeAdapter(User)`` is the shared configuration object. It builds
  the validation and serialization schema once; ``dump_json`` and
  ``validate_json`` are then reentrant and run in pydantic-core.
- :class:`OrjsonStrategy` (``"orjson"``): a stateless fast path.
  ``orjson.dumps`` serializes dataclasses natively; decoding parses to
  plain ``dict``/``list`` and rebuilds the dataclasses by hand.

Neither strategy needs pooling.
"""

from typing import Any

import orjson
from pydantic import TypeAdapter, ValidationError

from core.errors import DecodeError, EncodeError
from core.fixture import Address, User
from core.strategy import Strategy, TrialState


class PydanticJsonStrategy(Strategy):
    """JSON round-trip through a shared ``TypeAdapter``."""

    name = "pydantic"

    def create_config(self) -> TypeAdapter[User]:
        return TypeAdapter(User)

    def encode(self, state: TrialState, value: User) -> bytes:
        try:
            return state.config.dump_json(value)
        except Exception as exc:
            raise EncodeError(self.name, f"{type(exc).__name__}: {exc}") from exc

    def decode(self, state: TrialState, payload: bytes) -> User:
        try:
            return state.config.validate_json(payload)
        except ValidationError as exc:
            raise DecodeError(
                self.name, f"{exc.error_count()} validation error(s): {exc}",
            ) from exc


class OrjsonStrategy(Strategy):
    """Stateless JSON round-trip with ``orjson``."""

    name = "orjson"

    def encode(self, state: TrialState, value: User) -> bytes:
        try:
            return orjson.dumps(value)
        except orjson.JSONEncodeError as exc:
            raise EncodeError(self.name, str(exc)) from exc

    def decode(self, state: TrialState, payload: bytes) -> User:
        try:
            data: Any = orjson.loads(payload)
            return _user_from_dict(data)
        except Exception as exc:
            raise DecodeError(self.name, f"{type(exc).__name__}: {exc}") from exc


def _user_from_dict(data: dict[str, Any]) -> User:
    fields: dict[str, Any] = dict(data)
    fields["address"] = Address(**fields["address"])
    fields["hobbies"] = tuple(fields["hobbies"])
    return User(**fields)

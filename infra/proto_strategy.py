"""Schema-driven binary strategy backed by ``betterproto``.

Protocol Buffers needs a schema. The wire schema lives here as
``betterproto`` message classes mirroring :class:`~core.fixture.User`
and :class:`~core.fixture.Address` field for field. The strategy's
shared configuration is a :class:`ProtoSchema`: the field-name mapping
between the fixture dataclasses and the messages, computed and checked
once per process. A fixture field with no message counterpart fails
setup instead of being dropped silently on the wire.

Wire notes:
    - proto3 semantics: zero values (``age=0``, ``deleted=False``) are
      not written, so they cost no bytes.
    - ``hobbies`` is a repeated string field; it is decoded as a list
      and converted back to ``tuple`` to match the fixture.

Thread safety:
    Every encode builds a fresh message and every decode parses into a
    fresh message. The schema is read-only after creation, so no
    pooling is required.
"""

import dataclasses
from dataclasses import dataclass
from typing import Any, List

import betterproto

from core.errors import DecodeError, EncodeError
from core.fixture import Address, User
from core.strategy import Strategy, TrialState


# ---------------------------------------------------------------------------
# Wire messages
# ---------------------------------------------------------------------------


@dataclass(eq=False, repr=False)
class AddressMessage(betterproto.Message):
    province: str = betterproto.string_field(1)
    city: str = betterproto.string_field(2)
    street: str = betterproto.string_field(3)
    postcode: str = betterproto.string_field(4)


@dataclass(eq=False, repr=False)
class UserMessage(betterproto.Message):
    id: str = betterproto.string_field(1)
    name: str = betterproto.string_field(2)
    age: int = betterproto.int32_field(3)
    male: bool = betterproto.bool_field(4)
    phone: str = betterproto.string_field(5)
    email: str = betterproto.string_field(6)
    score: float = betterproto.double_field(7)
    deleted: bool = betterproto.bool_field(8)
    create_time: int = betterproto.int64_field(9)
    address: AddressMessage = betterproto.message_field(10)
    hobbies: List[str] = betterproto.string_field(11)


# ---------------------------------------------------------------------------
# Runtime schema
# ---------------------------------------------------------------------------


class ProtoSchema:
    """Cached mapping between fixture dataclasses and wire messages.

    Thread safety:
        Immutable after ``__init__``; safe to share across threads.
    """

    __slots__ = ("user_fields", "address_fields")

    def __init__(self) -> None:
        self.user_fields: tuple[str, ...] = _checked_fields(User, UserMessage)
        self.address_fields: tuple[str, ...] = _checked_fields(
            Address, AddressMessage,
        )

    def to_message(self, value: User) -> UserMessage:
        kwargs: dict[str, Any] = {
            name: getattr(value, name) for name in self.user_fields
        }
        kwargs["address"] = AddressMessage(
            **{name: getattr(value.address, name) for name in self.address_fields}
        )
        kwargs["hobbies"] = list(value.hobbies)
        return UserMessage(**kwargs)

    def from_message(self, message: UserMessage) -> User:
        kwargs: dict[str, Any] = {
            name: getattr(message, name) for name in self.user_fields
        }
        kwargs["address"] = Address(
            **{name: getattr(message.address, name) for name in self.address_fields}
        )
        kwargs["hobbies"] = tuple(message.hobbies)
        return User(**kwargs)


def _checked_fields(model: type, message: type) -> tuple[str, ...]:
    names: tuple[str, ...] = tuple(f.name for f in dataclasses.fields(model))
    wire: set[str] = {f.name for f in dataclasses.fields(message)}
    missing: list[str] = [name for name in names if name not in wire]
    if missing:
        raise TypeError(
            f"{message.__name__} has no field for {model.__name__}."
            f"{', '.join(missing)}"
        )
    return names


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class ProtobufStrategy(Strategy):
    """Protocol Buffers round-trip through a cached runtime schema."""

    name = "protobuf"

    def create_config(self) -> ProtoSchema:
        return ProtoSchema()

    def encode(self, state: TrialState, value: User) -> bytes:
        try:
            return bytes(state.config.to_message(value))
        except Exception as exc:
            raise EncodeError(self.name, f"{type(exc).__name__}: {exc}") from exc

    def decode(self, state: TrialState, payload: bytes) -> User:
        try:
            message: UserMessage = UserMessage().parse(payload)
            return state.config.from_message(message)
        except Exception as exc:
            raise DecodeError(self.name, f"{type(exc).__name__}: {exc}") from exc

"""General-purpose binary graph strategy backed by ``msgpack``.

Mirrors the behavior of a registration-free binary object codec:

- **Registration-free**: every dataclass is written with its fully
  qualified type name (``"core.fixture:User"``) and resolved by import
  on decode. No type has to be registered up front.
- **No reference tracking**: values are written as a tree; shared or
  cyclic references are not preserved. The fixture has neither.
- **Constructor-bypassing instantiation**: decoded dataclasses are
  created with ``object.__new__`` and populated field by field with
  ``object.__setattr__``, so ``__init__``/``__post_init__`` never run
  and frozen dataclasses are supported.

Pooling:
    ``msgpack.Packer`` and ``msgpack.Unpacker`` keep internal buffers and
    are **not** safe for concurrent use. Each pooled instance pairs one
    of each and is leased from the trial's
    :class:`~core.pool.ResourcePool` (capacity 16 by default) for both
    encode and decode calls. ``Packer.pack`` resets its buffer when
    packing raises; a failed unpack replaces the unpacker.

Wire shape (one ``User``)::

    {"__type__": "core.fixture:User", "id": "zzs0", ...,
     "address": {"__type__": "core.fixture:Address", ...},
     "hobbies": ["reading", ...]}

Arrays are decoded with ``use_list=False`` so sequences come back as
``tuple``, matching the fixture.
"""

import dataclasses
import functools
import importlib
from typing import Any

import msgpack

from core.errors import DecodeError, EncodeError
from core.fixture import User
from core.strategy import Strategy, TrialState

_TYPE_KEY: str = "__type__"
"""Map key carrying the qualified type name of an encoded dataclass."""


# ---------------------------------------------------------------------------
# Reflection helpers
# ---------------------------------------------------------------------------


def _type_name(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


@functools.lru_cache(maxsize=128)
def _resolve_type(name: str) -> type:
    """Resolve ``"module:qualname"`` to a dataclass type.

    Raises:
        TypeError: If the name is malformed or not a dataclass.
    """
    module_name, sep, qualname = name.partition(":")
    if not sep or not module_name or not qualname:
        raise TypeError(f"Malformed type name {name!r}")
    target: Any = importlib.import_module(module_name)
    for part in qualname.split("."):
        target = getattr(target, part)
    if not (isinstance(target, type) and dataclasses.is_dataclass(target)):
        raise TypeError(f"{name!r} is not a dataclass type")
    return target


def _pack_default(obj: Any) -> Any:
    """msgpack ``default`` hook: dataclass instance -> tagged map."""
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        data: dict[str, Any] = {_TYPE_KEY: _type_name(type(obj))}
        for field in dataclasses.fields(obj):
            data[field.name] = getattr(obj, field.name)
        return data
    raise TypeError(f"Cannot serialize {type(obj).__name__!r}")


def _unpack_hook(data: dict[str, Any]) -> Any:
    """msgpack ``object_hook``: tagged map -> dataclass, no ``__init__``."""
    name: Any = data.get(_TYPE_KEY)
    if name is None:
        return data
    cls: type = _resolve_type(name)
    instance: Any = object.__new__(cls)
    for field in dataclasses.fields(cls):
        object.__setattr__(instance, field.name, data[field.name])
    return instance


_UNPACK_OPTIONS: dict[str, Any] = {
    "raw": False,
    "use_list": False,
    "strict_map_key": True,
    "object_hook": _unpack_hook,
}
"""Read-only options for every pooled unpacker."""


class _Codec:
    """One pooled packer/unpacker pair, never shared between threads."""

    __slots__ = ("packer", "unpacker")

    def __init__(self) -> None:
        self.packer: msgpack.Packer = msgpack.Packer(
            default=_pack_default,
            use_bin_type=True,
            autoreset=True,
        )
        self.unpacker: msgpack.Unpacker = msgpack.Unpacker(**_UNPACK_OPTIONS)

    def unpack(self, payload: bytes) -> Any:
        """Decode exactly one value from ``payload``.

        The unpacker is rebuilt after any failure so bytes left in its
        buffer never leak into the next call.

        Raises:
            ValueError: If ``payload`` holds trailing bytes.
        """
        start: int = self.unpacker.tell()
        self.unpacker.feed(payload)
        try:
            value: Any = self.unpacker.unpack()
            consumed: int = self.unpacker.tell() - start
            if consumed != len(payload):
                raise ValueError(
                    f"{len(payload) - consumed} trailing byte(s) after value"
                )
        except Exception:
            self.unpacker = msgpack.Unpacker(**_UNPACK_OPTIONS)
            raise
        return value


# ---------------------------------------------------------------------------
# Strategy
# ---------------------------------------------------------------------------


class MsgpackStrategy(Strategy):
    """Pooled ``msgpack`` round-trip with reflective instantiation."""

    name = "msgpack"
    requires_pool = True

    def create_codec(self, config: Any) -> _Codec:
        return _Codec()

    def encode(self, state: TrialState, value: User) -> bytes:
        with state.lease() as codec:
            try:
                return codec.packer.pack(value)
            except Exception as exc:
                raise EncodeError(
                    self.name, f"{type(exc).__name__}: {exc}",
                ) from exc

    def decode(self, state: TrialState, payload: bytes) -> User:
        with state.lease() as codec:
            try:
                value: Any = codec.unpack(payload)
            except Exception as exc:
                raise DecodeError(
                    self.name, f"{type(exc).__name__}: {exc}",
                ) from exc
        if not isinstance(value, User):
            raise DecodeError(
                self.name,
                f"payload decoded to {type(value).__name__}, expected User",
            )
        return value

"""Built-in encoding strategies.

Each module adapts one third-party (or native) serializer to the
:class:`~core.strategy.Strategy` contract. :func:`build_default_registry`
returns a registry holding all of them in reporting order.
"""

from core.registry import StrategyRegistry
from infra.json_strategies import OrjsonStrategy, PydanticJsonStrategy
from infra.msgpack_strategy import MsgpackStrategy
from infra.msgspec_strategy import MsgspecStrategy
from infra.native_strategy import PickleStrategy
from infra.proto_strategy import ProtobufStrategy


def build_default_registry() -> StrategyRegistry:
    """Return a registry with every built-in strategy registered."""
    return StrategyRegistry(
        [
            MsgpackStrategy(),
            MsgspecStrategy(),
            ProtobufStrategy(),
            PydanticJsonStrategy(),
            OrjsonStrategy(),
            PickleStrategy(),
        ]
    )


__all__: list[str] = [
    "MsgpackStrategy",
    "MsgspecStrategy",
    "OrjsonStrategy",
    "PickleStrategy",
    "ProtobufStrategy",
    "PydanticJsonStrategy",
    "build_default_registry",
]

"""Registry of benchmark strategies, keyed by unique name.

Strategies are registered once at process start and iterated in
registration order, which is also the order trials run in.

Example:
    >>> from core.registry import StrategyRegistry
    >>> from infra.native_strategy import PickleStrategy
    >>> registry = StrategyRegistry()
    >>> registry.register(PickleStrategy())
    >>> registry.names()
    ['pickle']
"""

import logging
from typing import Iterable, Iterator

from core.strategy import Strategy

logger: logging.Logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Ordered, name-unique collection of :class:`Strategy` instances.

    Not thread-safe; populate it before the run starts.
    """

    def __init__(self, strategies: Iterable[Strategy] = ()) -> None:
        self._strategies: dict[str, Strategy] = {}
        for strategy in strategies:
            self.register(strategy)

    def register(self, strategy: Strategy) -> None:
        """Add a strategy.

        Raises:
            ValueError: If the name is empty or already registered.
        """
        if not strategy.name:
            raise ValueError(f"{type(strategy).__name__} has no name")
        if strategy.name in self._strategies:
            raise ValueError(
                f"Strategy {strategy.name!r} is already registered"
            )
        self._strategies[strategy.name] = strategy
        logger.debug("Registered strategy %s", strategy.name)

    def get(self, name: str) -> Strategy:
        """Look up a strategy by name.

        Raises:
            ValueError: If no strategy has that name.
        """
        try:
            return self._strategies[name]
        except KeyError:
            raise ValueError(
                f"Unknown strategy {name!r}; "
                f"available: {', '.join(self._strategies)}"
            ) from None

    def select(self, names: Iterable[str]) -> list[Strategy]:
        """Return the named strategies, in the order given."""
        return [self.get(name) for name in names]

    def names(self) -> list[str]:
        return list(self._strategies)

    def __iter__(self) -> Iterator[Strategy]:
        return iter(list(self._strategies.values()))

    def __len__(self) -> int:
        return len(self._strategies)

    def __contains__(self, name: object) -> bool:
        return name in self._strategies

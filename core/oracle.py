"""Correctness oracle gating every timed decode sample.

A codec that is fast but wrong must never produce timing numbers. The
oracle compares a decoded value against the canonical fixture and
raises :class:`CorrectnessFailure` on any divergence.

Comparison modes:
    - ``IDENTITY``: compares only the identifying field(s)
      (``("id",)`` by default). Cheapest; catches gross breakage.
    - ``FULL`` (default): requires the decoded value to be of the same
      type as the fixture and compares every dataclass field,
      recursing into nested dataclasses. Sequences and scalars are
      compared with ``==``, so a ``list`` where the fixture holds a
      ``tuple`` is reported as a mismatch.

Mismatches are reported as dotted field paths (``"address.city"``) so
the failure reason points straight at the broken mapping.

Example:
    >>> from core.fixture import UserService
    >>> from core.oracle import CorrectnessOracle, OracleMode
    >>> oracle = CorrectnessOracle(expected=UserService().get())
    >>> oracle.mismatches(UserService().get())
    []
    >>> oracle.mode is OracleMode.FULL
    True
"""

import dataclasses
from enum import Enum
from typing import Any

from core.errors import CorrectnessFailure

_MISSING: object = object()
"""Sentinel for an attribute absent on the decoded value."""


class OracleMode(str, Enum):
    """How much of the fixture the oracle compares.

    Attributes:
        IDENTITY: Identifying fields only.
        FULL: Every field, recursively.
    """

    IDENTITY = "identity"
    FULL = "full"


class CorrectnessOracle:
    """Post-decode equality check against a known fixture.

    Stateless after construction and safe to share across threads.

    Args:
        expected: The canonical fixture value.
        mode: Comparison mode. Default :attr:`OracleMode.FULL`.
        identity_fields: Field names compared in ``IDENTITY`` mode.
            Must be non-empty.

    Raises:
        ValueError: If ``identity_fields`` is empty.
    """

    def __init__(
        self,
        expected: Any,
        mode: OracleMode = OracleMode.FULL,
        identity_fields: tuple[str, ...] = ("id",),
    ) -> None:
        if not identity_fields:
            raise ValueError("identity_fields must not be empty")
        self._expected: Any = expected
        self._mode: OracleMode = mode
        self._identity_fields: tuple[str, ...] = identity_fields

    @property
    def expected(self) -> Any:
        return self._expected

    @property
    def mode(self) -> OracleMode:
        return self._mode

    def mismatches(self, decoded: Any) -> list[str]:
        """List the field paths where ``decoded`` differs from the fixture.

        Args:
            decoded: Value returned by a strategy's ``decode``.

        Returns:
            Dotted field paths, empty when the value is acceptable.
            A type mismatch at the root is reported as ``"<type>"``.
        """
        out: list[str] = []
        if self._mode is OracleMode.IDENTITY:
            for name in self._identity_fields:
                if getattr(decoded, name, _MISSING) != getattr(
                    self._expected, name,
                ):
                    out.append(name)
            return out

        _diff(path="", expected=self._expected, actual=decoded, out=out)
        return out

    def check(self, strategy: str, decoded: Any) -> None:
        """Raise if ``decoded`` does not match the fixture.

        Args:
            strategy: Name of the strategy that produced ``decoded``.
            decoded: The decoded value.

        Raises:
            CorrectnessFailure: Listing every mismatching field.
        """
        fields: list[str] = self.mismatches(decoded)
        if fields:
            raise CorrectnessFailure(
                strategy,
                f"decoded value differs from fixture "
                f"({self._mode.value} compare) on: {', '.join(fields)}",
            )


def _diff(path: str, expected: Any, actual: Any, out: list[str]) -> None:
    """Recursively collect differing field paths into ``out``."""
    if type(actual) is not type(expected):
        out.append(path or "<type>")
        return

    if dataclasses.is_dataclass(expected) and not isinstance(expected, type):
        for field in dataclasses.fields(expected):
            child: str = f"{path}.{field.name}" if path else field.name
            _diff(
                path=child,
                expected=getattr(expected, field.name),
                actual=getattr(actual, field.name, _MISSING),
                out=out,
            )
        return

    if actual != expected:
        out.append(path or "<value>")

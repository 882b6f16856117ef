"""Benchmark fixture: the fixed value every strategy encodes and decodes.

The fixture is a small record with primitive fields, a nested record,
and a sequence field. It is built from constants only (no clock, no
randomness) so timing differences between strategies reflect codec
cost, never payload variance.

Immutability:
    Both dataclasses are ``frozen=True``. Sequences are stored as
    ``tuple`` so the whole value is hashable and compares by value.
    Adapters whose codec yields ``list`` for arrays must convert back
    to ``tuple`` or the full-compare oracle will reject the result.

Example:
    >>> from core.fixture import FIXTURE_ID, UserService
    >>> user = UserService().get()
    >>> user.id == FIXTURE_ID
    True
    >>> user.address.city
    'Guangzhou'
"""

from dataclasses import dataclass
from typing import Callable

FIXTURE_ID: str = "zzs0"
"""Identifying field value of the canonical fixture."""


@dataclass(frozen=True)
class Address:
    """Nested postal address record."""

    province: str
    city: str
    street: str
    postcode: str


@dataclass(frozen=True)
class User:
    """The benchmarked value object.

    Attributes:
        id: Identifying field checked by the identity oracle.
        name: Display name.
        age: Age in years.
        male: Gender flag.
        phone: Phone number as text.
        email: E-mail address.
        score: A float field, chosen to be exactly representable.
        deleted: Soft-delete flag.
        create_time: Creation timestamp in epoch milliseconds.
        address: Nested record.
        hobbies: Ordered sequence of short strings.
    """

    id: str
    name: str
    age: int
    male: bool
    phone: str
    email: str
    score: float
    deleted: bool
    create_time: int
    address: Address
    hobbies: tuple[str, ...]


FixtureProvider = Callable[[], User]
"""Zero-argument factory returning the canonical fixture."""


class UserService:
    """Fixture provider.

    ``get`` is the :data:`FixtureProvider` used by the runner. Each
    call returns a new but equal instance.
    """

    def get(self) -> User:
        return User(
            id=FIXTURE_ID,
            name="zzs",
            age=0,
            male=True,
            phone="18826455111",
            email="zzs@example.com",
            score=99.5,
            deleted=False,
            create_time=1604642400000,
            address=Address(
                province="Guangdong",
                city="Guangzhou",
                street="No.1 Tianhe Road",
                postcode="510000",
            ),
            hobbies=("reading", "running", "coding"),
        )

"""Order references.

An order drafted on a terminal has no store id until it is opened. Code
that needs a persisted order (settlement above all) takes an ``OrderRef``
and calls ``require_confirmed`` so a draft can never be settled.
"""

from dataclasses import dataclass, field
from typing import Optional, Union
from uuid import uuid4

from forno.models.order import OrderType
from forno.services.errors import InvalidOrderStateError


@dataclass(frozen=True)
class OrderDraft:
    branch_id: int
    type: OrderType
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    waiter_id: Optional[int] = None
    platform_order_id: Optional[str] = None
    people_count: int = 1


@dataclass(frozen=True)
class PendingOrder:
    """Not yet acknowledged by the store."""

    draft: OrderDraft
    local_key: str = field(default_factory=lambda: uuid4().hex)


@dataclass(frozen=True)
class ConfirmedOrder:
    """A persisted order and the version it was read at."""

    order_id: int
    version: int = 1


OrderRef = Union[PendingOrder, ConfirmedOrder]


def require_confirmed(ref: Union[OrderRef, int]) -> int:
    """Return the store id behind *ref*; drafts are rejected."""
    if isinstance(ref, ConfirmedOrder):
        return ref.order_id
    if isinstance(ref, PendingOrder):
        raise InvalidOrderStateError(
            f"Order {ref.local_key} has not been confirmed by the store yet"
        )
    if isinstance(ref, int) and not isinstance(ref, bool):
        return ref
    raise TypeError(f"Not an order reference: {ref!r}")

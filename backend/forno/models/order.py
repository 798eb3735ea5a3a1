"""Sales order and dining table models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON, Boolean, DateTime, Enum as SQLEnum, ForeignKey, Integer, Numeric, String, func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forno.db.base import Base, VersionMixin


class OrderType(str, Enum):
    """Sales channel. Each product carries one price per channel."""

    DINE_IN = "DINE_IN"
    TAKEOUT = "TAKEOUT"
    DELIVERY_UBER = "DELIVERY_UBER"
    DELIVERY_PEDIDOSYA = "DELIVERY_PEDIDOSYA"


class OrderStatus(str, Enum):
    """Order lifecycle. PAID and VOID are terminal."""

    OPEN = "OPEN"
    COOKING = "COOKING"
    PAID = "PAID"
    VOID = "VOID"


class PaymentMethod(str, Enum):
    """Tender types accepted at settlement."""

    CASH = "CASH"
    CARD = "CARD"
    TRANSFER = "TRANSFER"
    LOYALTY_POINTS = "LOYALTY_POINTS"
    CREDIT_UBER = "CREDIT_UBER"
    CREDIT_PEDIDOSYA = "CREDIT_PEDIDOSYA"


TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.VOID})


class DiningTable(Base):
    """A table on the floor plan. Several open orders may share a table."""

    __tablename__ = "dining_tables"

    id: Mapped[int] = mapped_column(primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=4, nullable=False)
    is_occupied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    current_order_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    x: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    y: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def occupy(self, order_id: int) -> None:
        """Add an order to the table's occupancy list."""
        if order_id not in (self.current_order_ids or []):
            self.current_order_ids = [*(self.current_order_ids or []), order_id]
        self.is_occupied = True

    def release(self, order_id: int) -> None:
        """Remove an order from the table; the table is free when no orders remain."""
        remaining = [oid for oid in (self.current_order_ids or []) if oid != order_id]
        self.current_order_ids = remaining
        self.is_occupied = len(remaining) > 0


class Order(Base, VersionMixin):
    """A sales order.

    Line items, the applied discount snapshot and the payment list are
    JSON documents validated by ``forno.schemas.order``. ``total`` is always
    derived from (items, applied_discount, is_courtesy, service_charge) and
    is only written together with them.
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    table_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("dining_tables.id", ondelete="SET NULL"), nullable=True, index=True
    )
    customer_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("customers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    type: Mapped[OrderType] = mapped_column(SQLEnum(OrderType), nullable=False)
    platform_order_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus), default=OrderStatus.OPEN, nullable=False, index=True
    )

    items: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    # Financials
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    applied_discount: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    is_courtesy: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    courtesy_reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    service_charge: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), default=Decimal("0"), nullable=False
    )
    tip: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    payment_methods: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    packaging_cost_snapshot: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 4), nullable=True
    )

    people_count: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    waiter_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    opened_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    table: Mapped[Optional["DiningTable"]] = relationship("DiningTable")
    customer: Mapped[Optional["Customer"]] = relationship("Customer")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


# Forward references
from forno.models.customer import Customer

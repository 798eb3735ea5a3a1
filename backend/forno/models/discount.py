"""Discount catalog model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, Enum as SQLEnum, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from forno.db.base import Base, TimestampMixin


class DiscountType(str, Enum):
    """Kinds of discount."""

    PERCENTAGE = "PERCENTAGE"  # value is a percent of the subtotal
    FIXED = "FIXED"  # value is an amount off
    BOGO = "BOGO"  # every second unit free within the target categories


class Discount(Base, TimestampMixin):
    """A discount or offer from the catalog.

    ``schedule`` is an optional ``{"days": [0..6], "start_time": "HH:MM",
    "end_time": "HH:MM"}`` document, with 0 = Sunday.
    """

    __tablename__ = "discounts"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[DiscountType] = mapped_column(SQLEnum(DiscountType), nullable=False)
    value: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    schedule: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    apply_to_categories: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

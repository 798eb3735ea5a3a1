"""Packaging rules: disposables consumed by takeout/delivery orders."""

from __future__ import annotations

from enum import Enum

from sqlalchemy import JSON, Enum as SQLEnum, String
from sqlalchemy.orm import Mapped, mapped_column

from forno.db.base import Base


class ApplyPer(str, Enum):
    """How often a packaging rule's ingredients are consumed."""

    ORDER = "ORDER"
    ITEM = "ITEM"


class PackagingRule(Base):
    """Map order types (and optionally categories or products) to consumables.

    Applicability for ITEM rules: explicit product ids win over categories,
    categories win over "no restriction" (global). ORDER rules look only at
    the category filter.
    """

    __tablename__ = "packaging_rules"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    apply_to_order_types: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    apply_to_categories: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    apply_to_product_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    apply_per: Mapped[ApplyPer] = mapped_column(
        SQLEnum(ApplyPer), default=ApplyPer.ORDER, nullable=False
    )
    ingredients: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

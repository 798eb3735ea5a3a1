"""Global catalog models: products and modifier groups."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forno.db.base import Base, TimestampMixin


class Product(Base, TimestampMixin):
    """A sellable menu product.

    ``prices`` maps an order type value (e.g. ``"DINE_IN"``) to the unit
    price as a decimal string. ``ingredients`` is the base recipe as a list
    of ``{"ingredient_id", "quantity"}`` documents pointing at *some*
    ingredient row; settlement resolves it into the selling branch.
    """

    __tablename__ = "products"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    prices: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)
    ingredients: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    image: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class ModifierGroup(Base):
    """A group of add-on options (e.g. "Pizza crusts", "Extra sauces")."""

    __tablename__ = "modifier_groups"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    categories: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    apply_to_product_ids: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    min_selection: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_selection: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    options: Mapped[list["ModifierOption"]] = relationship(
        "ModifierOption", back_populates="group", cascade="all, delete-orphan"
    )


class ModifierOption(Base):
    """One option of a modifier group, with its own price delta and recipe."""

    __tablename__ = "modifier_options"

    id: Mapped[int] = mapped_column(primary_key=True)
    group_id: Mapped[int] = mapped_column(
        ForeignKey("modifier_groups.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"), nullable=False)
    recipe: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    group: Mapped["ModifierGroup"] = relationship("ModifierGroup", back_populates="options")

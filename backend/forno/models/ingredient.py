"""Ingredient model: branch-scoped stock units, including sub-recipes."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forno.db.base import Base, TimestampMixin


class Ingredient(Base, TimestampMixin):
    """Stock of one raw material (or sub-recipe) in one branch.

    Quantities (``stock``, ``min_stock``, composition quantities) are in
    usage units. ``cost`` is the weighted-average cost per usage unit.
    The same conceptual ingredient in two branches is two rows that share
    a normalized name; there is no cross-branch key.
    """

    __tablename__ = "ingredients"

    id: Mapped[int] = mapped_column(primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    unit: Mapped[str] = mapped_column(String(30), default="g", nullable=False)
    purchase_unit: Mapped[str] = mapped_column(String(60), default="unit", nullable=False)
    conversion_ratio: Mapped[Decimal] = mapped_column(
        Numeric(14, 4), default=Decimal("1"), nullable=False
    )

    cost: Mapped[Decimal] = mapped_column(Numeric(14, 6), default=Decimal("0"), nullable=False)
    last_purchase_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    price_history: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    stock: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"), nullable=False)
    min_stock: Mapped[Decimal] = mapped_column(Numeric(14, 4), default=Decimal("0"), nullable=False)

    # Sub-recipe (produced in-house from other ingredients)
    is_sub_recipe: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    batch_size: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 4), nullable=True)
    composition: Mapped[list] = mapped_column(JSON, default=list, nullable=False)

    branch: Mapped["Branch"] = relationship("Branch", back_populates="ingredients")

    def __repr__(self) -> str:
        return f"<Ingredient {self.id} {self.name!r} branch={self.branch_id} stock={self.stock}>"


# Forward references
from forno.models.branch import Branch

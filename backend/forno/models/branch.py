"""Branch and printer models."""

from __future__ import annotations

from typing import Optional

from sqlalchemy import JSON, Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from forno.db.base import Base, TimestampMixin


class Branch(Base, TimestampMixin):
    """A restaurant branch. Stock, tables and orders are scoped to one branch."""

    __tablename__ = "branches"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    address: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    ingredients: Mapped[list["Ingredient"]] = relationship("Ingredient", back_populates="branch")
    printers: Mapped[list["Printer"]] = relationship(
        "Printer", back_populates="branch", cascade="all, delete-orphan"
    )


class Printer(Base):
    """A ticket printer in a branch.

    Kitchen printers receive COMMAND tickets for the product categories
    they list; the cashier printer receives bills, receipts and transfer
    tickets.
    """

    __tablename__ = "printers"

    id: Mapped[int] = mapped_column(primary_key=True)
    branch_id: Mapped[int] = mapped_column(
        ForeignKey("branches.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    categories: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    is_cashier: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    branch: Mapped["Branch"] = relationship("Branch", back_populates="printers")


# Forward references
from forno.models.ingredient import Ingredient

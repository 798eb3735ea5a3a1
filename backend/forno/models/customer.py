"""Customer model with loyalty balance."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from forno.db.base import Base, TimestampMixin


class Customer(Base, TimestampMixin):
    """A loyalty-program customer."""

    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    points: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    current_tier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_visit: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

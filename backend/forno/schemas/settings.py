"""Business settings consumed (read-only) by the transaction engine."""

from __future__ import annotations

from decimal import Decimal
from typing import List

from pydantic import BaseModel, Field, field_validator


class LoyaltyTier(BaseModel):
    name: str
    min_points: int = Field(ge=0)
    color: str = "#999999"


DEFAULT_TIERS = [
    LoyaltyTier(name="Bronze", min_points=0, color="#CD7F32"),
    LoyaltyTier(name="Silver", min_points=500, color="#C0C0C0"),
    LoyaltyTier(name="Gold", min_points=1000, color="#FFD700"),
]


class BusinessSettings(BaseModel):
    """Store-wide business configuration.

    ``double_points_days`` uses 0 = Sunday .. 6 = Saturday.
    """

    store_name: str = "Forno Rosso"
    currency_symbol: str = "$"
    indirect_cost_rate: Decimal = Decimal("15")
    uber_commission_rate: Decimal = Decimal("30")
    pedidosya_commission_rate: Decimal = Decimal("25")
    spending_per_point: Decimal = Field(default=Decimal("10"), gt=0)
    double_points_days: List[int] = Field(default_factory=list)
    loyalty_tiers: List[LoyaltyTier] = Field(default_factory=lambda: list(DEFAULT_TIERS))

    @field_validator("loyalty_tiers")
    @classmethod
    def sort_tiers(cls, v: List[LoyaltyTier]) -> List[LoyaltyTier]:
        return sorted(v, key=lambda t: t.min_points)

    @field_validator("double_points_days")
    @classmethod
    def validate_days(cls, v: List[int]) -> List[int]:
        for day in v:
            if day < 0 or day > 6:
                raise ValueError(f"Invalid weekday {day}; expected 0 (Sunday) to 6")
        return v

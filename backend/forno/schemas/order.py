"""Order schemas: stored line-item documents and API request/response bodies."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from forno.models.discount import DiscountType
from forno.models.order import OrderStatus, OrderType, PaymentMethod
from forno.schemas.recipe import RecipeComponent


def new_item_id() -> str:
    return uuid4().hex


class ModifierSelection(BaseModel):
    """Snapshot of a modifier option as it was when the item was added."""

    id: int
    name: str
    price: Decimal = Decimal("0")
    recipe: List[RecipeComponent] = Field(default_factory=list)


class OrderItem(BaseModel):
    """One line of an order. ``price`` is the unit price including modifiers."""

    id: str = Field(default_factory=new_item_id)
    product_id: Optional[int] = None
    name: str
    quantity: int = Field(ge=0)
    price: Decimal
    notes: Optional[str] = None
    is_custom: bool = False
    printed: bool = False
    modifiers: List[ModifierSelection] = Field(default_factory=list)
    excluded_ingredient_ids: List[int] = Field(default_factory=list)
    cost_snapshot: Decimal = Decimal("0")


class AppliedDiscount(BaseModel):
    """Snapshot of the discount applied to an order."""

    discount_id: Optional[int] = None
    name: str
    type: DiscountType
    value: Decimal = Decimal("0")
    apply_to_categories: List[str] = Field(default_factory=list)


class PaymentLine(BaseModel):
    method: PaymentMethod
    amount: Decimal = Field(ge=0)


def load_items(raw: Optional[Iterable[dict]]) -> List[OrderItem]:
    """Parse the stored items document of an order."""
    return [OrderItem.model_validate(entry) for entry in (raw or [])]


def dump_items(items: Iterable[OrderItem]) -> List[dict]:
    """Serialize line items for the order's JSON column."""
    return [item.model_dump(mode="json") for item in items]


def load_discount(raw: Optional[dict]) -> Optional[AppliedDiscount]:
    return AppliedDiscount.model_validate(raw) if raw else None


# ==================== API bodies ====================


class OrderCreate(BaseModel):
    branch_id: int
    type: OrderType
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    platform_order_id: Optional[str] = None
    people_count: int = Field(default=1, ge=1)


class AddItemRequest(BaseModel):
    product_id: int
    modifier_option_ids: List[int] = Field(default_factory=list)
    excluded_ingredient_ids: List[int] = Field(default_factory=list)
    notes: Optional[str] = None
    expected_version: Optional[int] = None


class AddCustomItemRequest(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    price: Decimal = Field(ge=0)
    expected_version: Optional[int] = None


class QuantityChange(BaseModel):
    delta: int
    expected_version: Optional[int] = None

    @model_validator(mode="after")
    def non_zero(self) -> "QuantityChange":
        if self.delta == 0:
            raise ValueError("delta must not be zero")
        return self


class ManualDiscount(BaseModel):
    type: DiscountType
    value: Decimal = Field(gt=0)

    @model_validator(mode="after")
    def no_manual_bogo(self) -> "ManualDiscount":
        if self.type == DiscountType.BOGO:
            raise ValueError("Manual discounts must be PERCENTAGE or FIXED")
        return self


class ApplyDiscountRequest(BaseModel):
    """Either a catalog discount id, a manual discount, or neither (removal)."""

    discount_id: Optional[int] = None
    manual: Optional[ManualDiscount] = None
    expected_version: Optional[int] = None

    @model_validator(mode="after")
    def one_source(self) -> "ApplyDiscountRequest":
        if self.discount_id is not None and self.manual is not None:
            raise ValueError("Provide discount_id or manual, not both")
        return self


class CourtesyRequest(BaseModel):
    reason: Optional[str] = None


class ServiceChargeRequest(BaseModel):
    amount: Decimal = Field(ge=0)


class AssignCustomerRequest(BaseModel):
    customer_id: Optional[int] = None


class MoveRequest(BaseModel):
    table_id: int


class MergeRequest(BaseModel):
    source_order_id: int


class SplitRequest(BaseModel):
    quantities: Dict[str, int]


class CloseOrderRequest(BaseModel):
    payment_methods: List[PaymentLine] = Field(min_length=1)
    tip: Decimal = Field(default=Decimal("0"), ge=0)


class OrderResponse(BaseModel):
    id: int
    branch_id: int
    table_id: Optional[int] = None
    customer_id: Optional[int] = None
    type: OrderType
    status: OrderStatus
    items: List[OrderItem]
    subtotal: Decimal
    discount_amount: Decimal
    applied_discount: Optional[AppliedDiscount] = None
    is_courtesy: bool
    courtesy_reason: Optional[str] = None
    service_charge: Decimal
    tip: Decimal
    total: Decimal
    payment_methods: List[PaymentLine] = Field(default_factory=list)
    packaging_cost_snapshot: Optional[Decimal] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    version: int

    model_config = {"from_attributes": True}


class SettlementResponse(BaseModel):
    order_id: int
    deductions: Dict[int, Decimal]
    packaging_cost: Decimal
    earned_points: int
    resolution_misses: List[int]

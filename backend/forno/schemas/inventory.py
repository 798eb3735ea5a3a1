"""Inventory schemas: purchases, transfers, adjustments and production."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field

from forno.models.transfer import TransferStatus
from forno.schemas.recipe import RecipeComponent


class PriceHistoryEntry(BaseModel):
    date: datetime
    price: Decimal  # per purchase unit
    provider: str


class PurchaseItem(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(gt=0)  # purchase units
    cost: Decimal = Field(ge=0)  # line total


class PurchaseCreate(BaseModel):
    branch_id: int
    provider: str = Field(min_length=1)
    invoice_number: str = Field(min_length=1)
    items: List[PurchaseItem] = Field(min_length=1)


class PurchaseResponse(BaseModel):
    id: int
    branch_id: int
    provider: str
    invoice_number: str
    date: datetime
    items: List[PurchaseItem]
    total: Decimal

    model_config = {"from_attributes": True}


class TransferItem(BaseModel):
    ingredient_id: int  # row in the source branch
    name: str
    quantity: Decimal = Field(gt=0)  # usage units
    unit: str
    cost: Decimal = Decimal("0")  # per usage unit at dispatch


class TransferLine(BaseModel):
    ingredient_id: int
    quantity: Decimal = Field(gt=0)


class TransferCreate(BaseModel):
    source_branch_id: int
    target_branch_id: int
    items: List[TransferLine] = Field(min_length=1)
    notes: Optional[str] = None


class TransferResponse(BaseModel):
    id: int
    source_branch_id: int
    target_branch_id: int
    items: List[TransferItem]
    status: TransferStatus
    created_at: Optional[datetime] = None
    received_at: Optional[datetime] = None
    created_by: Optional[int] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class AdjustmentLine(BaseModel):
    ingredient_id: int
    counted_stock: Decimal


class InventoryAdjustRequest(BaseModel):
    branch_id: int
    adjustments: List[AdjustmentLine] = Field(min_length=1)


class ProductionRequest(BaseModel):
    sub_recipe_id: int
    batch_count: Decimal = Field(gt=0)
    actual_output_qty: Decimal = Field(ge=0)
    branch_id: Optional[int] = None


class IngredientBase(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    unit: str = "g"
    purchase_unit: str = "unit"
    conversion_ratio: Decimal = Field(default=Decimal("1"), gt=0)
    cost: Decimal = Field(default=Decimal("0"), ge=0)
    min_stock: Decimal = Field(default=Decimal("0"), ge=0)
    is_sub_recipe: bool = False
    batch_size: Optional[Decimal] = None
    composition: List[RecipeComponent] = Field(default_factory=list)


class MasterIngredientCreate(IngredientBase):
    branch_ids: List[int] = Field(min_length=1)


class IngredientUpdate(BaseModel):
    name: Optional[str] = None
    unit: Optional[str] = None
    purchase_unit: Optional[str] = None
    conversion_ratio: Optional[Decimal] = Field(default=None, gt=0)
    min_stock: Optional[Decimal] = Field(default=None, ge=0)
    batch_size: Optional[Decimal] = None
    composition: Optional[List[RecipeComponent]] = None
    sync: bool = False


class IngredientResponse(IngredientBase):
    id: int
    branch_id: int
    stock: Decimal
    last_purchase_cost: Optional[Decimal] = None

    model_config = {"from_attributes": True}

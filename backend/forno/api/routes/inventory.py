"""Inventory routes - physical counts, low stock and master ingredients."""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Query, Request
from pydantic import BaseModel

from forno.core.rate_limit import limiter
from forno.core.rbac import CurrentUser, RequireAdmin, RequireCashier
from forno.db.session import DbSession
from forno.schemas.inventory import (
    IngredientResponse, IngredientUpdate, InventoryAdjustRequest, MasterIngredientCreate,
)
from forno.services.inventory_service import InventoryService

router = APIRouter()


class AdjustmentResult(BaseModel):
    adjusted: int
    expense_id: Optional[int] = None
    loss: Decimal = Decimal("0")


@router.post("/adjust", response_model=AdjustmentResult)
@limiter.limit("10/minute")
def adjust_inventory(
    request: Request, data: InventoryAdjustRequest, db: DbSession, current_user: RequireCashier
):
    """Apply a physical count; losses are booked as a shrinkage expense."""
    expense = InventoryService(db).adjust_inventory(data.branch_id, data.adjustments)
    return AdjustmentResult(
        adjusted=len(data.adjustments),
        expense_id=expense.id if expense else None,
        loss=expense.amount if expense else Decimal("0"),
    )


@router.get("/low-stock", response_model=List[IngredientResponse])
def low_stock(db: DbSession, current_user: CurrentUser, branch_id: int = Query(...)):
    return InventoryService(db).low_stock(branch_id)


@router.post("/ingredients", response_model=List[IngredientResponse], status_code=201)
@limiter.limit("30/minute")
def add_master_ingredient(
    request: Request, data: MasterIngredientCreate, db: DbSession, current_user: RequireAdmin
):
    """Create an ingredient with zero stock in each listed branch."""
    return InventoryService(db).add_master_ingredient(data, data.branch_ids)


@router.patch("/ingredients/{ingredient_id}", response_model=List[IngredientResponse])
@limiter.limit("30/minute")
def update_master_ingredient(
    request: Request,
    ingredient_id: int,
    data: IngredientUpdate,
    db: DbSession,
    current_user: RequireAdmin,
):
    return InventoryService(db).update_master_ingredient(ingredient_id, data)

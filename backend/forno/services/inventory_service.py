"""Inventory Service - physical counts, low stock and master ingredients.

Master ingredients are the same ingredient defined in several branches.
Each branch keeps its own row (own stock and cost); the rows are tied
together only by their normalized name.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forno.core.clock import utc_now
from forno.models import Expense, Ingredient
from forno.schemas.inventory import AdjustmentLine, IngredientBase, IngredientUpdate
from forno.schemas.recipe import dump_components
from forno.services.catalog_store import CatalogStore
from forno.services.errors import TransactionFailedError, ValidationError
from forno.services.ingredient_resolver import normalize_name
from forno.services.totals import ZERO, money

logger = logging.getLogger(__name__)

SHRINKAGE_DESCRIPTION = "Inventory adjustment (shrinkage)"
SHRINKAGE_CATEGORY = "Shrinkage / inventory adjustment"

# Fields copied to same-name rows in other branches when syncing
SYNC_FIELDS = ("unit", "purchase_unit", "conversion_ratio", "min_stock", "batch_size", "composition")


class InventoryService:
    """Service for stock counts and ingredient definitions."""

    def __init__(self, db: Session, catalog: Optional[CatalogStore] = None):
        self.db = db
        self.catalog = catalog or CatalogStore(db)

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to %s, rolled back", action, exc_info=True)
            raise TransactionFailedError(f"Could not {action}", cause=e) from e

    # ===== STOCK =====

    def adjust_inventory(
        self, branch_id: int, adjustments: List[AdjustmentLine]
    ) -> Optional[Expense]:
        """Apply a physical count.

        Counted stock replaces system stock. Units lost (counted below
        system) are valued at current cost and booked as one expense.
        Returns the expense, or None when nothing was lost.
        """
        if not adjustments:
            raise ValidationError("No adjustments given")
        self.catalog.require_branch(branch_id)

        loss = ZERO
        for adjustment in adjustments:
            row = self.catalog.require_ingredient(adjustment.ingredient_id)
            if row.branch_id != branch_id:
                raise ValidationError(f"Ingredient {row.id} does not belong to branch {branch_id}")
            difference = adjustment.counted_stock - Decimal(row.stock or 0)
            if difference < 0:
                loss += -difference * Decimal(row.cost or 0)
            row.stock = adjustment.counted_stock

        expense = None
        if loss > 0:
            expense = Expense(
                branch_id=branch_id,
                description=SHRINKAGE_DESCRIPTION,
                amount=money(loss),
                category=SHRINKAGE_CATEGORY,
                date=utc_now(),
            )
            self.db.add(expense)

        self._commit("adjust inventory")
        logger.info(
            "Adjusted %d ingredient(s) in branch %s, loss %s", len(adjustments), branch_id, money(loss)
        )
        return expense

    def set_stock(self, ingredient_id: int, quantity: Decimal) -> Ingredient:
        row = self.catalog.require_ingredient(ingredient_id)
        row.stock = Decimal(quantity)
        self._commit("set stock")
        return row

    def low_stock(self, branch_id: int) -> List[Ingredient]:
        """Ingredients at or below their minimum stock."""
        return list(
            self.db.scalars(
                select(Ingredient)
                .where(Ingredient.branch_id == branch_id, Ingredient.stock <= Ingredient.min_stock)
                .order_by(Ingredient.name)
            )
        )

    # ===== MASTER INGREDIENTS =====

    def add_master_ingredient(self, data: IngredientBase, branch_ids: List[int]) -> List[Ingredient]:
        """Create the ingredient with zero stock in every listed branch.

        Composition keeps the given ingredient ids; production resolves
        them by name in each branch.
        """
        if not branch_ids:
            raise ValidationError("Select at least one branch")
        rows = []
        for branch_id in dict.fromkeys(branch_ids):
            self.catalog.require_branch(branch_id)
            row = Ingredient(
                branch_id=branch_id,
                name=data.name.strip(),
                unit=data.unit,
                purchase_unit=data.purchase_unit,
                conversion_ratio=data.conversion_ratio,
                cost=data.cost,
                price_history=[],
                stock=ZERO,
                min_stock=data.min_stock,
                is_sub_recipe=data.is_sub_recipe,
                batch_size=data.batch_size,
                composition=dump_components(data.composition),
            )
            self.db.add(row)
            rows.append(row)
        self._commit("add ingredient")
        logger.info("Created ingredient %r in %d branch(es)", data.name, len(rows))
        return rows

    def update_master_ingredient(self, ingredient_id: int, updates: IngredientUpdate) -> List[Ingredient]:
        """Update one row; with ``sync`` also copy structural fields to its twins.

        Twins are rows in other branches whose normalized name equals the
        row's name before the update. Returns every row that changed.
        """
        row = self.catalog.require_ingredient(ingredient_id)
        original_name = normalize_name(row.name)

        changes = updates.model_dump(exclude_unset=True, exclude={"sync"})
        if "composition" in changes and changes["composition"] is not None:
            changes["composition"] = dump_components(updates.composition)
        for name, value in changes.items():
            if value is None and name in ("name", "unit", "purchase_unit", "conversion_ratio", "min_stock"):
                raise ValidationError(f"{name} cannot be empty")
            setattr(row, name, value)

        changed = [row]
        if updates.sync:
            synced = {name: value for name, value in changes.items() if name in SYNC_FIELDS}
            twins = self.db.scalars(
                select(Ingredient).where(Ingredient.id != row.id, Ingredient.branch_id != row.branch_id)
            )
            for twin in twins:
                if normalize_name(twin.name) != original_name:
                    continue
                for name, value in synced.items():
                    setattr(twin, name, value)
                changed.append(twin)

        self._commit("update ingredient")
        logger.info("Updated ingredient %s (%d row(s))", ingredient_id, len(changed))
        return changed

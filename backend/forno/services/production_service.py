"""Production/Batch Costing Engine.

Producing a sub-recipe consumes its composition (scaled by the number of
batches) from the branch's stock and adds the actual output to the
sub-recipe's stock. The sub-recipe's cost rolls forward as a weighted
average of the stock on hand and the batch's input cost.
"""

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forno.core.config import settings
from forno.schemas.print_job import IngredientUsage, ProductionData, ProductionJob
from forno.schemas.recipe import load_components
from forno.services.catalog_store import CatalogStore
from forno.services.errors import TransactionFailedError, ValidationError
from forno.services.ingredient_resolver import IngredientResolver, NameMatchResolver
from forno.services.print_queue import PrintQueue, get_print_queue
from forno.services.totals import ZERO

logger = logging.getLogger(__name__)


def rolled_cost(
    stock: Decimal, cost: Decimal, input_cost: Decimal, output_qty: Decimal
) -> Decimal:
    """Weighted-average cost after adding *output_qty* units worth *input_cost*.

    With no output the batch unit cost is the old cost; with no stock
    afterwards the batch unit cost is kept.
    """
    unit_cost = input_cost / output_qty if output_qty > 0 else cost
    new_total_stock = stock + output_qty
    if new_total_stock > 0:
        return (stock * cost + input_cost) / new_total_stock
    return unit_cost


class ProductionService:
    """Service for producing sub-recipe batches."""

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogStore] = None,
        queue: Optional[PrintQueue] = None,
        resolver_factory: Callable[[CatalogStore], IngredientResolver] = NameMatchResolver,
    ):
        self.db = db
        self.catalog = catalog or CatalogStore(db)
        self.queue = queue or get_print_queue()
        self.resolver_factory = resolver_factory

    def produce_batch(
        self,
        sub_recipe_id: int,
        batch_count: Decimal,
        actual_output_qty: Decimal,
        branch_id: Optional[int] = None,
        produced_by: Optional[str] = None,
    ) -> bool:
        """Produce *batch_count* batches of a sub-recipe.

        Returns False, writing nothing, when the target is unknown, is not
        a sub-recipe or has no composition. Composition ingredients are
        resolved into *branch_id* (the sub-recipe's own branch by default).
        """
        batch_count = Decimal(batch_count)
        actual_output_qty = Decimal(actual_output_qty)
        if batch_count <= 0:
            raise ValidationError("batch_count must be positive")
        if actual_output_qty < 0:
            raise ValidationError("actual_output_qty cannot be negative")

        product = self.catalog.get_ingredient(sub_recipe_id)
        if product is None or not product.is_sub_recipe:
            logger.warning("Ingredient %s is not a producible sub-recipe", sub_recipe_id)
            return False
        composition = load_components(product.composition)
        if not composition:
            logger.warning("Sub-recipe %s has no composition", product.name)
            return False

        target_branch = branch_id or product.branch_id
        resolver = self.resolver_factory(self.catalog)

        consumption: Dict[int, Decimal] = {}
        for component in composition:
            resolved = resolver.resolve(component.ingredient_id, target_branch)
            consumption[resolved] = (
                consumption.get(resolved, ZERO) + component.quantity * batch_count
            )

        rows = self.catalog.ingredients_by_ids(consumption)
        input_cost = ZERO
        usage: List[IngredientUsage] = []
        for ingredient_id, quantity in consumption.items():
            row = rows.get(ingredient_id)
            if row is None:
                continue
            input_cost += Decimal(row.cost or 0) * quantity
            usage.append(IngredientUsage(name=row.name, qty=quantity, unit=row.unit))

        old_stock = Decimal(product.stock or 0)
        old_cost = Decimal(product.cost or 0)
        new_cost = rolled_cost(old_stock, old_cost, input_cost, actual_output_qty)
        batch_size = Decimal(product.batch_size or 0)

        try:
            for ingredient_id, quantity in consumption.items():
                row = rows.get(ingredient_id)
                if row is not None:
                    row.stock = Decimal(row.stock or 0) - quantity
            product.stock = old_stock + actual_output_qty
            product.cost = new_cost
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Production of %s failed, rolled back", sub_recipe_id, exc_info=True)
            raise TransactionFailedError(f"Could not produce {sub_recipe_id}", cause=e) from e

        logger.info(
            "Produced %s x%s of %s: output %s, input cost %s, new cost %s",
            batch_count, batch_size, product.name, actual_output_qty, input_cost, new_cost,
        )

        printer = self.catalog.cashier_printer(target_branch)
        self.queue.enqueue(
            ProductionJob(
                printer_name=printer.name if printer else settings.default_cashier_printer,
                printer_description=printer.description if printer else None,
                production=ProductionData(
                    item_name=product.name,
                    cycles=batch_count,
                    batch_size=batch_size,
                    expected_qty=batch_count * batch_size,
                    actual_qty=actual_output_qty,
                    unit=product.unit,
                    ingredients_used=usage,
                    user=produced_by or "system",
                ),
            )
        )
        return True

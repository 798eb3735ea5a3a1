"""Purchasing Service - receive supplier invoices into branch stock.

Purchase lines may reference an ingredient row from any branch; each line
is matched by name into the purchasing branch, creating the branch's row
when it does not exist yet. Quantities arrive in purchase units and are
converted to usage units with the row's conversion ratio.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forno.core.clock import utc_now
from forno.models import Ingredient, Purchase
from forno.schemas.inventory import PriceHistoryEntry, PurchaseItem
from forno.services.catalog_store import CatalogStore
from forno.services.errors import TransactionFailedError, ValidationError
from forno.services.ingredient_resolver import NameMatchResolver, normalize_name
from forno.services.totals import ZERO, money

logger = logging.getLogger(__name__)


@dataclass
class _Receipt:
    """Everything received for one target row within a single invoice."""

    row: Ingredient
    added_stock: Decimal = ZERO
    added_value: Decimal = ZERO
    history: List[PriceHistoryEntry] = field(default_factory=list)


def _branch_copy(reference: Ingredient, branch_id: int) -> Ingredient:
    """New zero-stock row for *branch_id* with the reference's definition."""
    return Ingredient(
        branch_id=branch_id,
        name=reference.name,
        unit=reference.unit,
        purchase_unit=reference.purchase_unit,
        conversion_ratio=reference.conversion_ratio,
        cost=reference.cost,
        last_purchase_cost=None,
        price_history=[],
        stock=ZERO,
        min_stock=reference.min_stock,
        is_sub_recipe=reference.is_sub_recipe,
        batch_size=reference.batch_size,
        composition=list(reference.composition or []),
    )


class PurchasingService:
    """Service for registering purchases."""

    def __init__(self, db: Session, catalog: Optional[CatalogStore] = None):
        self.db = db
        self.catalog = catalog or CatalogStore(db)

    def receive_purchase(
        self,
        branch_id: int,
        provider: str,
        invoice_number: str,
        items: List[PurchaseItem],
    ) -> Purchase:
        """Record a purchase and roll each ingredient's weighted-average cost.

        Negative stock is treated as zero when averaging; the received
        quantity is added on top of it.
        """
        if not items:
            raise ValidationError("A purchase needs at least one line")
        self.catalog.require_branch(branch_id)

        resolver = NameMatchResolver(self.catalog)
        now = utc_now()
        receipts: Dict[Union[int, str], _Receipt] = {}

        for line in items:
            if line.quantity <= 0:
                raise ValidationError("Purchase quantities must be positive")
            reference = self.catalog.require_ingredient(line.ingredient_id)
            target = resolver.find_in_branch(reference, branch_id)
            key = target.id if target is not None else f"new:{normalize_name(reference.name)}"

            receipt = receipts.get(key)
            if receipt is None:
                row = target if target is not None else _branch_copy(reference, branch_id)
                receipt = receipts[key] = _Receipt(row=row)

            ratio = Decimal(receipt.row.conversion_ratio or 1)
            receipt.added_stock += line.quantity * ratio
            receipt.added_value += line.cost
            receipt.history.append(
                PriceHistoryEntry(date=now, price=line.cost / line.quantity, provider=provider)
            )

        purchase = Purchase(
            branch_id=branch_id,
            provider=provider,
            invoice_number=invoice_number,
            date=now,
            items=[line.model_dump(mode="json") for line in items],
            total=money(sum((line.cost for line in items), ZERO)),
        )

        try:
            for receipt in receipts.values():
                row = receipt.row
                if row.id is None:
                    self.db.add(row)
                current_stock = max(ZERO, Decimal(row.stock or 0))
                current_cost = Decimal(row.cost or 0)
                total_stock = current_stock + receipt.added_stock
                if total_stock > 0:
                    row.cost = (current_stock * current_cost + receipt.added_value) / total_stock
                row.stock = total_stock
                row.last_purchase_cost = receipt.history[-1].price
                row.price_history = [
                    *(row.price_history or []),
                    *(entry.model_dump(mode="json") for entry in receipt.history),
                ]
            self.db.add(purchase)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Purchase %s from %s failed, rolled back", invoice_number, provider, exc_info=True)
            raise TransactionFailedError(f"Could not register purchase {invoice_number}", cause=e) from e

        logger.info(
            "Registered purchase %s from %s in branch %s: %d ingredient(s), total %s",
            invoice_number, provider, branch_id, len(receipts), purchase.total,
        )
        return purchase

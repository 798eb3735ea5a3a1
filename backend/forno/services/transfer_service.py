"""Transfer Service - move stock between branches.

A transfer leaves the source branch when it is created and arrives in the
target branch when it is received. Until then it can be cancelled, which
returns the stock to the source rows.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forno.core.clock import utc_now
from forno.core.config import settings
from forno.core.rbac import TokenData
from forno.models import Ingredient, Transfer, TransferStatus
from forno.schemas.inventory import TransferItem, TransferLine
from forno.schemas.print_job import TransferJob, TransferTicket
from forno.services.catalog_store import CatalogStore
from forno.services.errors import InvalidStateError, TransactionFailedError, ValidationError
from forno.services.ingredient_resolver import NameMatchResolver, normalize_name
from forno.services.print_queue import PrintQueue, get_print_queue
from forno.services.totals import ZERO

logger = logging.getLogger(__name__)


def load_transfer_items(raw) -> List[TransferItem]:
    return [TransferItem.model_validate(entry) for entry in (raw or [])]


class TransferService:
    """Service for inter-branch stock transfers."""

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogStore] = None,
        queue: Optional[PrintQueue] = None,
    ):
        self.db = db
        self.catalog = catalog or CatalogStore(db)
        self.queue = queue or get_print_queue()

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to %s, rolled back", action, exc_info=True)
            raise TransactionFailedError(f"Could not {action}", cause=e) from e

    def _require_pending(self, transfer_id: int) -> Transfer:
        transfer = self.catalog.require_transfer(transfer_id)
        if transfer.status != TransferStatus.PENDING:
            raise InvalidStateError(f"Transfer {transfer.id} is {transfer.status.value}")
        return transfer

    def create_transfer(
        self,
        source_branch_id: int,
        target_branch_id: int,
        lines: List[TransferLine],
        actor: Optional[TokenData] = None,
        notes: Optional[str] = None,
    ) -> Transfer:
        """Dispatch stock from the source branch; the transfer starts PENDING."""
        if source_branch_id == target_branch_id:
            raise ValidationError("Source and target branch must differ")
        if not lines:
            raise ValidationError("A transfer needs at least one line")
        self.catalog.require_branch(source_branch_id)
        self.catalog.require_branch(target_branch_id)

        quantities: Dict[int, Decimal] = {}
        rows: Dict[int, Ingredient] = {}
        for line in lines:
            if line.quantity <= 0:
                raise ValidationError("Transfer quantities must be positive")
            row = self.catalog.require_ingredient(line.ingredient_id)
            if row.branch_id != source_branch_id:
                raise ValidationError(
                    f"Ingredient {row.id} does not belong to branch {source_branch_id}"
                )
            rows[row.id] = row
            quantities[row.id] = quantities.get(row.id, ZERO) + line.quantity

        items = [
            TransferItem(
                ingredient_id=row_id,
                name=rows[row_id].name,
                quantity=quantity,
                unit=rows[row_id].unit,
                cost=Decimal(rows[row_id].cost or 0),
            )
            for row_id, quantity in quantities.items()
        ]

        transfer = Transfer(
            source_branch_id=source_branch_id,
            target_branch_id=target_branch_id,
            items=[item.model_dump(mode="json") for item in items],
            status=TransferStatus.PENDING,
            created_at=utc_now(),
            created_by=actor.user_id if actor else None,
            notes=notes,
        )
        for row_id, quantity in quantities.items():
            rows[row_id].stock = Decimal(rows[row_id].stock or 0) - quantity
        self.db.add(transfer)
        self._commit("create transfer")

        logger.info(
            "Transfer %s dispatched from branch %s to %s with %d item(s)",
            transfer.id, source_branch_id, target_branch_id, len(items),
        )

        printer = self.catalog.cashier_printer(source_branch_id)
        self.queue.enqueue(
            TransferJob(
                printer_name=printer.name if printer else settings.default_cashier_printer,
                printer_description=printer.description if printer else None,
                transfer=TransferTicket(
                    transfer_id=transfer.id,
                    source_branch_id=source_branch_id,
                    target_branch_id=target_branch_id,
                    items=items,
                    notes=notes,
                ),
            )
        )
        return transfer

    def receive_transfer(self, transfer_id: int) -> Transfer:
        """Add the transferred items to the target branch.

        Items are matched by name; a matching row averages the incoming
        cost into its own, otherwise a new row is created.
        """
        transfer = self._require_pending(transfer_id)
        target_branch = transfer.target_branch_id
        resolver = NameMatchResolver(self.catalog)
        created: Dict[str, Ingredient] = {}

        for item in load_transfer_items(transfer.items):
            key = normalize_name(item.name)
            row = created.get(key) or resolver.find_by_name(item.name, target_branch)
            if row is None:
                source = self.catalog.get_ingredient(item.ingredient_id)
                row = Ingredient(
                    branch_id=target_branch,
                    name=item.name,
                    unit=item.unit,
                    purchase_unit=source.purchase_unit if source else item.unit,
                    conversion_ratio=source.conversion_ratio if source else Decimal("1"),
                    cost=item.cost,
                    price_history=[],
                    stock=item.quantity,
                    min_stock=ZERO,
                    is_sub_recipe=False,
                    composition=[],
                )
                self.db.add(row)
                created[key] = row
                continue

            stock = Decimal(row.stock or 0)
            cost = Decimal(row.cost or 0)
            new_stock = stock + item.quantity
            if new_stock > 0:
                row.cost = (stock * cost + item.quantity * item.cost) / new_stock
            row.stock = new_stock

        transfer.status = TransferStatus.COMPLETED
        transfer.received_at = utc_now()
        self._commit("receive transfer")
        logger.info("Transfer %s received in branch %s", transfer.id, target_branch)
        return transfer

    def cancel_transfer(self, transfer_id: int) -> Transfer:
        """Return the dispatched stock to the source rows."""
        transfer = self._require_pending(transfer_id)
        items = load_transfer_items(transfer.items)
        rows = self.catalog.ingredients_by_ids(item.ingredient_id for item in items)
        for item in items:
            row = rows.get(item.ingredient_id)
            if row is None:
                logger.warning(
                    "Source ingredient %s of transfer %s is gone", item.ingredient_id, transfer.id
                )
                continue
            row.stock = Decimal(row.stock or 0) + item.quantity

        transfer.status = TransferStatus.CANCELLED
        self._commit("cancel transfer")
        logger.info("Transfer %s cancelled", transfer.id)
        return transfer

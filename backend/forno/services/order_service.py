"""Order Mutation Service - everything that changes an open order.

Each mutation loads the order, edits its line items or discount state,
recomputes totals through ``compute_totals`` and writes the whole
snapshot back in one commit. Orders in a terminal status (PAID, VOID)
cannot be changed.

Concurrency: last writer wins unless the caller passes the
``expected_version`` it read, in which case a stale write raises
``ConcurrentModificationError``.
"""

import logging
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forno.core.clock import local_now, utc_now, weekday_index
from forno.core.config import settings
from forno.core.rbac import TokenData
from forno.models import Discount, ModifierOption, Order, OrderStatus, OrderType, Product
from forno.models.discount import DiscountType
from forno.schemas.order import (
    AppliedDiscount, ManualDiscount, ModifierSelection, OrderItem, OrderResponse,
    dump_items, load_items, new_item_id,
)
from forno.schemas.print_job import BillJob, CommandJob, ReceiptJob
from forno.schemas.recipe import RecipeComponent, load_components
from forno.services.catalog_store import CatalogStore
from forno.services.errors import (
    AuthorizationError, ConcurrentModificationError, DiscountNotAvailableError,
    InvalidOrderStateError, NotFoundError, NothingToSendError, TransactionFailedError,
    ValidationError,
)
from forno.services.order_refs import ConfirmedOrder, OrderDraft, PendingOrder
from forno.services.print_queue import PrintQueue, get_print_queue
from forno.services.totals import ZERO, order_totals

logger = logging.getLogger(__name__)


def _aware(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def within_dates(discount: Discount, now: datetime) -> bool:
    """Whether *now* falls inside the discount's optional start/end dates."""
    if discount.start_date is not None and now < _aware(discount.start_date):
        return False
    if discount.end_date is not None and now > _aware(discount.end_date):
        return False
    return True


def check_schedule(schedule: Optional[dict], now: datetime) -> Tuple[bool, str]:
    """Check a discount schedule against local time.

    ``days`` uses 0 = Sunday; ``start_time``/``end_time`` are "HH:MM" and
    the window is inclusive. Returns (valid, reason).
    """
    if not schedule:
        return True, ""

    days = schedule.get("days")
    if days and weekday_index(now) not in days:
        return False, "Day not valid"

    start, end = schedule.get("start_time"), schedule.get("end_time")
    if start and end:
        current = now.strftime("%H:%M")
        if current < start or current > end:
            return False, f"Hours: {start} - {end}"

    return True, ""


def group_applies(group, product: Product) -> bool:
    """Product ids take precedence over categories; no filter means every product."""
    if group.apply_to_product_ids:
        return product.id in group.apply_to_product_ids
    if group.categories:
        return product.category in group.categories
    return True


class OrderService:
    """Service for opening and editing orders."""

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogStore] = None,
        queue: Optional[PrintQueue] = None,
        clock: Callable[[], datetime] = local_now,
    ):
        self.db = db
        self.catalog = catalog or CatalogStore(db)
        self.queue = queue or get_print_queue()
        self.clock = clock

    # ===== HELPERS =====

    def _load_open(self, order_id: int, expected_version: Optional[int] = None) -> Order:
        order = self.catalog.require_order(order_id)
        if order.is_terminal:
            raise InvalidOrderStateError(f"Order {order.id} is {order.status.value}")
        try:
            order.check_version(expected_version)
        except ValueError as e:
            raise ConcurrentModificationError(f"Order {order.id}: {e}") from e
        return order

    def _write_items(self, order: Order, items: List[OrderItem]) -> None:
        """Store *items* and the totals derived from them."""
        categories = self.catalog.product_categories(item.product_id for item in items)
        totals = order_totals(order, items, categories)
        order.items = dump_items(items)
        order.subtotal = totals.subtotal
        order.discount_amount = totals.discount_amount
        order.total = totals.total
        order.increment_version()

    def _commit(self, action: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to %s, rolled back", action, exc_info=True)
            raise TransactionFailedError(f"Could not {action}", cause=e) from e

    def _cost_snapshot(
        self,
        recipe: List[RecipeComponent],
        excluded: Iterable[int],
        modifiers: List[ModifierSelection],
    ) -> Decimal:
        """Reference cost of one unit: recipe minus exclusions, plus modifier recipes."""
        excluded = set(excluded)
        components = [c for c in recipe if c.ingredient_id not in excluded]
        for modifier in modifiers:
            components.extend(modifier.recipe)
        rows = self.catalog.ingredients_by_ids(c.ingredient_id for c in components)
        cost = ZERO
        for component in components:
            row = rows.get(component.ingredient_id)
            if row is not None:
                cost += Decimal(row.cost or 0) * component.quantity
        return cost

    def _check_modifiers(self, product: Product, options: List[ModifierOption]) -> None:
        for option in options:
            if not group_applies(option.group, product):
                raise ValidationError(
                    f"Modifier '{option.name}' does not apply to '{product.name}'"
                )
        for group_id, count in Counter(option.group_id for option in options).items():
            group = next(option.group for option in options if option.group_id == group_id)
            if group.max_selection and count > group.max_selection:
                raise ValidationError(
                    f"At most {group.max_selection} selection(s) allowed for '{group.name}'"
                )

    # ===== OPEN =====

    def draft_order(
        self,
        branch_id: int,
        order_type: OrderType,
        table_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        waiter_id: Optional[int] = None,
        platform_order_id: Optional[str] = None,
        people_count: int = 1,
    ) -> PendingOrder:
        """Build an order locally; nothing is written until ``open_order``."""
        if people_count < 1:
            raise ValidationError("people_count must be at least 1")
        return PendingOrder(
            draft=OrderDraft(
                branch_id=branch_id,
                type=OrderType(order_type),
                table_id=table_id,
                customer_id=customer_id,
                waiter_id=waiter_id,
                platform_order_id=platform_order_id,
                people_count=people_count,
            )
        )

    def open_order(self, pending: PendingOrder) -> ConfirmedOrder:
        """Persist a drafted order and occupy its table."""
        draft = pending.draft
        self.catalog.require_branch(draft.branch_id)

        table = None
        if draft.table_id is not None:
            table = self.catalog.require_table(draft.table_id)
            if table.branch_id != draft.branch_id:
                raise ValidationError(
                    f"Table {table.id} does not belong to branch {draft.branch_id}"
                )
        if draft.customer_id is not None:
            self.catalog.require_customer(draft.customer_id)

        order = Order(
            branch_id=draft.branch_id,
            table_id=draft.table_id,
            customer_id=draft.customer_id,
            type=draft.type,
            platform_order_id=draft.platform_order_id,
            status=OrderStatus.OPEN,
            items=[],
            subtotal=ZERO,
            discount_amount=ZERO,
            applied_discount=None,
            is_courtesy=False,
            service_charge=ZERO,
            tip=ZERO,
            total=ZERO,
            payment_methods=[],
            people_count=draft.people_count,
            waiter_id=draft.waiter_id,
            opened_at=utc_now(),
            version=1,
        )
        self.db.add(order)
        try:
            self.db.flush()
            if table is not None:
                table.occupy(order.id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to open order, rolled back", exc_info=True)
            raise TransactionFailedError("Could not open order", cause=e) from e

        logger.info(
            "Opened order %s (%s) in branch %s, table %s",
            order.id, order.type.value, order.branch_id, order.table_id,
        )
        return ConfirmedOrder(order_id=order.id, version=order.version)

    def create_order(
        self,
        branch_id: int,
        order_type: OrderType,
        table_id: Optional[int] = None,
        customer_id: Optional[int] = None,
        waiter_id: Optional[int] = None,
        platform_order_id: Optional[str] = None,
        people_count: int = 1,
    ) -> Order:
        ref = self.open_order(
            self.draft_order(
                branch_id, order_type, table_id=table_id, customer_id=customer_id,
                waiter_id=waiter_id, platform_order_id=platform_order_id,
                people_count=people_count,
            )
        )
        return self.catalog.require_order(ref.order_id)

    # ===== LINE ITEMS =====

    def add_item(
        self,
        order_id: int,
        product_id: int,
        modifier_option_ids: Iterable[int] = (),
        excluded_ingredient_ids: Iterable[int] = (),
        notes: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Append one unit of a catalog product.

        The unit price is the product's price for the order type plus the
        selected modifier prices.
        """
        order = self._load_open(order_id, expected_version)
        product = self.catalog.require_product(product_id)

        raw_price = (product.prices or {}).get(order.type.value)
        if raw_price is None:
            raise ValidationError(f"Product '{product.name}' has no {order.type.value} price")

        options = self.catalog.modifier_options(modifier_option_ids)
        self._check_modifiers(product, options)

        recipe = load_components(product.ingredients)
        recipe_ids = {component.ingredient_id for component in recipe}
        excluded = list(dict.fromkeys(excluded_ingredient_ids))
        unknown = [ingredient_id for ingredient_id in excluded if ingredient_id not in recipe_ids]
        if unknown:
            raise ValidationError(
                f"Ingredients {unknown} are not part of the recipe of '{product.name}'"
            )

        modifiers = [
            ModifierSelection(
                id=option.id,
                name=option.name,
                price=Decimal(option.price or 0),
                recipe=load_components(option.recipe),
            )
            for option in options
        ]
        item = OrderItem(
            product_id=product.id,
            name=product.name,
            quantity=1,
            price=Decimal(str(raw_price)) + sum((m.price for m in modifiers), ZERO),
            notes=notes,
            modifiers=modifiers,
            excluded_ingredient_ids=excluded,
            cost_snapshot=self._cost_snapshot(recipe, excluded, modifiers),
        )

        items = load_items(order.items)
        items.append(item)
        self._write_items(order, items)
        self._commit("add item")
        logger.debug("Added %s to order %s", product.name, order.id)
        return order

    def add_custom_item(
        self,
        order_id: int,
        name: str,
        price: Decimal,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Append an open-priced line with no recipe."""
        if not name or not name.strip():
            raise ValidationError("Custom item needs a name")
        if Decimal(price) < 0:
            raise ValidationError("Custom item price cannot be negative")

        order = self._load_open(order_id, expected_version)
        items = load_items(order.items)
        items.append(OrderItem(name=name.strip(), quantity=1, price=Decimal(price), is_custom=True))
        self._write_items(order, items)
        self._commit("add custom item")
        return order

    def change_quantity(
        self,
        order_id: int,
        item_id: str,
        delta: int,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Adjust a line's quantity; lines reaching zero are removed."""
        if delta == 0:
            raise ValidationError("Quantity change must not be zero")

        order = self._load_open(order_id, expected_version)
        items = load_items(order.items)
        for index, item in enumerate(items):
            if item.id == item_id:
                break
        else:
            raise NotFoundError("Order item", item_id)

        new_quantity = item.quantity + delta
        if new_quantity <= 0:
            del items[index]
        else:
            items[index] = item.model_copy(update={"quantity": new_quantity})

        self._write_items(order, items)
        self._commit("change quantity")
        return order

    def remove_item(
        self, order_id: int, item_id: str, expected_version: Optional[int] = None
    ) -> Order:
        order = self._load_open(order_id, expected_version)
        items = load_items(order.items)
        remaining = [item for item in items if item.id != item_id]
        if len(remaining) == len(items):
            raise NotFoundError("Order item", item_id)
        self._write_items(order, remaining)
        self._commit("remove item")
        return order

    # ===== DISCOUNTS / COURTESY / CHARGES =====

    def apply_discount(
        self,
        order_id: int,
        discount_id: Optional[int] = None,
        manual: Optional[ManualDiscount] = None,
        actor: Optional[TokenData] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Apply a catalog or manual discount; with neither, remove the current one.

        A catalog discount outside its schedule is only applied when *actor*
        holds an elevated role, and the authorizer's name is recorded in the
        discount's display name.
        """
        if discount_id is None and manual is None:
            return self.remove_discount(order_id, expected_version)
        if discount_id is not None and manual is not None:
            raise ValidationError("Provide a catalog discount or a manual one, not both")

        order = self._load_open(order_id, expected_version)
        if discount_id is not None:
            snapshot = self._catalog_discount(discount_id, actor)
        else:
            snapshot = self._manual_discount(manual)

        order.applied_discount = snapshot.model_dump(mode="json")
        self._write_items(order, load_items(order.items))
        self._commit("apply discount")
        logger.info("Applied discount %r to order %s", snapshot.name, order.id)
        return order

    def _catalog_discount(self, discount_id: int, actor: Optional[TokenData]) -> AppliedDiscount:
        discount = self.catalog.require_discount(discount_id)
        if not discount.is_active:
            raise ValidationError(f"Discount '{discount.name}' is not active")

        now = self.clock()
        if not within_dates(discount, now):
            raise ValidationError(f"Discount '{discount.name}' is outside its validity dates")

        name = discount.name
        valid, reason = check_schedule(discount.schedule, now)
        if not valid:
            if actor is None or not actor.is_elevated:
                raise DiscountNotAvailableError(discount.name, reason)
            name = f"{discount.name} (authorized by {actor.name})"
            logger.warning(
                "Discount %r applied outside its schedule (%s), authorized by %s",
                discount.name, reason, actor.name,
            )

        return AppliedDiscount(
            discount_id=discount.id,
            name=name,
            type=discount.type,
            value=Decimal(discount.value or 0),
            apply_to_categories=list(discount.apply_to_categories or []),
        )

    def _manual_discount(self, manual: ManualDiscount) -> AppliedDiscount:
        if manual.type == DiscountType.PERCENTAGE:
            label = f"{manual.value}%"
        else:
            label = f"{self.catalog.business_settings().currency_symbol}{manual.value}"
        return AppliedDiscount(
            name=f"Manual discount ({label})", type=manual.type, value=manual.value
        )

    def remove_discount(self, order_id: int, expected_version: Optional[int] = None) -> Order:
        order = self._load_open(order_id, expected_version)
        order.applied_discount = None
        self._write_items(order, load_items(order.items))
        self._commit("remove discount")
        return order

    def apply_courtesy(
        self,
        order_id: int,
        actor: Optional[TokenData],
        reason: Optional[str] = None,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Make the order free of charge. Requires a cashier or admin."""
        if actor is None or not actor.is_elevated:
            raise AuthorizationError("Courtesy requires cashier or admin authorization")

        order = self._load_open(order_id, expected_version)
        order.is_courtesy = True
        order.courtesy_reason = reason or f"Authorized by {actor.name}"
        order.applied_discount = None
        self._write_items(order, load_items(order.items))
        self._commit("apply courtesy")
        logger.warning("Courtesy applied to order %s by %s", order.id, actor.name)
        return order

    def set_service_charge(
        self, order_id: int, amount: Decimal, expected_version: Optional[int] = None
    ) -> Order:
        if Decimal(amount) < 0:
            raise ValidationError("Service charge cannot be negative")
        order = self._load_open(order_id, expected_version)
        order.service_charge = Decimal(amount)
        self._write_items(order, load_items(order.items))
        self._commit("set service charge")
        return order

    def assign_customer(
        self, order_id: int, customer_id: Optional[int], expected_version: Optional[int] = None
    ) -> Order:
        order = self._load_open(order_id, expected_version)
        if customer_id is not None:
            self.catalog.require_customer(customer_id)
        order.customer_id = customer_id
        order.increment_version()
        self._commit("assign customer")
        return order

    # ===== TABLES: MOVE / MERGE / SPLIT =====

    def move_order(
        self, order_id: int, table_id: int, expected_version: Optional[int] = None
    ) -> Order:
        """Move an order to another table of the same branch."""
        order = self._load_open(order_id, expected_version)
        target = self.catalog.require_table(table_id)
        if target.branch_id != order.branch_id:
            raise ValidationError(f"Table {target.id} belongs to another branch")
        if order.table_id == target.id:
            return order

        previous = self.catalog.get_table(order.table_id)
        if previous is not None:
            previous.release(order.id)
        target.occupy(order.id)
        order.table_id = target.id
        order.increment_version()
        self._commit("move order")
        logger.info("Moved order %s to table %s", order.id, target.id)
        return order

    def merge_orders(
        self,
        source_order_id: int,
        target_order_id: int,
        expected_version: Optional[int] = None,
    ) -> Order:
        """Move every line of the source onto the target and void the source.

        The target keeps its own discount and courtesy state; the source's
        discount is dropped.
        """
        if source_order_id == target_order_id:
            raise ValidationError("Cannot merge an order into itself")

        target = self._load_open(target_order_id, expected_version)
        source = self._load_open(source_order_id)
        if source.branch_id != target.branch_id:
            raise ValidationError("Cannot merge orders from different branches")

        items = load_items(target.items)
        taken = {item.id for item in items}
        for item in load_items(source.items):
            # a split order merged back carries the same line ids
            if item.id in taken:
                item = item.model_copy(update={"id": new_item_id()})
            taken.add(item.id)
            items.append(item)
        self._write_items(target, items)

        source.status = OrderStatus.VOID
        source.closed_at = utc_now()
        source.increment_version()
        source_table = self.catalog.get_table(source.table_id)
        if source_table is not None:
            source_table.release(source.id)

        self._commit("merge orders")
        logger.info("Merged order %s into %s", source.id, target.id)
        return target

    def split_order(
        self,
        order_id: int,
        quantities: Mapping[str, int],
        expected_version: Optional[int] = None,
    ) -> Order:
        """Move the selected quantities to a new order on the same table.

        Item ids are kept on both sides. The new order starts without
        discount, courtesy or service charge. Returns the new order.
        """
        order = self._load_open(order_id, expected_version)
        items = load_items(order.items)
        by_id = {item.id: item for item in items}
        if len(by_id) != len(items):
            raise ValidationError(f"Order {order.id} holds duplicate line ids")

        for item_id, quantity in quantities.items():
            if item_id not in by_id:
                raise ValidationError(f"Item {item_id} is not on order {order.id}")
            if quantity < 0 or quantity > by_id[item_id].quantity:
                raise ValidationError(
                    f"Cannot move {quantity} of {by_id[item_id].quantity} units of "
                    f"'{by_id[item_id].name}'"
                )

        moved: List[OrderItem] = []
        remaining: List[OrderItem] = []
        for item in items:
            quantity = quantities.get(item.id, 0)
            if quantity > 0:
                moved.append(item.model_copy(update={"quantity": quantity}))
            if item.quantity - quantity > 0:
                remaining.append(item.model_copy(update={"quantity": item.quantity - quantity}))

        if not moved:
            raise ValidationError("Select at least one unit to split")

        new_order = Order(
            branch_id=order.branch_id,
            table_id=order.table_id,
            customer_id=order.customer_id,
            type=order.type,
            status=OrderStatus.OPEN,
            applied_discount=None,
            is_courtesy=False,
            service_charge=ZERO,
            tip=ZERO,
            payment_methods=[],
            people_count=1,
            waiter_id=order.waiter_id,
            opened_at=utc_now(),
        )
        self._write_items(order, remaining)
        self._write_items(new_order, moved)
        new_order.version = 1
        self.db.add(new_order)

        try:
            self.db.flush()
            table = self.catalog.get_table(order.table_id)
            if table is not None:
                table.occupy(new_order.id)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to split order %s, rolled back", order_id, exc_info=True)
            raise TransactionFailedError("Could not split order", cause=e) from e

        logger.info("Split %d line(s) of order %s into order %s", len(moved), order.id, new_order.id)
        return new_order

    def void_order(self, order_id: int, expected_version: Optional[int] = None) -> Order:
        order = self._load_open(order_id, expected_version)
        order.status = OrderStatus.VOID
        order.closed_at = utc_now()
        order.increment_version()
        table = self.catalog.get_table(order.table_id)
        if table is not None:
            table.release(order.id)
        self._commit("void order")
        logger.info("Voided order %s", order.id)
        return order

    # ===== PRINTING =====

    def send_to_kitchen(self, order_id: int) -> List[CommandJob]:
        """Route unprinted lines to the branch's kitchen printers.

        Each non-cashier printer receives the unprinted lines whose product
        category it handles. All lines are marked printed and an OPEN order
        moves to COOKING. Without kitchen printers everything goes to the
        default kitchen printer.
        """
        order = self._load_open(order_id)
        items = load_items(order.items)
        unprinted = [item for item in items if not item.printed]
        if not unprinted:
            raise NothingToSendError(f"Order {order.id} has nothing new to send")

        categories = self.catalog.product_categories(item.product_id for item in unprinted)
        kitchen = [p for p in self.catalog.printers(order.branch_id) if not p.is_cashier]

        routed = []
        if kitchen:
            for printer in kitchen:
                handled = set(printer.categories or [])
                batch = [item for item in unprinted if categories.get(item.product_id) in handled]
                if batch:
                    routed.append((printer.name, printer.description, batch))
        else:
            logger.warning(
                "Branch %s has no kitchen printers, using %s",
                order.branch_id, settings.default_kitchen_printer,
            )
            routed.append((settings.default_kitchen_printer, None, unprinted))

        if order.status == OrderStatus.OPEN:
            order.status = OrderStatus.COOKING
        self._write_items(order, [item.model_copy(update={"printed": True}) for item in items])
        self._commit("send order to kitchen")

        jobs = []
        for name, description, batch in routed:
            jobs.append(
                self.queue.enqueue(
                    CommandJob(
                        printer_name=name,
                        printer_description=description,
                        order_id=order.id,
                        table_id=order.table_id,
                        items=batch,
                    )
                )
            )
        logger.info("Sent %d line(s) of order %s to %d printer(s)", len(unprinted), order.id, len(jobs))
        return jobs

    def _cashier_printer(self, branch_id: int) -> Tuple[str, Optional[str]]:
        printer = self.catalog.cashier_printer(branch_id)
        if printer is None:
            return settings.default_cashier_printer, None
        return printer.name, printer.description

    def print_pre_bill(self, order_id: int) -> BillJob:
        """Queue a pre-check for an unpaid order on the cashier printer."""
        order = self._load_open(order_id)
        name, description = self._cashier_printer(order.branch_id)
        return self.queue.enqueue(
            BillJob(
                printer_name=name,
                printer_description=description,
                order=OrderResponse.model_validate(order),
            )
        )

    def reprint(self, order_id: int):
        """Queue the receipt of a paid order, or a fresh pre-check otherwise."""
        order = self.catalog.require_order(order_id)
        if order.status == OrderStatus.VOID:
            raise InvalidOrderStateError(f"Order {order.id} is VOID")
        name, description = self._cashier_printer(order.branch_id)
        snapshot = OrderResponse.model_validate(order)
        if order.status == OrderStatus.PAID:
            job = ReceiptJob(printer_name=name, printer_description=description, order=snapshot)
        else:
            job = BillJob(printer_name=name, printer_description=description, order=snapshot)
        return self.queue.enqueue(job)

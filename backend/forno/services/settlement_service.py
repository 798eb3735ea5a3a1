"""Checkout/Settlement Engine - close an order in one atomic transaction.

Closing an order:
1. Refuse drafts and orders that are already PAID or VOID
2. For every line with a catalog product:
   a. Recipe ingredients (minus exclusions) x quantity
   b. Modifier recipe ingredients x quantity
   c. ITEM packaging rules (product ids, then categories, then global)
3. ORDER packaging rules, filtered by category only
4. Every ingredient is resolved into the order's branch and the
   quantities are aggregated per resolved row
5. One write per ingredient, the order marked PAID, the table released
   and the customer's loyalty points and tier updated
6. Commit, then queue the receipt

Nothing is applied if the commit fails; the caller may retry.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_FLOOR, Decimal
from typing import Callable, Dict, Iterable, List, Optional, Set, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forno.core.clock import local_now, utc_now, weekday_index
from forno.core.config import settings
from forno.models import ApplyPer, Order, OrderStatus, PackagingRule, Product
from forno.schemas.order import OrderItem, OrderResponse, PaymentLine, load_items
from forno.schemas.print_job import ReceiptJob
from forno.schemas.recipe import load_components
from forno.schemas.settings import BusinessSettings, LoyaltyTier
from forno.services.catalog_store import CatalogStore
from forno.services.errors import InvalidOrderStateError, SettlementError, ValidationError
from forno.services.ingredient_resolver import IngredientResolver, NameMatchResolver
from forno.services.order_refs import OrderRef, require_confirmed
from forno.services.print_queue import PrintQueue, get_print_queue
from forno.services.totals import ZERO, money

logger = logging.getLogger(__name__)

# Orders currently being closed in this process
_in_flight: Set[int] = set()
_in_flight_lock = threading.Lock()


@dataclass
class DeductionPlan:
    """Ingredient quantities to deduct, keyed by resolved ingredient id."""

    deductions: Dict[int, Decimal] = field(default_factory=dict)
    packaging_cost: Decimal = ZERO

    def add(self, ingredient_id: int, quantity: Decimal) -> None:
        self.deductions[ingredient_id] = self.deductions.get(ingredient_id, ZERO) + quantity


@dataclass
class SettlementResult:
    order_id: int
    deductions: Dict[int, Decimal]
    packaging_cost: Decimal
    earned_points: int
    resolution_misses: List[int] = field(default_factory=list)


def item_packaging_rules(
    rules: Iterable[PackagingRule], product: Product, order_type: str
) -> List[PackagingRule]:
    """ITEM rules for one product.

    A rule naming product ids applies only to those products; otherwise
    one naming categories applies to those categories; a rule with
    neither applies to every product.
    """
    matched = []
    for rule in rules:
        if rule.apply_per != ApplyPer.ITEM:
            continue
        if order_type not in (rule.apply_to_order_types or []):
            continue
        if rule.apply_to_product_ids:
            if product.id in rule.apply_to_product_ids:
                matched.append(rule)
        elif rule.apply_to_categories:
            if product.category in rule.apply_to_categories:
                matched.append(rule)
        else:
            matched.append(rule)
    return matched


def order_packaging_rules(
    rules: Iterable[PackagingRule], order_type: str, categories: Set[str]
) -> List[PackagingRule]:
    """ORDER rules; only the category filter is consulted."""
    matched = []
    for rule in rules:
        if rule.apply_per != ApplyPer.ORDER:
            continue
        if order_type not in (rule.apply_to_order_types or []):
            continue
        if rule.apply_to_categories and not categories.intersection(rule.apply_to_categories):
            continue
        matched.append(rule)
    return matched


def plan_deductions(
    order: Order,
    items: List[OrderItem],
    catalog: CatalogStore,
    resolver: IngredientResolver,
) -> DeductionPlan:
    """Aggregate every ingredient the order consumes in its branch.

    Custom lines and lines whose product no longer exists consume nothing
    except through ORDER packaging rules.
    """
    plan = DeductionPlan()
    branch_id = order.branch_id
    order_type = order.type.value
    products = catalog.products_by_ids(item.product_id for item in items)
    rules = catalog.packaging_rules()
    packaging_refs: Dict[int, Decimal] = {}

    def consume(reference_id: int, quantity: Decimal, packaging: bool = False) -> None:
        resolved = resolver.resolve(reference_id, branch_id)
        plan.add(resolved, quantity)
        if packaging:
            packaging_refs[resolved] = packaging_refs.get(resolved, ZERO) + quantity

    categories: Set[str] = set()
    for item in items:
        product = products.get(item.product_id) if item.product_id is not None else None
        if product is None:
            continue
        categories.add(product.category)
        quantity = Decimal(item.quantity)
        excluded = set(item.excluded_ingredient_ids)

        for component in load_components(product.ingredients):
            if component.ingredient_id in excluded:
                continue
            consume(component.ingredient_id, component.quantity * quantity)

        for modifier in item.modifiers:
            for component in modifier.recipe:
                consume(component.ingredient_id, component.quantity * quantity)

        for rule in item_packaging_rules(rules, product, order_type):
            for component in load_components(rule.ingredients):
                consume(component.ingredient_id, component.quantity * quantity, packaging=True)

    for rule in order_packaging_rules(rules, order_type, categories):
        for component in load_components(rule.ingredients):
            consume(component.ingredient_id, component.quantity, packaging=True)

    costs = catalog.ingredients_by_ids(packaging_refs)
    for ingredient_id, quantity in packaging_refs.items():
        row = costs.get(ingredient_id)
        if row is not None:
            plan.packaging_cost += Decimal(row.cost or 0) * quantity

    return plan


def earned_points(total: Decimal, business: BusinessSettings, moment: datetime) -> int:
    """floor(total / spending_per_point), doubled on double-points days."""
    points = int((Decimal(total) / business.spending_per_point).to_integral_value(rounding=ROUND_FLOOR))
    if weekday_index(moment) in business.double_points_days:
        points *= 2
    return max(points, 0)


def tier_for(points: int, tiers: Iterable[LoyaltyTier]) -> Optional[str]:
    """Name of the highest tier whose threshold *points* reaches."""
    reached = None
    for tier in sorted(tiers, key=lambda t: t.min_points):
        if points >= tier.min_points:
            reached = tier.name
    return reached


class SettlementService:
    """Service for closing orders."""

    def __init__(
        self,
        db: Session,
        catalog: Optional[CatalogStore] = None,
        queue: Optional[PrintQueue] = None,
        resolver_factory: Callable[[CatalogStore], IngredientResolver] = NameMatchResolver,
        clock: Callable[[], datetime] = local_now,
    ):
        self.db = db
        self.catalog = catalog or CatalogStore(db)
        self.queue = queue or get_print_queue()
        self.resolver_factory = resolver_factory
        self.clock = clock

    def close_order(
        self,
        order_ref: Union[OrderRef, int],
        payment_methods: List[PaymentLine],
        tip: Decimal = ZERO,
    ) -> SettlementResult:
        """Settle an order: deduct stock, accrue loyalty and mark it PAID."""
        order_id = require_confirmed(order_ref)
        if not payment_methods:
            raise ValidationError("At least one payment method is required")
        if Decimal(tip) < 0:
            raise ValidationError("Tip cannot be negative")

        with _in_flight_lock:
            if order_id in _in_flight:
                raise InvalidOrderStateError(f"Order {order_id} is already being closed")
            _in_flight.add(order_id)
        try:
            return self._close(order_id, payment_methods, Decimal(tip))
        finally:
            with _in_flight_lock:
                _in_flight.discard(order_id)

    def _close(
        self, order_id: int, payment_methods: List[PaymentLine], tip: Decimal
    ) -> SettlementResult:
        order = self.catalog.require_order(order_id)
        if order.is_terminal:
            raise InvalidOrderStateError(f"Order {order.id} is already {order.status.value}")

        items = load_items(order.items)
        resolver = self.resolver_factory(self.catalog)
        plan = plan_deductions(order, items, self.catalog, resolver)

        rows = self.catalog.ingredients_by_ids(plan.deductions)
        for ingredient_id in plan.deductions:
            if ingredient_id not in rows:
                logger.warning(
                    "Order %s consumes unknown ingredient %s; skipped", order.id, ingredient_id
                )

        now = self.clock()
        points = 0
        customer = self.catalog.get_customer(order.customer_id)
        business = self.catalog.business_settings()
        if customer is not None:
            points = earned_points(order.total, business, now)

        try:
            for ingredient_id, quantity in plan.deductions.items():
                row = rows.get(ingredient_id)
                if row is not None:
                    row.stock = Decimal(row.stock or 0) - quantity

            order.status = OrderStatus.PAID
            order.payment_methods = [line.model_dump(mode="json") for line in payment_methods]
            order.tip = money(tip)
            order.closed_at = utc_now()
            order.packaging_cost_snapshot = plan.packaging_cost
            order.increment_version()

            table = self.catalog.get_table(order.table_id)
            if table is not None:
                table.release(order.id)

            if customer is not None:
                customer.points = (customer.points or 0) + points
                customer.current_tier = tier_for(customer.points, business.loyalty_tiers)
                customer.visit_count = (customer.visit_count or 0) + 1
                customer.last_visit = utc_now()

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Settlement of order %s failed, rolled back", order_id, exc_info=True)
            raise SettlementError(f"Could not close order {order_id}", cause=e) from e
        except Exception:
            self.db.rollback()
            logger.error("Settlement of order %s failed, rolled back", order_id, exc_info=True)
            raise

        logger.info(
            "Closed order %s: total %s, %d ingredient(s) deducted, %d point(s) earned",
            order.id, order.total, len(plan.deductions), points,
        )

        printer = self.catalog.cashier_printer(order.branch_id)
        self.queue.enqueue(
            ReceiptJob(
                printer_name=printer.name if printer else settings.default_cashier_printer,
                printer_description=printer.description if printer else None,
                order=OrderResponse.model_validate(order),
            )
        )

        return SettlementResult(
            order_id=order.id,
            deductions=dict(plan.deductions),
            packaging_cost=plan.packaging_cost,
            earned_points=points,
            resolution_misses=list(resolver.misses),
        )

"""Pricing & Totals Calculator.

``compute_totals`` is a pure function of the line items, the applied
discount snapshot, the courtesy flag and the service charge. Every order
mutation calls it and writes the result together with the items.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional

from forno.models.discount import DiscountType
from forno.schemas.order import AppliedDiscount, OrderItem, load_discount

ZERO = Decimal("0")
CENT = Decimal("0.01")


def money(value) -> Decimal:
    """Quantize to cents."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    total: Decimal


def bogo_amount(
    items: Iterable[OrderItem],
    target_categories: Iterable[str],
    categories: Mapping[int, str],
) -> Decimal:
    """Every second unit free, per line, within the targeted categories.

    Lines without a catalog product (custom items, deleted products) never
    qualify. An empty category list targets every product.
    """
    targets = set(target_categories)
    amount = ZERO
    for item in items:
        if item.product_id is None:
            continue
        category = categories.get(item.product_id)
        if category is None:
            continue
        if targets and category not in targets:
            continue
        amount += (item.quantity // 2) * item.price
    return amount


def compute_totals(
    items: Iterable[OrderItem],
    applied_discount: Optional[AppliedDiscount] = None,
    is_courtesy: bool = False,
    service_charge=ZERO,
    categories: Optional[Mapping[int, str]] = None,
) -> Totals:
    """Derive subtotal, discount amount and total.

    *categories* maps product id to category and is only consulted for BOGO.
    A courtesy order totals zero and its whole subtotal is the discount.
    FIXED discounts are not clamped; the total is floored at zero before the
    service charge is added.
    """
    items = list(items)
    subtotal = sum((item.price * item.quantity for item in items), ZERO)

    if is_courtesy:
        subtotal = money(subtotal)
        return Totals(subtotal=subtotal, discount_amount=subtotal, total=money(ZERO))

    discount = ZERO
    if applied_discount is not None:
        if applied_discount.type == DiscountType.PERCENTAGE:
            discount = subtotal * applied_discount.value / Decimal("100")
        elif applied_discount.type == DiscountType.FIXED:
            discount = applied_discount.value
        elif applied_discount.type == DiscountType.BOGO:
            discount = bogo_amount(items, applied_discount.apply_to_categories, categories or {})

    total = max(ZERO, subtotal - discount) + Decimal(service_charge or 0)
    return Totals(subtotal=money(subtotal), discount_amount=money(discount), total=money(total))


def order_totals(order, items: Iterable[OrderItem], categories: Mapping[int, str]) -> Totals:
    """Totals for *items* under the discount, courtesy and service charge of *order*."""
    return compute_totals(
        items,
        applied_discount=load_discount(order.applied_discount),
        is_courtesy=bool(order.is_courtesy),
        service_charge=order.service_charge or ZERO,
        categories=categories,
    )

"""SQLAlchemy models."""

from forno.models.branch import Branch, Printer
from forno.models.customer import Customer
from forno.models.discount import Discount, DiscountType
from forno.models.expense import Expense
from forno.models.ingredient import Ingredient
from forno.models.order import (
    DiningTable,
    Order,
    OrderStatus,
    OrderType,
    PaymentMethod,
    TERMINAL_STATUSES,
)
from forno.models.packaging import ApplyPer, PackagingRule
from forno.models.product import ModifierGroup, ModifierOption, Product
from forno.models.purchase import Purchase
from forno.models.settings import AppSetting
from forno.models.transfer import Transfer, TransferStatus

__all__ = [
    "AppSetting",
    "ApplyPer",
    "Branch",
    "Customer",
    "DiningTable",
    "Discount",
    "DiscountType",
    "Expense",
    "Ingredient",
    "ModifierGroup",
    "ModifierOption",
    "Order",
    "OrderStatus",
    "OrderType",
    "PackagingRule",
    "PaymentMethod",
    "Printer",
    "Product",
    "Purchase",
    "TERMINAL_STATUSES",
    "Transfer",
    "TransferStatus",
]

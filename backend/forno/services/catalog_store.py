"""Catalog Store - read access to reference data for the transaction engine.

Every service reads products, ingredients, discounts, packaging rules and
business settings through this repository instead of querying models
ad hoc. It shares the caller's session, so rows added or changed earlier
in the same unit of work are visible here.
"""

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from forno.models import (
    AppSetting, Branch, Customer, DiningTable, Discount, Ingredient, ModifierOption,
    Order, PackagingRule, Printer, Product, Transfer,
)
from forno.schemas.settings import BusinessSettings
from forno.services.errors import NotFoundError

logger = logging.getLogger(__name__)

BUSINESS_SETTINGS_CATEGORY = "business"
BUSINESS_SETTINGS_KEY = "main"


class CatalogStore:
    """Repository over the catalog tables."""

    def __init__(self, db: Session):
        self.db = db

    # ===== BRANCHES / PRINTERS =====

    def require_branch(self, branch_id: int) -> Branch:
        branch = self.db.get(Branch, branch_id)
        if branch is None:
            raise NotFoundError("Branch", branch_id)
        return branch

    def printers(self, branch_id: int) -> List[Printer]:
        return list(
            self.db.scalars(
                select(Printer).where(Printer.branch_id == branch_id).order_by(Printer.id)
            )
        )

    def cashier_printer(self, branch_id: int) -> Optional[Printer]:
        for printer in self.printers(branch_id):
            if printer.is_cashier:
                return printer
        return None

    # ===== INGREDIENTS =====

    def get_ingredient(self, ingredient_id: int) -> Optional[Ingredient]:
        return self.db.get(Ingredient, ingredient_id)

    def require_ingredient(self, ingredient_id: int) -> Ingredient:
        ingredient = self.get_ingredient(ingredient_id)
        if ingredient is None:
            raise NotFoundError("Ingredient", ingredient_id)
        return ingredient

    def ingredients_by_ids(self, ingredient_ids: Iterable[int]) -> Dict[int, Ingredient]:
        ids = set(ingredient_ids)
        if not ids:
            return {}
        rows = self.db.scalars(select(Ingredient).where(Ingredient.id.in_(ids)))
        return {row.id: row for row in rows}

    def branch_ingredients(self, branch_id: int) -> List[Ingredient]:
        return list(
            self.db.scalars(
                select(Ingredient)
                .where(Ingredient.branch_id == branch_id)
                .order_by(Ingredient.id)
            )
        )

    # ===== PRODUCTS / MODIFIERS =====

    def get_product(self, product_id: int) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def require_product(self, product_id: int) -> Product:
        product = self.get_product(product_id)
        if product is None:
            raise NotFoundError("Product", product_id)
        return product

    def products_by_ids(self, product_ids: Iterable[int]) -> Dict[int, Product]:
        ids = {pid for pid in product_ids if pid is not None}
        if not ids:
            return {}
        rows = self.db.scalars(select(Product).where(Product.id.in_(ids)))
        return {row.id: row for row in rows}

    def product_categories(self, product_ids: Iterable[int]) -> Dict[int, str]:
        """Map product id to category for the products that still exist."""
        return {pid: product.category for pid, product in self.products_by_ids(product_ids).items()}

    def modifier_options(self, option_ids: Iterable[int]) -> List[ModifierOption]:
        """Load options in the requested order; every id must exist."""
        ids = list(option_ids)
        if not ids:
            return []
        rows = {
            row.id: row
            for row in self.db.scalars(select(ModifierOption).where(ModifierOption.id.in_(ids)))
        }
        options = []
        for option_id in ids:
            if option_id not in rows:
                raise NotFoundError("Modifier option", option_id)
            options.append(rows[option_id])
        return options

    def packaging_rules(self) -> List[PackagingRule]:
        return list(self.db.scalars(select(PackagingRule).order_by(PackagingRule.id)))

    # ===== DISCOUNTS =====

    def require_discount(self, discount_id: int) -> Discount:
        discount = self.db.get(Discount, discount_id)
        if discount is None:
            raise NotFoundError("Discount", discount_id)
        return discount

    # ===== ORDERS / TABLES / CUSTOMERS =====

    def require_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def get_table(self, table_id: Optional[int]) -> Optional[DiningTable]:
        if table_id is None:
            return None
        return self.db.get(DiningTable, table_id)

    def require_table(self, table_id: int) -> DiningTable:
        table = self.get_table(table_id)
        if table is None:
            raise NotFoundError("Table", table_id)
        return table

    def get_customer(self, customer_id: Optional[int]) -> Optional[Customer]:
        if customer_id is None:
            return None
        return self.db.get(Customer, customer_id)

    def require_customer(self, customer_id: int) -> Customer:
        customer = self.get_customer(customer_id)
        if customer is None:
            raise NotFoundError("Customer", customer_id)
        return customer

    def require_transfer(self, transfer_id: int) -> Transfer:
        transfer = self.db.get(Transfer, transfer_id)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        return transfer

    # ===== SETTINGS =====

    def business_settings(self) -> BusinessSettings:
        """Read the business settings row, falling back to defaults."""
        row = self.db.scalar(
            select(AppSetting).where(
                AppSetting.category == BUSINESS_SETTINGS_CATEGORY,
                AppSetting.key == BUSINESS_SETTINGS_KEY,
            )
        )
        if row is None or not row.value:
            return BusinessSettings()
        return BusinessSettings.model_validate(row.value)

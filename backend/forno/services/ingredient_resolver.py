"""Ingredient Resolver - map a reference ingredient onto a branch's own row.

Recipes, modifiers and packaging rules point at one concrete ingredient
row, but stock lives per branch. The resolver finds the row in the target
branch that represents the same ingredient. When nothing matches it falls
back to the reference id so that callers always get a usable id.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from forno.models import Ingredient
from forno.services.catalog_store import CatalogStore

logger = logging.getLogger(__name__)


def normalize_name(name: Optional[str]) -> str:
    """Identity key for an ingredient name within a branch."""
    return (name or "").strip().lower()


class IngredientResolver(ABC):
    """Strategy for finding a branch's copy of an ingredient.

    Lookups never write. Each fallback is recorded in ``misses`` so the
    caller can report them.
    """

    def __init__(self, catalog: CatalogStore):
        self.catalog = catalog
        self.misses: List[int] = []

    @abstractmethod
    def find_in_branch(self, reference: Ingredient, branch_id: int) -> Optional[Ingredient]:
        """Return the row in *branch_id* equivalent to *reference*, if any."""

    def resolve(self, reference_ingredient_id: int, target_branch_id: int) -> int:
        reference = self.catalog.get_ingredient(reference_ingredient_id)
        if reference is None:
            self._miss(reference_ingredient_id, target_branch_id, "unknown reference")
            return reference_ingredient_id

        match = self.find_in_branch(reference, target_branch_id)
        if match is None:
            self._miss(
                reference_ingredient_id, target_branch_id, f"no row named {reference.name!r}"
            )
            return reference_ingredient_id
        return match.id

    def _miss(self, reference_id: int, branch_id: int, reason: str) -> None:
        if reference_id not in self.misses:
            self.misses.append(reference_id)
        logger.warning(
            "Ingredient %s not resolved in branch %s (%s); using reference id",
            reference_id, branch_id, reason,
        )


class NameMatchResolver(IngredientResolver):
    """Match by normalized name (trimmed, lower-cased).

    The first row (lowest id) wins when a branch holds duplicate names.
    Branch indexes are built once per resolver instance.
    """

    def __init__(self, catalog: CatalogStore):
        super().__init__(catalog)
        self._index: Dict[int, Dict[str, Ingredient]] = {}

    def _branch_index(self, branch_id: int) -> Dict[str, Ingredient]:
        index = self._index.get(branch_id)
        if index is None:
            index = {}
            for row in self.catalog.branch_ingredients(branch_id):
                index.setdefault(normalize_name(row.name), row)
            self._index[branch_id] = index
        return index

    def find_by_name(self, name: str, branch_id: int) -> Optional[Ingredient]:
        return self._branch_index(branch_id).get(normalize_name(name))

    def find_in_branch(self, reference: Ingredient, branch_id: int) -> Optional[Ingredient]:
        if reference.branch_id == branch_id:
            return reference
        return self.find_by_name(reference.name, branch_id)

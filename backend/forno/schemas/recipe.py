"""Recipe line documents shared by products, modifiers, packaging and sub-recipes."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Optional

from pydantic import BaseModel, Field


class RecipeComponent(BaseModel):
    """Usage of one ingredient, in usage units."""

    ingredient_id: int
    quantity: Decimal = Field(ge=0)


def load_components(raw: Optional[Iterable[dict]]) -> List[RecipeComponent]:
    """Parse a stored JSON recipe list."""
    return [RecipeComponent.model_validate(entry) for entry in (raw or [])]


def dump_components(components: Iterable[RecipeComponent]) -> List[dict]:
    """Serialize recipe lines for a JSON column."""
    return [c.model_dump(mode="json") for c in components]

"""Tests for cross-branch ingredient resolution."""

from decimal import Decimal

from forno.models import Ingredient
from forno.services.catalog_store import CatalogStore
from forno.services.ingredient_resolver import NameMatchResolver, normalize_name


def test_normalize_name():
    assert normalize_name("  Mozzarella ") == "mozzarella"
    assert normalize_name(None) == ""


class TestNameMatchResolver:
    def test_resolves_by_normalized_name(self, pizzeria):
        resolver = NameMatchResolver(CatalogStore(pizzeria["db"]))
        resolved = resolver.resolve(pizzeria["mozzarella"].id, pizzeria["norte"].id)
        assert resolved == pizzeria["norte_mozzarella"].id
        assert resolver.misses == []

    def test_same_branch_returns_reference(self, pizzeria):
        resolver = NameMatchResolver(CatalogStore(pizzeria["db"]))
        assert resolver.resolve(pizzeria["sauce"].id, pizzeria["centro"].id) == pizzeria["sauce"].id

    def test_no_match_falls_back_to_reference(self, pizzeria):
        resolver = NameMatchResolver(CatalogStore(pizzeria["db"]))
        resolved = resolver.resolve(pizzeria["sauce"].id, pizzeria["norte"].id)
        assert resolved == pizzeria["sauce"].id
        assert resolver.misses == [pizzeria["sauce"].id]

    def test_unknown_reference_falls_back(self, pizzeria):
        resolver = NameMatchResolver(CatalogStore(pizzeria["db"]))
        assert resolver.resolve(9999, pizzeria["centro"].id) == 9999
        assert resolver.misses == [9999]

    def test_duplicate_names_pick_lowest_id(self, pizzeria):
        db = pizzeria["db"]
        duplicate = Ingredient(
            branch_id=pizzeria["norte"].id, name="MOZZARELLA", stock=Decimal("0"), cost=Decimal("0")
        )
        db.add(duplicate)
        db.commit()
        resolver = NameMatchResolver(CatalogStore(db))
        assert resolver.resolve(pizzeria["mozzarella"].id, pizzeria["norte"].id) == pizzeria["norte_mozzarella"].id

    def test_lookup_does_not_write(self, pizzeria):
        db = pizzeria["db"]
        resolver = NameMatchResolver(CatalogStore(db))
        resolver.resolve(pizzeria["mozzarella"].id, pizzeria["norte"].id)
        resolver.resolve(pizzeria["sauce"].id, pizzeria["norte"].id)
        assert not db.dirty
        assert not db.new

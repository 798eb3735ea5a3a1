"""Tests for sub-recipe production and batch costing."""

import pytest
from decimal import Decimal

from sqlalchemy.exc import OperationalError

from forno.models import Ingredient
from forno.schemas.print_job import ProductionJob
from forno.services.errors import TransactionFailedError, ValidationError
from forno.services.production_service import ProductionService, rolled_cost


@pytest.fixture
def dough(pizzeria):
    """Pizza base: one batch uses 1000 g mozzarella and 2000 ml sauce (cost 20)."""
    db = pizzeria["db"]
    row = Ingredient(
        branch_id=pizzeria["centro"].id, name="Pizza Base", unit="unit",
        cost=Decimal("2.0"), stock=Decimal("10"), min_stock=Decimal("0"),
        is_sub_recipe=True, batch_size=Decimal("5"),
        composition=[
            {"ingredient_id": pizzeria["mozzarella"].id, "quantity": "1000"},
            {"ingredient_id": pizzeria["sauce"].id, "quantity": "2000"},
        ],
    )
    db.add(row)
    db.commit()
    return row


class TestRolledCost:
    def test_weighted_average(self):
        cost = rolled_cost(Decimal("10"), Decimal("2"), Decimal("20"), Decimal("5"))
        assert cost.quantize(Decimal("0.0001")) == Decimal("2.6667")

    def test_no_output_spreads_input_over_existing_stock(self):
        assert rolled_cost(Decimal("10"), Decimal("2"), Decimal("20"), Decimal("0")) == Decimal("4")

    def test_nothing_on_hand_keeps_old_cost(self):
        assert rolled_cost(Decimal("0"), Decimal("2"), Decimal("20"), Decimal("0")) == Decimal("2")

    def test_empty_stock_takes_batch_cost(self):
        assert rolled_cost(Decimal("0"), Decimal("2"), Decimal("20"), Decimal("4")) == Decimal("5")


class TestProduceBatch:
    def test_consumes_composition_and_rolls_cost(self, pizzeria, dough):
        db = pizzeria["db"]
        service = ProductionService(db)

        assert service.produce_batch(dough.id, Decimal("1"), Decimal("5")) is True

        dough = db.get(Ingredient, dough.id)
        assert dough.stock == Decimal("15")
        assert dough.cost.quantize(Decimal("0.0001")) == Decimal("2.6667")
        assert db.get(Ingredient, pizzeria["mozzarella"].id).stock == Decimal("4000")
        assert db.get(Ingredient, pizzeria["sauce"].id).stock == Decimal("1000")

    def test_batch_count_scales_consumption(self, pizzeria, dough):
        db = pizzeria["db"]
        ProductionService(db).produce_batch(dough.id, Decimal("1.5"), Decimal("7"))

        assert db.get(Ingredient, pizzeria["mozzarella"].id).stock == Decimal("3500")
        assert db.get(Ingredient, pizzeria["sauce"].id).stock == Decimal("0")
        assert db.get(Ingredient, dough.id).stock == Decimal("17")

    def test_queues_production_ticket(self, pizzeria, dough, print_queue):
        ProductionService(pizzeria["db"]).produce_batch(
            dough.id, Decimal("2"), Decimal("9"), produced_by="Carla"
        )

        jobs = print_queue.pending("Caja")
        assert len(jobs) == 1
        job = jobs[0]
        assert isinstance(job, ProductionJob)
        assert job.production.item_name == "Pizza Base"
        assert job.production.expected_qty == Decimal("10")
        assert job.production.actual_qty == Decimal("9")
        assert job.production.user == "Carla"
        assert {usage.name for usage in job.production.ingredients_used} == {
            "Mozzarella", "Tomato Sauce",
        }

    def test_resolves_composition_in_requested_branch(self, pizzeria, dough):
        db = pizzeria["db"]
        ProductionService(db).produce_batch(
            dough.id, Decimal("1"), Decimal("5"), branch_id=pizzeria["norte"].id
        )

        assert db.get(Ingredient, pizzeria["norte_mozzarella"].id).stock == Decimal("1000")
        assert db.get(Ingredient, pizzeria["mozzarella"].id).stock == Decimal("5000")

    def test_plain_ingredient_is_not_producible(self, pizzeria, print_queue):
        db = pizzeria["db"]
        assert ProductionService(db).produce_batch(
            pizzeria["mozzarella"].id, Decimal("1"), Decimal("1")
        ) is False
        assert db.get(Ingredient, pizzeria["mozzarella"].id).stock == Decimal("5000")
        assert print_queue.pending() == []

    def test_unknown_sub_recipe(self, pizzeria):
        assert ProductionService(pizzeria["db"]).produce_batch(9999, Decimal("1"), Decimal("1")) is False

    def test_empty_composition(self, pizzeria, dough):
        db = pizzeria["db"]
        dough.composition = []
        db.commit()
        assert ProductionService(db).produce_batch(dough.id, Decimal("1"), Decimal("5")) is False
        assert db.get(Ingredient, dough.id).stock == Decimal("10")

    @pytest.mark.parametrize("batches,output", [("0", "5"), ("-1", "5"), ("1", "-2")])
    def test_invalid_quantities(self, pizzeria, dough, batches, output):
        with pytest.raises(ValidationError):
            ProductionService(pizzeria["db"]).produce_batch(dough.id, Decimal(batches), Decimal(output))

    def test_failed_commit_changes_nothing(self, pizzeria, dough, print_queue, monkeypatch):
        db = pizzeria["db"]

        def failing_commit():
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(db, "commit", failing_commit)
        with pytest.raises(TransactionFailedError):
            ProductionService(db).produce_batch(dough.id, Decimal("1"), Decimal("5"))
        monkeypatch.undo()

        dough = db.get(Ingredient, dough.id)
        assert dough.stock == Decimal("10")
        assert dough.cost == Decimal("2.0")
        assert db.get(Ingredient, pizzeria["mozzarella"].id).stock == Decimal("5000")
        assert db.get(Ingredient, pizzeria["sauce"].id).stock == Decimal("3000")
        assert print_queue.pending() == []

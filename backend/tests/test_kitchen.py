"""Tests for kitchen routing and the print queue."""

import pytest
from decimal import Decimal

from forno.models import Order, OrderStatus, OrderType
from forno.schemas.order import PaymentLine, load_items
from forno.schemas.print_job import BillJob, CommandJob, ReceiptJob, ShiftReportJob
from forno.services.errors import InvalidOrderStateError, NothingToSendError
from forno.services.order_service import OrderService
from forno.services.print_queue import PrintQueue
from forno.services.settlement_service import SettlementService


@pytest.fixture
def service(pizzeria):
    return OrderService(pizzeria["db"])


@pytest.fixture
def order(pizzeria, service):
    order = service.create_order(
        pizzeria["centro"].id, OrderType.DINE_IN, table_id=pizzeria["table_1"].id
    )
    service.add_item(order.id, pizzeria["margherita"].id, notes="well done")
    return service.add_item(order.id, pizzeria["soda"].id)


class TestSendToKitchen:
    def test_routes_lines_by_category(self, pizzeria, service, order, print_queue):
        jobs = service.send_to_kitchen(order.id)

        by_printer = {job.printer_name: job for job in jobs}
        assert set(by_printer) == {"Cocina", "Barra"}
        assert [item.name for item in by_printer["Cocina"].items] == ["Margherita"]
        assert by_printer["Cocina"].items[0].notes == "well done"
        assert [item.name for item in by_printer["Barra"].items] == ["Soda"]
        assert by_printer["Cocina"].table_id == pizzeria["table_1"].id
        assert len(print_queue.pending()) == 2

    def test_marks_printed_and_starts_cooking(self, pizzeria, service, order):
        service.send_to_kitchen(order.id)

        order = pizzeria["db"].get(Order, order.id)
        assert order.status == OrderStatus.COOKING
        assert all(item.printed for item in load_items(order.items))

    def test_only_new_lines_are_sent(self, pizzeria, service, order):
        service.send_to_kitchen(order.id)
        service.add_item(order.id, pizzeria["soda"].id)

        jobs = service.send_to_kitchen(order.id)

        assert [job.printer_name for job in jobs] == ["Barra"]
        assert len(jobs[0].items) == 1

    def test_nothing_to_send(self, service, order):
        service.send_to_kitchen(order.id)
        with pytest.raises(NothingToSendError):
            service.send_to_kitchen(order.id)

    def test_custom_lines_reach_no_category_printer(self, pizzeria, service):
        order = service.create_order(pizzeria["centro"].id, OrderType.TAKEOUT)
        service.add_custom_item(order.id, "Birthday cake", Decimal("20"))

        assert service.send_to_kitchen(order.id) == []
        assert all(item.printed for item in load_items(pizzeria["db"].get(Order, order.id).items))

    def test_branch_without_kitchen_printers(self, pizzeria, service):
        order = service.create_order(pizzeria["norte"].id, OrderType.DINE_IN)
        service.add_item(order.id, pizzeria["margherita"].id)

        jobs = service.send_to_kitchen(order.id)

        assert len(jobs) == 1
        assert jobs[0].printer_name == "Cocina"
        assert jobs[0].printer_description is None

    def test_paid_order_cannot_be_sent(self, pizzeria, service, order):
        SettlementService(pizzeria["db"]).close_order(
            order.id, [PaymentLine(method="CARD", amount=Decimal("15"))]
        )
        with pytest.raises(InvalidOrderStateError):
            service.send_to_kitchen(order.id)


class TestBills:
    def test_pre_bill_goes_to_cashier(self, service, order):
        job = service.print_pre_bill(order.id)

        assert isinstance(job, BillJob)
        assert job.printer_name == "Caja"
        assert job.printer_description == "Front desk"
        assert job.order.total == Decimal("15.00")

    def test_pre_bill_needs_open_order(self, pizzeria, service, order):
        service.void_order(order.id)
        with pytest.raises(InvalidOrderStateError):
            service.print_pre_bill(order.id)

    def test_reprint_paid_order_gives_receipt(self, pizzeria, service, order, print_queue):
        SettlementService(pizzeria["db"]).close_order(
            order.id, [PaymentLine(method="CASH", amount=Decimal("15"))]
        )
        print_queue.reset()

        job = service.reprint(order.id)

        assert isinstance(job, ReceiptJob)
        assert print_queue.pending() == [job]

    def test_reprint_open_order_gives_bill(self, service, order):
        assert isinstance(service.reprint(order.id), BillJob)

    def test_reprint_void_order(self, service, order):
        service.void_order(order.id)
        with pytest.raises(InvalidOrderStateError):
            service.reprint(order.id)

    def test_branch_without_cashier_printer(self, pizzeria, service):
        order = service.create_order(pizzeria["norte"].id, OrderType.DINE_IN)
        assert service.print_pre_bill(order.id).printer_name == "Caja"


class TestPrintQueue:
    def _job(self, printer="Cocina"):
        return CommandJob(printer_name=printer, order_id=1, items=[])

    def test_pending_filters_by_printer(self):
        queue = PrintQueue()
        queue.enqueue(self._job("Cocina"))
        queue.enqueue(self._job("Barra"))

        assert len(queue.pending()) == 2
        assert [job.printer_name for job in queue.pending("Barra")] == ["Barra"]

    def test_clear(self):
        queue = PrintQueue()
        job = queue.enqueue(self._job())

        assert queue.clear(job.id) is True
        assert queue.clear(job.id) is False
        assert queue.pending() == []

    def test_jobs_keep_their_type(self):
        queue = PrintQueue()
        queue.enqueue(self._job())
        queue.enqueue(ShiftReportJob(printer_name="Caja", session_id=7, totals={"CASH": Decimal("120.50")}))

        assert [job.type for job in queue.pending()] == ["COMMAND", "SHIFT_REPORT"]
        assert queue.pending("Caja")[0].totals["CASH"] == Decimal("120.50")

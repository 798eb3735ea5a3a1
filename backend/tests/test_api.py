"""API endpoint tests."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from forno.models import Ingredient

API = "/api/v1"


def _open_order(client, headers, pizzeria, **extra):
    response = client.post(
        f"{API}/orders",
        json={"branch_id": pizzeria["centro"].id, "type": "DINE_IN", **extra},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


def _add_pizza(client, headers, order_id, pizzeria):
    response = client.post(
        f"{API}/orders/{order_id}/items",
        json={"product_id": pizzeria["margherita"].id},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()


class TestHealthCheck:
    """Test health check endpoint."""

    def test_health_check(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestAuth:
    def test_missing_token(self, client: TestClient, pizzeria):
        response = client.get(f"{API}/orders/1")
        assert response.status_code == 401

    def test_garbage_token(self, client: TestClient, pizzeria):
        response = client.get(f"{API}/orders/1", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401


class TestOrderFlow:
    """Open, fill, send and close an order over HTTP."""

    def test_full_service(self, client: TestClient, pizzeria, waiter_headers, cashier_headers):
        order = _open_order(client, waiter_headers, pizzeria, table_id=pizzeria["table_1"].id)
        assert order["status"] == "OPEN"
        assert order["version"] == 1

        order = _add_pizza(client, waiter_headers, order["id"], pizzeria)
        assert Decimal(order["total"]) == Decimal("12.00")

        response = client.post(f"{API}/orders/{order['id']}/send", headers=waiter_headers)
        assert response.status_code == 200
        assert [job["printer_name"] for job in response.json()] == ["Cocina"]

        response = client.post(
            f"{API}/orders/{order['id']}/close",
            json={"payment_methods": [{"method": "CASH", "amount": "12.00"}], "tip": "1.00"},
            headers=cashier_headers,
        )
        assert response.status_code == 200
        result = response.json()
        assert Decimal(result["deductions"][str(pizzeria["mozzarella"].id)]) == Decimal("200")
        assert result["resolution_misses"] == []

        response = client.get(f"{API}/orders/{order['id']}", headers=waiter_headers)
        assert response.json()["status"] == "PAID"
        assert pizzeria["db"].get(Ingredient, pizzeria["mozzarella"].id).stock == Decimal("4800")

    def test_line_item_edits(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        order = _add_pizza(client, waiter_headers, order["id"], pizzeria)
        item_id = order["items"][0]["id"]

        response = client.patch(
            f"{API}/orders/{order['id']}/items/{item_id}", json={"delta": 2}, headers=waiter_headers
        )
        assert response.json()["items"][0]["quantity"] == 3

        response = client.post(
            f"{API}/orders/{order['id']}/custom-items",
            json={"name": "Tiramisu", "price": "6.50"},
            headers=waiter_headers,
        )
        assert Decimal(response.json()["subtotal"]) == Decimal("42.50")

        response = client.delete(f"{API}/orders/{order['id']}/items/{item_id}", headers=waiter_headers)
        assert Decimal(response.json()["total"]) == Decimal("6.50")

    def test_manual_discount_and_service_charge(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        _add_pizza(client, waiter_headers, order["id"], pizzeria)

        response = client.put(
            f"{API}/orders/{order['id']}/discount",
            json={"manual": {"type": "PERCENTAGE", "value": "50"}},
            headers=waiter_headers,
        )
        assert response.json()["applied_discount"]["name"] == "Manual discount (50%)"

        response = client.put(
            f"{API}/orders/{order['id']}/service-charge", json={"amount": "1.50"}, headers=waiter_headers
        )
        assert Decimal(response.json()["total"]) == Decimal("7.50")

        response = client.put(f"{API}/orders/{order['id']}/discount", json={}, headers=waiter_headers)
        assert response.json()["applied_discount"] is None

    def test_split(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria, table_id=pizzeria["table_1"].id)
        order = _add_pizza(client, waiter_headers, order["id"], pizzeria)
        item_id = order["items"][0]["id"]
        client.patch(f"{API}/orders/{order['id']}/items/{item_id}", json={"delta": 1}, headers=waiter_headers)

        response = client.post(
            f"{API}/orders/{order['id']}/split", json={"quantities": {item_id: 1}}, headers=waiter_headers
        )
        assert response.status_code == 201
        assert response.json()["id"] != order["id"]
        assert response.json()["table_id"] == pizzeria["table_1"].id


class TestErrorMapping:
    def test_unknown_order_is_404(self, client: TestClient, pizzeria, waiter_headers):
        response = client.get(f"{API}/orders/9999", headers=waiter_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    def test_stale_version_is_409(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        _add_pizza(client, waiter_headers, order["id"], pizzeria)

        response = client.post(
            f"{API}/orders/{order['id']}/items",
            json={"product_id": pizzeria["soda"].id, "expected_version": 1},
            headers=waiter_headers,
        )
        assert response.status_code == 409
        assert response.json()["error"] == "ConcurrentModificationError"

    def test_missing_price_is_422(self, client: TestClient, pizzeria, waiter_headers):
        response = client.post(
            f"{API}/orders",
            json={"branch_id": pizzeria["centro"].id, "type": "DELIVERY_PEDIDOSYA"},
            headers=waiter_headers,
        )
        response = client.post(
            f"{API}/orders/{response.json()['id']}/items",
            json={"product_id": pizzeria["soda"].id},
            headers=waiter_headers,
        )
        assert response.status_code == 422
        assert response.json()["error"] == "ValidationError"

    def test_waiter_cannot_close(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        response = client.post(
            f"{API}/orders/{order['id']}/close",
            json={"payment_methods": [{"method": "CASH", "amount": "0"}]},
            headers=waiter_headers,
        )
        assert response.status_code == 403

    def test_waiter_cannot_grant_courtesy(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        response = client.post(f"{API}/orders/{order['id']}/courtesy", json={}, headers=waiter_headers)
        assert response.status_code == 403
        assert response.json()["error"] == "AuthorizationError"

    def test_closing_twice_is_409(self, client: TestClient, pizzeria, waiter_headers, cashier_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        _add_pizza(client, waiter_headers, order["id"], pizzeria)
        body = {"payment_methods": [{"method": "CARD", "amount": "12.00"}]}

        assert client.post(f"{API}/orders/{order['id']}/close", json=body, headers=cashier_headers).status_code == 200
        response = client.post(f"{API}/orders/{order['id']}/close", json=body, headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["error"] == "InvalidOrderStateError"

    def test_close_without_payments_is_422(self, client: TestClient, pizzeria, waiter_headers, cashier_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        response = client.post(
            f"{API}/orders/{order['id']}/close", json={"payment_methods": []}, headers=cashier_headers
        )
        assert response.status_code == 422


class TestPrintJobs:
    def test_poll_and_clear(self, client: TestClient, pizzeria, waiter_headers):
        order = _open_order(client, waiter_headers, pizzeria)
        _add_pizza(client, waiter_headers, order["id"], pizzeria)
        client.post(f"{API}/orders/{order['id']}/pre-bill", headers=waiter_headers)

        response = client.get(f"{API}/print-jobs", params={"printer": "Caja"}, headers=waiter_headers)
        jobs = response.json()
        assert len(jobs) == 1
        assert jobs[0]["type"] == "BILL"

        response = client.delete(f"{API}/print-jobs/{jobs[0]['id']}", headers=waiter_headers)
        assert response.status_code == 204
        assert client.get(f"{API}/print-jobs", headers=waiter_headers).json() == []

    def test_clear_unknown_job(self, client: TestClient, pizzeria, waiter_headers):
        response = client.delete(f"{API}/print-jobs/missing", headers=waiter_headers)
        assert response.status_code == 404


class TestInventoryRoutes:
    def test_purchase(self, client: TestClient, pizzeria, cashier_headers):
        response = client.post(
            f"{API}/purchases",
            json={
                "branch_id": pizzeria["centro"].id,
                "provider": "Lacteos SA",
                "invoice_number": "A-0100",
                "items": [{"ingredient_id": pizzeria["mozzarella"].id, "quantity": "1", "cost": "10"}],
            },
            headers=cashier_headers,
        )
        assert response.status_code == 201
        assert Decimal(response.json()["total"]) == Decimal("10.00")

    def test_transfer_round_trip(self, client: TestClient, pizzeria, cashier_headers):
        response = client.post(
            f"{API}/transfers",
            json={
                "source_branch_id": pizzeria["centro"].id,
                "target_branch_id": pizzeria["norte"].id,
                "items": [{"ingredient_id": pizzeria["mozzarella"].id, "quantity": "500"}],
            },
            headers=cashier_headers,
        )
        assert response.status_code == 201
        transfer_id = response.json()["id"]

        response = client.post(f"{API}/transfers/{transfer_id}/receive", headers=cashier_headers)
        assert response.json()["status"] == "COMPLETED"

        response = client.post(f"{API}/transfers/{transfer_id}/cancel", headers=cashier_headers)
        assert response.status_code == 409

    def test_adjust_and_low_stock(self, client: TestClient, pizzeria, cashier_headers):
        response = client.post(
            f"{API}/inventory/adjust",
            json={
                "branch_id": pizzeria["centro"].id,
                "adjustments": [{"ingredient_id": pizzeria["mozzarella"].id, "counted_stock": "900"}],
            },
            headers=cashier_headers,
        )
        assert response.status_code == 200
        assert Decimal(response.json()["loss"]) == Decimal("41.00")

        response = client.get(
            f"{API}/inventory/low-stock", params={"branch_id": pizzeria["centro"].id}, headers=cashier_headers
        )
        assert [row["name"] for row in response.json()] == ["Mozzarella"]

    @pytest.mark.parametrize("headers_fixture,expected", [("cashier_headers", 403), ("admin_headers", 201)])
    def test_master_ingredient_requires_admin(
        self, client: TestClient, pizzeria, request, headers_fixture, expected
    ):
        response = client.post(
            f"{API}/inventory/ingredients",
            json={"name": "Basil", "unit": "g", "branch_ids": [pizzeria["centro"].id, pizzeria["norte"].id]},
            headers=request.getfixturevalue(headers_fixture),
        )
        assert response.status_code == expected

    def test_produce_non_sub_recipe_is_422(self, client: TestClient, pizzeria, waiter_headers):
        response = client.post(
            f"{API}/production",
            json={"sub_recipe_id": pizzeria["mozzarella"].id, "batch_count": "1", "actual_output_qty": "1"},
            headers=waiter_headers,
        )
        assert response.status_code == 422

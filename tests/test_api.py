"""
Tests for the POS cart API.
"""

import pytest
from fastapi.testclient import TestClient

from pos_cart.api.app import create_app

TERMINAL = {"X-Terminal-ID": "T1", "X-User-ID": "7"}


@pytest.fixture
def client(services):
    """Create a test client over in-memory services."""
    with TestClient(create_app(services)) as test_client:
        yield test_client


@pytest.fixture
def headers(client):
    """Identity headers for an open session on terminal T1."""
    response = client.post("/session", headers=TERMINAL)
    return {**TERMINAL, "X-Session-ID": response.headers["X-Session-ID"]}


def test_root(client):
    """Test root endpoint."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["name"] == "POS Cart API"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "store_healthy": True}


def test_open_session(client):
    response = client.post("/session", headers=TERMINAL)

    assert response.status_code == 200
    data = response.json()
    assert data["created"] is True
    assert data["terminal_id"] == "T1"
    assert data["user_id"] == 7
    assert response.headers["X-Session-ID"] == data["session_id"]


def test_session_is_reused(client, headers):
    response = client.post("/session", headers=headers)

    assert response.json()["created"] is False
    assert response.json()["session_id"] == headers["X-Session-ID"]


def test_session_requires_user(client):
    response = client.post("/session", headers={"X-Terminal-ID": "T1"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_user"


def test_validate_session(client, headers):
    response = client.get("/session/validate", headers=headers)
    assert response.status_code == 200

    response = client.get("/session/validate", headers={**headers, "X-Terminal-ID": "T9"})
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "terminal_mismatch"


def test_destroy_session(client, headers):
    response = client.delete("/session", headers=headers)
    assert response.status_code == 200

    response = client.post("/session", headers=headers)
    assert response.json()["created"] is True
    assert response.json()["session_id"] != headers["X-Session-ID"]


def test_add_item_and_totals(client, headers):
    response = client.post("/cart/items", json={"product_id": 1, "quantity": 2}, headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    assert data["totals"]["subtotal"] == "200.00"
    assert data["totals"]["total_tax"] == "20.00"
    assert data["totals"]["cart_total"] == "220.00"

    response = client.post("/cart/coupons", json={"code": "tenoff"}, headers=headers)
    assert response.json()["totals"]["cart_total"] == "210.00"
    assert response.json()["coupons"] == ["tenoff"]


def test_add_item_stock_conflict(client, headers):
    response = client.post("/cart/items", json={"product_id": 2, "quantity": 5}, headers=headers)

    assert response.status_code == 409
    error = response.json()["error"]
    assert error["code"] == "insufficient_stock"
    assert error["details"]["available"] == 3


def test_add_item_invalid_product(client, headers):
    response = client.post("/cart/items", json={"product_id": 999}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_product"


def test_update_and_remove_item(client, headers):
    added = client.post("/cart/items", json={"product_id": 1, "quantity": 1}, headers=headers).json()
    key = added["items"][0]["key"]

    response = client.put(f"/cart/items/{key}", json={"quantity": 3}, headers=headers)
    assert response.json()["count"] == 3

    response = client.put(f"/cart/items/{key}", json={"quantity": 0}, headers=headers)
    assert response.json()["items"] == []

    response = client.delete(f"/cart/items/{key}", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "item_not_found"


def test_carts_are_isolated_per_terminal(client, headers):
    client.post("/cart/items", json={"product_id": 1, "quantity": 1}, headers=headers)

    other = client.get("/cart", headers={"X-Terminal-ID": "T2", "X-User-ID": "8"})

    assert other.status_code == 200
    assert other.json()["items"] == []


def test_batch_add(client, headers):
    response = client.post(
        "/cart/items/batch",
        json={"items": [{"product_id": 1}, {"product_id": 4}]},
        headers=headers,
    )

    data = response.json()
    assert data["success"] is False
    assert len(data["added"]) == 1
    assert data["errors"][0]["code"] == "out_of_stock"


def test_cart_status_and_summary(client, headers):
    client.post("/cart/items", json={"product_id": 1, "quantity": 2}, headers=headers)

    assert client.get("/cart/status", headers=headers).json()["valid"] is True
    assert client.get("/cart/summary", headers=headers).json()["cart_total"] == "$220.00"
    assert client.get("/cart/totals", headers=headers).json()["items_count"] == 2


def test_clear_cart(client, headers):
    client.post("/cart/items", json={"product_id": 1, "quantity": 2}, headers=headers)

    response = client.delete("/cart", headers=headers)

    assert response.json()["count"] == 0
    assert client.get("/stock/1?use_cache=false").json()["available_stock"] == 10


def test_stock_view(client, headers):
    client.post("/cart/items", json={"product_id": 1, "quantity": 3}, headers=headers)

    data = client.get("/stock/1").json()

    assert data["current_stock"] == 10
    assert data["reserved_stock"] == 3
    assert data["available_stock"] == 7


def test_stock_not_found(client):
    response = client.get("/stock/999")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "product_not_found"


def test_update_stock(client, headers):
    response = client.put("/stock/1", json={"quantity": 5, "operation": "increase"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["new_stock"] == 15
    assert response.json()["terminal_id"] == "T1"

    response = client.put("/stock/1", json={"quantity": 20, "operation": "decrease"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "negative_stock"


def test_reservation_lifecycle(client, headers):
    response = client.post(
        "/reservations",
        json={"product_id": 1, "quantity": 7, "order_key": "k1"},
        headers=headers,
    )
    assert response.status_code == 201
    reservation_id = response.json()["id"]

    response = client.post(
        "/reservations",
        json={"product_id": 1, "quantity": 5, "order_key": "k2"},
        headers={"X-Terminal-ID": "T2", "X-User-ID": "8"},
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "insufficient_stock"

    assert client.get(f"/reservations/{reservation_id}").json()["status"] == "active"
    assert client.delete(f"/reservations/{reservation_id}").json()["released_count"] == 1
    assert client.delete(f"/reservations/{reservation_id}").json()["released_count"] == 0


def test_batch_availability(client):
    response = client.post("/stock/availability", json={"products": {"1": 5, "999": 1}})

    data = response.json()
    assert data["overall_available"] is False
    assert data["products"]["1"]["available"] is True
    assert data["products"]["999"]["error"] == "product_not_found"


def test_stock_report_and_refresh(client):
    report = client.get("/stock/report").json()
    assert report["summary"]["total_products"] == 6

    refreshed = client.post("/stock/refresh", json={"product_ids": [1]}).json()
    assert refreshed["results"]["1"]["success"] is True


def test_product_tax(client):
    response = client.post("/tax/products/1", json={"location": {"country": "US", "state": "CA"}})

    data = response.json()
    assert data["taxable"] is True
    assert data["tax_amount"] == "12.20"


def test_product_tax_rejects_bad_price(client):
    response = client.post("/tax/products/1", json={"price": "abc"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "validation_error"


def test_tax_settings(client):
    data = client.get("/tax/settings").json()

    assert data["taxes_enabled"] is True
    assert data["default_location"]["state"] == "NY"


def test_cache_endpoints(client, headers):
    client.get("/stock/1")
    client.get("/stock/1")

    stats = client.get("/cache/stats").json()
    assert stats["cache"]["hits"] >= 1

    health = client.get("/cache/health")
    assert health.status_code == 200
    assert health.json()["backend_available"] is True

    cleared = client.delete("/cache", params={"group": "stock"}).json()
    assert cleared["deleted_count"] == 1


def test_maintenance_sweep(client, headers, clock, sessions):
    client.post(
        "/reservations",
        json={"product_id": 1, "quantity": 1, "order_key": "k1", "ttl": 14000},
        headers=headers,
    )
    clock.advance(sessions.timeout + 1)

    data = client.post("/maintenance/sweep").json()

    assert data["sessions_removed"] == 1
    assert data["reservations_removed"] == 1

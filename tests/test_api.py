"""Tests for the FastAPI API."""

import pytest
from fastapi.testclient import TestClient

from storefront.api import app
from storefront.models import LineItem, OrderStatus
from storefront.state import AppState


@pytest.fixture
def api_client(app_state):
    """Test client bound to an AppState that talks to the fake store."""
    app.state.storefront = app_state
    yield TestClient(app)
    app.state.storefront = None


ADDRESS = {
    "name": "Asha Rao",
    "email": "asha@example.com",
    "phone": "9876543210",
    "address_line": "12 MG Road",
    "city": "Bengaluru",
    "postal_code": "560001",
    "country": "India",
}


def ready_to_place(api_client, method):
    api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 2})
    api_client.post("/api/checkout/cart")
    api_client.put("/api/checkout/shipping", json=ADDRESS)
    api_client.put("/api/checkout/payment", json={"payment_method": method})


class TestHealthCheck:
    def test_health(self, api_client):
        response = api_client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["cart_item_count"] == 0
        assert data["checkout_step"] is None


class TestCart:
    def test_empty_cart(self, api_client):
        response = api_client.get("/api/cart")
        assert response.status_code == 200
        data = response.json()
        assert data["items"] == []
        assert data["totals"]["grand_total"] == "0"

    def test_add_item(self, api_client):
        response = api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 2})
        assert response.status_code == 201
        data = response.json()
        assert data["items"][0]["product_id"] == "p1"
        assert data["items"][0]["unit_price"] == "500"
        assert data["totals"]["subtotal"] == "1000"
        assert data["display_total"] == "₹1,230.00"

    def test_add_same_product_replaces(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        response = api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 3})
        items = response.json()["items"]
        assert len(items) == 1
        assert items[0]["quantity"] == 3

    def test_add_over_stock(self, api_client):
        response = api_client.post("/api/cart/items", json={"product_id": "p2", "quantity": 4})
        assert response.status_code == 409
        data = response.json()
        assert data["error_type"] == "StockExceededError"
        assert data["fields"] == {"quantity": "max 3"}

    def test_add_unknown_product(self, api_client):
        response = api_client.post("/api/cart/items", json={"product_id": "nope", "quantity": 1})
        assert response.status_code == 404
        assert response.json()["error_type"] == "ProductNotFoundError"

    def test_add_when_store_down(self, api_client, backend):
        backend.fail("GET", "/products/p1", 500, "Database down")
        response = api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        assert response.status_code == 502
        assert response.json()["detail"] == "Database down"

    def test_update_quantity(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        response = api_client.put("/api/cart/items/p1", json={"quantity": 4})
        assert response.status_code == 200
        assert response.json()["item_count"] == 4

    def test_quantity_zero_removes(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        response = api_client.put("/api/cart/items/p1", json={"quantity": 0})
        assert response.json()["items"] == []

    def test_update_unknown_item(self, api_client):
        response = api_client.put("/api/cart/items/p1", json={"quantity": 2})
        assert response.status_code == 404
        assert response.json()["error_type"] == "CartItemNotFoundError"

    def test_remove_absent_item(self, api_client):
        response = api_client.delete("/api/cart/items/nope")
        assert response.status_code == 200

    def test_clear(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        response = api_client.delete("/api/cart")
        assert response.json()["items"] == []


class TestCheckout:
    def test_start_with_empty_cart(self, api_client):
        response = api_client.post("/api/checkout/cart")
        assert response.status_code == 409
        data = response.json()
        assert data["error_type"] == "PrerequisiteMissingError"
        assert data["redirect_to"] == "catalog"

    def test_step_guards(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        api_client.post("/api/checkout/cart")

        response = api_client.get("/api/checkout/steps/payment")
        assert response.status_code == 200
        assert response.json()["allowed"] is False
        assert response.json()["redirect_to"] == "shipping"

        api_client.put("/api/checkout/shipping", json=ADDRESS)
        response = api_client.get("/api/checkout/steps/place_order")
        assert response.json()["redirect_to"] == "payment"

    def test_unknown_step(self, api_client):
        response = api_client.get("/api/checkout/steps/review")
        assert response.status_code == 422

    def test_walk_through_steps(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 2})
        response = api_client.post("/api/checkout/cart")
        assert response.status_code == 201
        assert response.json()["step"] == "shipping"

        response = api_client.put("/api/checkout/shipping", json=ADDRESS)
        assert response.json()["step"] == "payment"

        response = api_client.put("/api/checkout/payment", json={"payment_method": "cod"})
        data = response.json()
        assert data["step"] == "place_order"
        assert data["payment_method"] == "Cash on Delivery (COD)"
        assert data["totals"]["grand_total"] == "1230.00"

    def test_invalid_address(self, api_client):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        api_client.post("/api/checkout/cart")
        response = api_client.put("/api/checkout/shipping", json=dict(ADDRESS, phone="123"))
        assert response.status_code == 400
        assert "phone" in response.json()["fields"]

    def test_buy_now(self, api_client):
        response = api_client.post("/api/checkout/buy-now", json={"product_id": "p2", "quantity": 1})
        assert response.status_code == 201
        data = response.json()
        assert data["source"] == "buy_now"
        assert data["order_items"][0]["product_id"] == "p2"
        assert api_client.get("/api/cart").json()["items"] == []

    def test_close(self, api_client):
        ready_to_place(api_client, "cod")
        response = api_client.delete("/api/checkout")
        data = response.json()
        assert data["step"] is None
        assert data["shipping_address"]["city"] == "Bengaluru"


class TestPlaceOrder:
    def test_cash_on_delivery(self, api_client, backend):
        ready_to_place(api_client, "cod")
        response = api_client.post("/api/checkout/place-order")
        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "placed"
        assert data["order_id"] == "order-1"
        assert api_client.get("/api/cart").json()["items"] == []
        assert api_client.get("/api/checkout").json()["last_order"]["order_id"] == "order-1"

    def test_card_then_confirm(self, api_client, backend):
        ready_to_place(api_client, "card")
        response = api_client.post("/api/checkout/place-order")
        assert response.status_code == 202
        assert response.json()["redirect_url"] == "https://pay.test/order-1"
        assert len(api_client.get("/api/cart").json()["items"]) == 1

        backend.mark_paid("order-1")
        response = api_client.post("/api/orders/order-1/confirm-payment")
        assert response.status_code == 201
        assert api_client.get("/api/cart").json()["items"] == []

    def test_rejected_without_payment_method(self, api_client, backend):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        api_client.post("/api/checkout/cart")
        response = api_client.post("/api/checkout/place-order")
        assert response.status_code == 409
        assert response.json()["status"] == "rejected"
        assert backend.calls_to("POST", "/orders") == []

    def test_place_after_cli_placed_same_session(self, api_client, settings, backend):
        ready_to_place(api_client, "cod")
        with AppState.open(settings, transport=backend.transport()) as cli_state:
            assert cli_state.submission.place_order().status == OrderStatus.PLACED

        response = api_client.post("/api/checkout/place-order")

        assert response.status_code == 409
        assert response.json()["message"] == "This order has already been placed."
        assert len(backend.calls_to("POST", "/orders")) == 1

    def test_cart_edits_from_cli_survive_server_edits(self, api_client, settings, backend):
        api_client.post("/api/cart/items", json={"product_id": "p1", "quantity": 1})
        with AppState.open(settings, transport=backend.transport()) as cli_state:
            cli_state.cart.upsert(LineItem.from_product(backend.products["p2"], 1))

        api_client.put("/api/cart/items/p1", json={"quantity": 3})

        items = api_client.get("/api/cart").json()["items"]
        assert [(i["product_id"], i["quantity"]) for i in items] == [("p1", 3), ("p2", 1)]

    def test_order_creation_failure(self, api_client, backend):
        ready_to_place(api_client, "cod")
        backend.fail("POST", "/orders", 500, "Database down")
        response = api_client.post("/api/checkout/place-order")
        assert response.status_code == 502
        data = response.json()
        assert data["status"] == "failed"
        assert data["error_type"] == "NetworkError"

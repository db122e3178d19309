"""Tests for the store API client."""

import httpx
import pytest

from storefront.client import StoreClient
from storefront.errors import (
    NetworkError,
    OrderNotFoundError,
    ProductNotFoundError,
    ValidationError,
)


@pytest.fixture
def client(backend):
    with StoreClient("http://store.test/api", token="secret", transport=backend.transport()) as client:
        yield client


class TestProducts:
    def test_get_product(self, client):
        product = client.get_product("p1")
        assert product["name"] == "Desk Lamp"
        assert product["countInStock"] == 10

    def test_get_missing_product(self, client):
        with pytest.raises(ProductNotFoundError) as exc_info:
            client.get_product("missing")
        assert exc_info.value.status_code == 404

    def test_list_products(self, client, backend):
        data = client.list_products(search="lamp", page=2)
        assert len(data["products"]) == 2
        method, path, _ = backend.calls[-1]
        assert (method, path) == ("GET", "/products")


class TestErrors:
    def test_server_message_is_surfaced(self, client, backend):
        backend.fail("POST", "/orders", 400, "No order items")
        with pytest.raises(NetworkError, match="No order items") as exc_info:
            client.create_order({})
        assert exc_info.value.status_code == 400
        assert exc_info.value.auth_expired is False

    def test_auth_expired(self, client, backend):
        backend.fail("GET", "/orders/myorders", 401, "Not authorized, token failed")
        with pytest.raises(NetworkError) as exc_info:
            client.list_my_orders()
        assert exc_info.value.auth_expired is True

    def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("Connection refused", request=request)

        with StoreClient("http://store.test/api", transport=httpx.MockTransport(refuse)) as client:
            with pytest.raises(NetworkError, match="Connection refused"):
                client.get_product("p1")

    def test_error_without_json_body(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="Bad gateway"))
        with StoreClient("http://store.test/api", transport=transport) as client:
            with pytest.raises(NetworkError, match="502"):
                client.get_product("p1")


class TestRequests:
    def test_bearer_token_sent(self):
        seen = {}

        def handler(request):
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"wishlist": []})

        with StoreClient("http://store.test/api", token="abc", transport=httpx.MockTransport(handler)) as client:
            client.get_wishlist()
        assert seen["auth"] == "Bearer abc"

    def test_orders(self, client, backend):
        created = client.create_order({"orderItems": [{"product": "p1", "qty": 1}]})
        assert created["_id"] == "order-1"
        assert client.get_order("order-1")["isPaid"] is False

        backend.mark_paid("order-1")
        assert [o["_id"] for o in client.list_my_orders(is_paid=True)] == ["order-1"]
        assert client.list_my_orders(is_paid=False) == []

    def test_missing_order(self, client):
        with pytest.raises(OrderNotFoundError):
            client.get_order("missing")

    def test_payment_session(self, client):
        order_id = client.create_order({"orderItems": []})["_id"]
        session = client.create_payment_session(order_id)
        assert session["checkoutUrl"] == f"https://pay.test/{order_id}"
        assert session["publishableKey"] == "pk_test"

    def test_wishlist(self, client):
        assert [p["_id"] for p in client.add_to_wishlist("p1")] == ["p1"]
        assert [p["_id"] for p in client.add_to_wishlist("p2")] == ["p1", "p2"]
        assert [p["_id"] for p in client.remove_from_wishlist("p1")] == ["p2"]
        assert [p["_id"] for p in client.get_wishlist()] == ["p2"]


class TestReviews:
    def test_create_and_list(self, client):
        client.create_review("p1", 5, "Bright and sturdy")
        reviews = client.list_reviews("p1")
        assert [r["rating"] for r in reviews] == [5]
        assert client.list_reviews("p2") == []

    @pytest.mark.parametrize("rating,comment", [(0, "ok"), (6, "ok"), (3, "  ")])
    def test_invalid_review_never_sent(self, client, backend, rating, comment):
        with pytest.raises(ValidationError):
            client.create_review("p1", rating, comment)
        assert backend.calls == []

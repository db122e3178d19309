"""Pytest fixtures for storefront tests."""

import json
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest

from storefront.config import Settings
from storefront.models import LineItem, ShippingAddress
from storefront.state import AppState

STORE_URL = "http://store.test/api"


class FakeStoreBackend:
    """In-memory stand-in for the remote store API, served through httpx.MockTransport.

    Every request is recorded in ``calls`` as ``(method, path, json_body)`` with
    the ``/api`` prefix stripped. ``fail(method, path, status, message)`` makes
    a route return an error instead.
    """

    def __init__(self):
        self.products: dict[str, dict[str, Any]] = {}
        self.orders: dict[str, dict[str, Any]] = {}
        self.wishlist: list[str] = []
        self.reviews: list[dict[str, Any]] = []
        self.calls: list[tuple[str, str, Any]] = []
        self.failures: dict[tuple[str, str], tuple[int, str]] = {}
        self.on_create_order: Callable[[dict[str, Any]], None] | None = None
        self._order_seq = 0

    def add_product(
        self, product_id: str, name: str, price: Any, stock: int, images: list[str] | None = None
    ) -> dict[str, Any]:
        product = {
            "_id": product_id,
            "name": name,
            "price": price,
            "countInStock": stock,
            "images": images if images is not None else [f"/uploads/{product_id}.jpg"],
        }
        self.products[product_id] = product
        return product

    def fail(self, method: str, path: str, status: int, message: str = "Server error") -> None:
        self.failures[(method, path)] = (status, message)

    def calls_to(self, method: str, path: str) -> list[Any]:
        return [body for m, p, body in self.calls if m == method and p == path]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        body = json.loads(request.content) if request.content else None
        method = request.method
        self.calls.append((method, path, body))

        if (method, path) in self.failures:
            status, message = self.failures[(method, path)]
            return httpx.Response(status, json={"message": message})

        parts = path.strip("/").split("/")

        if parts[0] == "products":
            if len(parts) == 1:
                return httpx.Response(200, json={"products": list(self.products.values()), "page": 1, "pages": 1})
            product = self.products.get(parts[1])
            if product is None:
                return httpx.Response(404, json={"message": "Product not found"})
            return httpx.Response(200, json=product)

        if parts[0] == "orders":
            if method == "POST" and len(parts) == 1:
                return self._create_order(body)
            if parts[1] == "myorders":
                orders = list(self.orders.values())
                is_paid = request.url.params.get("isPaid")
                if is_paid is not None:
                    orders = [o for o in orders if o["isPaid"] == (is_paid == "true")]
                return httpx.Response(200, json=orders)
            order = self.orders.get(parts[1])
            if order is None:
                return httpx.Response(404, json={"message": "Order not found"})
            return httpx.Response(200, json=order)

        if path == "/payment/create-checkout-session":
            order_id = body["orderId"]
            if order_id not in self.orders:
                return httpx.Response(404, json={"error": "Order not found"})
            return httpx.Response(
                200,
                json={
                    "id": f"cs_test_{order_id}",
                    "publishableKey": "pk_test",
                    "checkoutUrl": f"https://pay.test/{order_id}",
                },
            )

        if parts[0] == "wishlist":
            if method == "POST":
                if body["productId"] not in self.wishlist:
                    self.wishlist.append(body["productId"])
            elif method == "DELETE":
                self.wishlist = [p for p in self.wishlist if p != parts[1]]
            return httpx.Response(
                200, json={"wishlist": [self.products.get(p, {"_id": p}) for p in self.wishlist]}
            )

        if parts[0] == "reviews":
            if method == "POST":
                review = dict(body, _id=f"review-{len(self.reviews) + 1}")
                self.reviews.append(review)
                return httpx.Response(201, json=review)
            product_id = request.url.params.get("productId")
            return httpx.Response(200, json=[r for r in self.reviews if r["productId"] == product_id])

        return httpx.Response(404, json={"message": f"No route for {method} {path}"})

    def _create_order(self, body: dict[str, Any]) -> httpx.Response:
        if self.on_create_order is not None:
            self.on_create_order(body)
        self._order_seq += 1
        order_id = f"order-{self._order_seq}"
        order = dict(body, _id=order_id, isPaid=False)
        self.orders[order_id] = order
        return httpx.Response(201, json=order)

    def mark_paid(self, order_id: str) -> None:
        self.orders[order_id]["isPaid"] = True


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def backend():
    """A fake store with two products in stock."""
    store = FakeStoreBackend()
    store.add_product("p1", "Desk Lamp", 500, 10)
    store.add_product("p2", "Notebook", "120.50", 3)
    return store


@pytest.fixture
def settings(temp_dir):
    return Settings(
        _env_file=None,
        data_dir=temp_dir / "state",
        api_base_url=STORE_URL,
    )


@pytest.fixture
def app_state(settings, backend):
    """AppState wired to the fake store."""
    state = AppState.open(settings, transport=backend.transport())
    yield state
    state.close()


@pytest.fixture
def make_item():
    def _make(
        product_id: str = "p1",
        price: str = "500",
        quantity: int = 1,
        stock: int = 10,
        name: str | None = None,
    ) -> LineItem:
        return LineItem(
            product_id=product_id,
            name=name or f"Product {product_id}",
            unit_price=Decimal(price),
            quantity=quantity,
            available_stock=stock,
        )

    return _make


@pytest.fixture
def address():
    return ShippingAddress(
        name="Asha Rao",
        email="asha@example.com",
        phone="9876543210",
        address_line="12 MG Road",
        city="Bengaluru",
        postal_code="560001",
        country="India",
    )

"""HTTP client for the remote store API."""

import logging
from typing import Any

import httpx

from .config import Settings
from .errors import NetworkError, OrderNotFoundError, ProductNotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _error_message(response: httpx.Response) -> str:
    """Pull the server's ``message``/``error`` field, falling back to the status line."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if body.get(key):
                return str(body[key])
    return f"{response.status_code} {response.reason_phrase}"


class StoreClient:
    """Thin wrapper over the store's REST endpoints.

    Every failure, transport or HTTP, surfaces as NetworkError so callers
    have a single type to catch at their boundary.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.BaseTransport | None = None
    ) -> "StoreClient":
        return cls(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "StoreClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise NetworkError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            message = _error_message(response)
            logger.warning("%s %s -> %s: %s", method, path, response.status_code, message)
            raise NetworkError(
                message,
                status_code=response.status_code,
                auth_expired=response.status_code in (401, 403),
            )

        if not response.content:
            return None
        return response.json()

    # --- Products ---

    def get_product(self, product_id: str) -> dict[str, Any]:
        """
        Fetch one product.

        Raises:
            ProductNotFoundError: If the store has no such product.
            NetworkError: On any other failure.
        """
        try:
            return self._request("GET", f"/products/{product_id}")
        except NetworkError as e:
            if e.status_code == 404:
                raise ProductNotFoundError(product_id) from e
            raise

    def list_products(
        self, search: str | None = None, page: int = 1, limit: int = 10
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if search:
            params["search"] = search
        return self._request("GET", "/products", params=params)

    # --- Orders ---

    def create_order(self, payload: dict[str, Any]) -> dict[str, Any]:
        return self._request("POST", "/orders", json=payload)

    def get_order(self, order_id: str) -> dict[str, Any]:
        try:
            return self._request("GET", f"/orders/{order_id}")
        except NetworkError as e:
            if e.status_code == 404:
                raise OrderNotFoundError(order_id) from e
            raise

    def list_my_orders(self, is_paid: bool | None = None) -> list[dict[str, Any]]:
        params = {}
        if is_paid is not None:
            params["isPaid"] = "true" if is_paid else "false"
        return self._request("GET", "/orders/myorders", params=params) or []

    def create_payment_session(self, order_id: str) -> dict[str, Any]:
        """Returns ``{"id", "publishableKey", "checkoutUrl"}`` for the hosted payment page."""
        return self._request(
            "POST", "/payment/create-checkout-session", json={"orderId": order_id}
        )

    # --- Wishlist ---

    def get_wishlist(self) -> list[dict[str, Any]]:
        data = self._request("GET", "/wishlist") or {}
        return data.get("wishlist", [])

    def add_to_wishlist(self, product_id: str) -> list[dict[str, Any]]:
        data = self._request("POST", "/wishlist", json={"productId": product_id}) or {}
        return data.get("wishlist", [])

    def remove_from_wishlist(self, product_id: str) -> list[dict[str, Any]]:
        data = self._request("DELETE", f"/wishlist/{product_id}") or {}
        return data.get("wishlist", [])

    # --- Reviews ---

    def list_reviews(self, product_id: str) -> list[dict[str, Any]]:
        return self._request("GET", "/reviews", params={"productId": product_id}) or []

    def create_review(self, product_id: str, rating: int, comment: str) -> dict[str, Any]:
        if not 1 <= rating <= 5:
            raise ValidationError("Rating must be between 1 and 5.", {"rating": "1-5"})
        if not comment.strip():
            raise ValidationError("Review comment is required.", {"comment": "required"})
        return self._request(
            "POST",
            "/reviews",
            json={"productId": product_id, "rating": rating, "comment": comment},
        )

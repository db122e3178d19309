"""Cart store: line items keyed by product, persisted after every change."""

import logging
from typing import Any, Callable

from .client import StoreClient
from .errors import CartItemNotFoundError, StockExceededError, ValidationError
from .models import LineItem, Totals
from .pricing import DEFAULT_POLICY, PricingPolicy, compute_totals
from .state_store import CART_ITEMS, StateStore

logger = logging.getLogger(__name__)


def check_quantity(item: LineItem) -> None:
    """
    Enforce 1 <= quantity <= available_stock for a line item about to be stored.

    Raises:
        ValidationError: If quantity is below 1.
        StockExceededError: If quantity is above the stock snapshot.
    """
    if item.quantity < 1:
        raise ValidationError(
            f"Quantity for {item.product_id} must be at least 1", {"quantity": "min 1"}
        )
    if item.quantity > item.available_stock:
        raise StockExceededError(item.product_id, item.quantity, item.available_stock)


def _find(items: list[LineItem], product_id: str) -> int | None:
    for i, item in enumerate(items):
        if item.product_id == product_id:
            return i
    return None


class CartStore:
    """The shopper's cart.

    Items are unique by product_id and kept in insertion order. Totals are
    recomputed from the items after every mutation and after loading; they
    are never read back from storage.
    """

    def __init__(self, store: StateStore, policy: PricingPolicy = DEFAULT_POLICY):
        self._store = store
        self._policy = policy
        self._items: list[LineItem] = []
        self._totals = Totals.zero()
        self.reload()

    def reload(self) -> None:
        """Rehydrate from durable storage."""
        self._adopt(self._store.get(CART_ITEMS, []))

    def _adopt(self, raw: list[dict[str, Any]] | None) -> None:
        self._items = [LineItem.from_dict(d) for d in raw or []]
        self._totals = compute_totals(self._items, self._policy)

    def _mutate(self, change: Callable[[list[LineItem]], list[LineItem]]) -> None:
        """
        Apply change to the items currently on disk and store the result.

        The read, the change and the write happen under the state lock, so
        another process's edits made since our last reload are kept. If
        change raises, nothing is written.
        """

        def apply(raw: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
            items = [LineItem.from_dict(d) for d in raw or []]
            return [item.to_dict() for item in change(items)]

        self._adopt(self._store.modify(CART_ITEMS, apply))

    def _index(self, product_id: str) -> int | None:
        return _find(self._items, product_id)

    @property
    def items(self) -> list[LineItem]:
        return list(self._items)

    @property
    def totals(self) -> Totals:
        return self._totals

    @property
    def item_count(self) -> int:
        """Total units across all lines."""
        return sum(item.quantity for item in self._items)

    def is_empty(self) -> bool:
        return not self._items

    def get(self, product_id: str) -> LineItem | None:
        idx = self._index(product_id)
        return None if idx is None else self._items[idx]

    def upsert(self, item: LineItem) -> None:
        """
        Insert an item, or replace the whole record if its product is already present.

        Quantities are not merged: adding the same product twice keeps the
        second record.

        Raises:
            ValidationError: If quantity is below 1.
            StockExceededError: If quantity is above the stock snapshot.
        """
        check_quantity(item)

        def replace(items: list[LineItem]) -> list[LineItem]:
            idx = _find(items, item.product_id)
            if idx is None:
                items.append(item)
            else:
                items[idx] = item
            return items

        self._mutate(replace)
        logger.info("Cart upsert %s x%d", item.product_id, item.quantity)

    def remove(self, product_id: str) -> bool:
        """
        Remove a product from the cart.

        Returns:
            True if an item was removed, False if it wasn't in the cart.
        """
        removed = False

        def drop(items: list[LineItem]) -> list[LineItem]:
            nonlocal removed
            idx = _find(items, product_id)
            if idx is not None:
                items.pop(idx)
                removed = True
            return items

        self._mutate(drop)
        if removed:
            logger.info("Cart remove %s", product_id)
        return removed

    def set_quantity(self, product_id: str, quantity: int) -> LineItem | None:
        """
        Change the quantity of an existing line. Below 1 removes it.

        A quantity below 1 for a product that isn't in the cart is a no-op,
        the same as remove().

        Returns:
            The updated item, or None if it was removed.

        Raises:
            CartItemNotFoundError: If the product isn't in the cart.
            StockExceededError: If quantity is above the stock snapshot; cart unchanged.
        """
        if quantity < 1:
            self.remove(product_id)
            return None

        updated: LineItem | None = None

        def resize(items: list[LineItem]) -> list[LineItem]:
            nonlocal updated
            idx = _find(items, product_id)
            if idx is None:
                raise CartItemNotFoundError(product_id)
            current = items[idx]
            if quantity > current.available_stock:
                raise StockExceededError(product_id, quantity, current.available_stock)
            updated = current.with_quantity(quantity)
            items[idx] = updated
            return items

        self._mutate(resize)
        logger.info("Cart quantity %s -> %d", product_id, quantity)
        return updated

    def clear(self) -> None:
        """Empty the cart and zero the totals."""
        self._mutate(lambda items: [])
        logger.info("Cart cleared")

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self._items],
            "item_count": self.item_count,
            "totals": self._totals.to_dict(),
        }


def add_product_to_cart(
    cart: CartStore, client: StoreClient, product_id: str, quantity: int
) -> LineItem:
    """
    Snapshot a product's current price, name, image and stock from the store
    API, then upsert it into the cart with the requested quantity.

    Raises:
        ValidationError: If quantity is invalid for the fetched stock.
        ProductNotFoundError: If the store has no such product.
        NetworkError: If the store API can't be reached.
    """
    if quantity < 1:
        raise ValidationError("Quantity must be at least 1", {"quantity": "min 1"})

    product = client.get_product(product_id)
    item = LineItem.from_product(product, quantity)
    cart.upsert(item)
    return item

"""Application state passed explicitly to the CLI and the local API."""

from dataclasses import dataclass

import httpx

from .cart import CartStore
from .checkout import Checkout
from .client import StoreClient
from .config import Settings
from .orders import OrderSubmission, PaymentHandoff, checkout_url_handoff
from .state_store import StateStore


@dataclass
class AppState:
    settings: Settings
    store: StateStore
    cart: CartStore
    checkout: Checkout
    client: StoreClient
    submission: OrderSubmission

    @classmethod
    def open(
        cls,
        settings: Settings | None = None,
        transport: httpx.BaseTransport | None = None,
        handoff: PaymentHandoff = checkout_url_handoff,
    ) -> "AppState":
        """Load persisted state and connect to the store API described by ``settings``."""
        settings = settings or Settings()
        policy = settings.pricing_policy()
        store = StateStore(settings.data_dir)
        cart = CartStore(store, policy)
        checkout = Checkout(store, policy)
        client = StoreClient.from_settings(settings, transport=transport)
        submission = OrderSubmission(store, cart, checkout, client, handoff=handoff)
        return cls(
            settings=settings,
            store=store,
            cart=cart,
            checkout=checkout,
            client=client,
            submission=submission,
        )

    def reload(self) -> None:
        """Pick up changes another process wrote to the state file."""
        self.cart.reload()
        self.checkout.reload()

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "AppState":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

"""Order submission: create the order, then settle it by payment method.

``OrderSubmission.place_order`` never raises for local or remote failures.
Every outcome comes back as an ``OrderResult`` and is also delivered to
subscribers, which is where the CLI and the local API turn results into
messages.
"""

import logging
import webbrowser
from typing import Any, Callable

from .cart import CartStore
from .checkout import SOURCE_CART, Checkout, CheckoutStep
from .client import StoreClient
from .errors import (
    NetworkError,
    PaymentRedirectError,
    PrerequisiteMissingError,
    ValidationError,
)
from .models import OrderResult, OrderStatus, PaymentMethod
from .state_store import BUY_NOW_ITEM, PENDING_PAYMENT, PLACED_ORDER, StateStore

logger = logging.getLogger(__name__)

# Receives the payment-session response, returns the URL the shopper was sent to.
PaymentHandoff = Callable[[dict[str, Any]], str]
ResultListener = Callable[[OrderResult], None]


def _claim_session(marker: dict[str, Any] | None, session_key: str) -> dict[str, Any]:
    if marker and marker.get("session_key") == session_key:
        raise ValidationError("This order has already been placed.")
    return {"session_key": session_key, "order_id": None}


def checkout_url_handoff(payment_session: dict[str, Any]) -> str:
    """Hand the hosted checkout URL back to the caller, who performs the redirect."""
    url = payment_session.get("checkoutUrl")
    if not url:
        raise ValueError("Payment session has no checkout URL")
    return url


def browser_handoff(payment_session: dict[str, Any]) -> str:
    """Open the hosted checkout page in the local web browser."""
    url = checkout_url_handoff(payment_session)
    if not webbrowser.open(url):
        raise RuntimeError("No web browser available to open the payment page")
    return url


class OrderSubmission:
    """Turns a complete checkout session into an order on the store API."""

    def __init__(
        self,
        store: StateStore,
        cart: CartStore,
        checkout: Checkout,
        client: StoreClient,
        handoff: PaymentHandoff = checkout_url_handoff,
    ):
        self._store = store
        self._cart = cart
        self._checkout = checkout
        self._client = client
        self._handoff = handoff
        self._listeners: list[ResultListener] = []
        self.last_result: OrderResult | None = None

    def subscribe(self, listener: ResultListener) -> Callable[[], None]:
        """Register a listener for every result. Returns an unsubscribe function."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    def _finish(self, result: OrderResult) -> OrderResult:
        if result.ok:
            self.last_result = result
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Order result listener failed")
        return result

    def place_order(self) -> OrderResult:
        """
        Submit the staged checkout as an order.

        Cash on delivery clears the cart once the order exists. Online card
        payment asks the store for a payment session and hands off to the
        hosted payment page; the cart is kept until confirm_payment() sees
        the order paid.
        """
        checkout = self._checkout
        checkout.reload()

        try:
            checkout.require(CheckoutStep.PLACE_ORDER)
        except PrerequisiteMissingError as e:
            error = ValidationError(str(e), {"redirect_to": e.redirect_to})
            return self._finish(OrderResult(OrderStatus.REJECTED, message=str(e), error=error))

        # Claimed on disk under the lock, so a second process sees it too
        session_key = checkout.session_key
        try:
            self._store.modify(PLACED_ORDER, lambda marker: _claim_session(marker, session_key))
        except ValidationError as error:
            return self._finish(OrderResult(OrderStatus.REJECTED, message=str(error), error=error))

        session = checkout.session
        revision = checkout.revision
        source = session.source
        method = session.payment_method
        payload = checkout.build_order_payload()

        try:
            created = self._client.create_order(payload)
        except NetworkError as e:
            logger.warning("Order creation failed: %s", e)
            self._release(session_key)
            return self._finish(
                OrderResult(OrderStatus.FAILED, message=f"Order creation error: {e}", error=e)
            )

        order_id = str((created or {}).get("_id") or (created or {}).get("id") or "")
        if not order_id:
            error = NetworkError("Order response did not include an order id")
            self._release(session_key)
            return self._finish(OrderResult(OrderStatus.FAILED, message=str(error), error=error))

        checkout.reload()
        if checkout.revision != revision:
            logger.warning("Checkout changed while order %s was being created; ignoring response", order_id)
            return self._finish(
                OrderResult(
                    OrderStatus.STALE,
                    order_id=order_id,
                    message="Checkout changed while the order was being placed.",
                )
            )

        self._store.set(PLACED_ORDER, {"session_key": session_key, "order_id": order_id})
        logger.info("Order %s created (%s)", order_id, method.value)

        if method == PaymentMethod.CASH_ON_DELIVERY:
            self._settle(source)
            return self._finish(
                OrderResult(
                    OrderStatus.PLACED,
                    order_id=order_id,
                    message=f"Order #{order_id} placed successfully!",
                )
            )

        return self._start_payment(order_id, source)

    def _release(self, session_key: str) -> None:
        """Drop our claim after a failed attempt so the same session can be retried."""

        def release(marker: dict[str, Any] | None) -> dict[str, Any] | None:
            if marker and marker.get("session_key") == session_key and not marker.get("order_id"):
                return None
            return marker

        self._store.modify(PLACED_ORDER, release)

    def _settle(self, source: str | None) -> None:
        # The checkout session stays readable for the confirmation view
        if source == SOURCE_CART:
            self._cart.clear()
        else:
            self._store.set(BUY_NOW_ITEM, None)

    def _start_payment(self, order_id: str, source: str | None) -> OrderResult:
        try:
            payment_session = self._client.create_payment_session(order_id)
        except NetworkError as e:
            error = PaymentRedirectError(order_id, str(e))
            logger.warning("Payment session for order %s failed: %s", order_id, e)
            return self._finish(
                OrderResult(
                    OrderStatus.PAYMENT_REDIRECT_FAILED,
                    order_id=order_id,
                    message=str(error),
                    error=error,
                )
            )

        try:
            url = self._handoff(payment_session)
        except Exception as e:
            error = PaymentRedirectError(order_id, str(e))
            logger.warning("Payment handoff for order %s failed: %s", order_id, e)
            return self._finish(
                OrderResult(
                    OrderStatus.PAYMENT_REDIRECT_FAILED,
                    order_id=order_id,
                    message=str(error),
                    error=error,
                )
            )

        self._store.set(PENDING_PAYMENT, {"order_id": order_id, "source": source})
        return self._finish(
            OrderResult(
                OrderStatus.AWAITING_PAYMENT,
                order_id=order_id,
                redirect_url=url,
                message=f"Order #{order_id} created. Complete payment to confirm it.",
            )
        )

    def confirm_payment(self, order_id: str) -> OrderResult:
        """
        Check with the store whether an online payment went through.

        Once the order is paid the cart is cleared if the order came from it.
        """
        try:
            order = self._client.get_order(order_id)
        except NetworkError as e:
            return self._finish(
                OrderResult(OrderStatus.FAILED, order_id=order_id, message=str(e), error=e)
            )

        if not order.get("isPaid"):
            return self._finish(
                OrderResult(
                    OrderStatus.AWAITING_PAYMENT,
                    order_id=order_id,
                    message=f"Order #{order_id} is not paid yet.",
                )
            )

        pending = self._store.get(PENDING_PAYMENT) or {}
        if pending.get("order_id") == order_id:
            self._settle(pending.get("source"))
            self._store.set(PENDING_PAYMENT, None)

        logger.info("Order %s confirmed paid", order_id)
        return self._finish(
            OrderResult(
                OrderStatus.PLACED,
                order_id=order_id,
                message=f"Payment for order #{order_id} received.",
            )
        )

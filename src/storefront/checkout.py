"""Checkout step controller: Shipping -> Payment -> Place Order.

There is no stored "current step". The step is derived from which answers
the session holds, and every step re-checks its own prerequisites when it
is entered, so a reload or a deep link always lands somewhere valid.
"""

import hashlib
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .cart import CartStore, check_quantity
from .errors import PrerequisiteMissingError, ValidationError
from .models import CheckoutSession, LineItem, PaymentMethod, ShippingAddress, Totals, _utc_now
from .pricing import DEFAULT_POLICY, PricingPolicy, compute_totals
from .state_store import (
    BUY_NOW_ITEM,
    CHECKOUT,
    PAYMENT_METHOD,
    PLACED_ORDER,
    SHIPPING_ADDRESS,
    StateStore,
)

logger = logging.getLogger(__name__)

# Redirect target when there is nothing to check out
CATALOG = "catalog"

SOURCE_CART = "cart"
SOURCE_BUY_NOW = "buy_now"

PHONE_PATTERN = re.compile(r"^\d{10}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CheckoutStep(str, Enum):
    SHIPPING = "shipping"
    PAYMENT = "payment"
    PLACE_ORDER = "place_order"


def derive_step(session: CheckoutSession) -> CheckoutStep:
    """The furthest step the session's answers allow."""
    if session.shipping_address is None:
        return CheckoutStep.SHIPPING
    if session.payment_method is None:
        return CheckoutStep.PAYMENT
    return CheckoutStep.PLACE_ORDER


@dataclass(frozen=True)
class StepEntry:
    """Result of trying to enter a checkout step."""

    step: CheckoutStep
    allowed: bool
    redirect_to: str | None = None
    notice: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step.value,
            "allowed": self.allowed,
            "redirect_to": self.redirect_to,
            "notice": self.notice,
        }


def validate_shipping_address(address: ShippingAddress) -> None:
    """
    Check a shipping address the way the address form does.

    Raises:
        ValidationError: With one message per invalid field.
    """
    errors: dict[str, str] = {}
    if not address.name.strip():
        errors["name"] = "Name is required."
    if not PHONE_PATTERN.match(address.phone.strip()):
        errors["phone"] = "Valid 10-digit mobile number is required."
    if address.email and not EMAIL_PATTERN.match(address.email.strip()):
        errors["email"] = "Email address is not valid."
    if not address.address_line.strip():
        errors["address_line"] = "Address line is required."
    if not address.city.strip():
        errors["city"] = "City is required."
    if not address.postal_code.strip():
        errors["postal_code"] = "Postal Code is required."
    if not address.country.strip():
        errors["country"] = "Country is required."

    if errors:
        raise ValidationError(
            "Please fix the errors shown below before saving the address.", errors
        )



def _stored_payment_method(value: Any) -> PaymentMethod | None:
    if not value:
        return None
    try:
        return PaymentMethod.parse(value)
    except ValueError:
        logger.warning("Ignoring unknown stored payment method %r", value)
        return None

class Checkout:
    """Holds the checkout session and gates movement between steps."""

    def __init__(self, store: StateStore, policy: PricingPolicy = DEFAULT_POLICY):
        self._store = store
        self._policy = policy
        self._session = CheckoutSession(source=None, order_items=[])
        self._fingerprint: dict[str, Any] | None = None
        self._session_key = ""
        self._revision = 0
        self.reload()

    # --- Persistence ---

    def reload(self) -> None:
        """Read the session back from durable storage."""
        data = self._store.load()
        fingerprint = {key: data.get(key) for key in (CHECKOUT, SHIPPING_ADDRESS, PAYMENT_METHOD)}
        if fingerprint == self._fingerprint:
            return

        staged = data.get(CHECKOUT) or {}
        address = data.get(SHIPPING_ADDRESS)
        session = CheckoutSession(
            source=staged.get("source"),
            order_items=[LineItem.from_dict(d) for d in staged.get("order_items", [])],
            shipping_address=ShippingAddress.from_dict(address) if address else None,
            payment_method=_stored_payment_method(data.get(PAYMENT_METHOD)),
        )
        if staged.get("started_at"):
            session.started_at = staged["started_at"]

        self._session = session
        self._fingerprint = fingerprint
        self._session_key = hashlib.sha256(
            json.dumps(fingerprint, sort_keys=True).encode("utf-8")
        ).hexdigest()
        self._revision += 1

    def _persist(self, **values: Any) -> None:
        self._store.update(**values)
        # Re-read so the in-memory session and fingerprint match disk exactly
        self.reload()

    @property
    def revision(self) -> int:
        """Bumped whenever the session changes; used to detect stale responses."""
        return self._revision

    @property
    def session_key(self) -> str:
        """Digest of the persisted session; equal keys mean the same unchanged session."""
        return self._session_key

    @property
    def session(self) -> CheckoutSession:
        return self._session

    @property
    def totals(self) -> Totals:
        return compute_totals(self._session.order_items, self._policy)

    # --- Staging ---

    def start_from_cart(self, cart: CartStore) -> CheckoutSession:
        """
        Stage a snapshot of the cart for checkout.

        Raises:
            PrerequisiteMissingError: If the cart is empty (redirect to catalog).
        """
        if cart.is_empty():
            raise PrerequisiteMissingError(CATALOG, "Your cart is empty.")

        self._stage(SOURCE_CART, cart.items, buy_now=None)
        logger.info("Checkout started from cart (%d line(s))", len(cart.items))
        return self._session

    def start_buy_now(self, item: LineItem) -> CheckoutSession:
        """
        Stage a single product for immediate purchase, bypassing the cart.

        Raises:
            ValidationError: If the item's quantity is invalid.
        """
        check_quantity(item)
        self._stage(SOURCE_BUY_NOW, [item], buy_now=item.to_dict())
        logger.info("Buy-now checkout started for %s x%d", item.product_id, item.quantity)
        return self._session

    def _stage(self, source: str, items: list[LineItem], buy_now: dict[str, Any] | None) -> None:
        staged = {
            "source": source,
            "order_items": [item.to_dict() for item in items],
            "started_at": _utc_now(),
        }
        self._persist(**{CHECKOUT: staged, BUY_NOW_ITEM: buy_now})

    def buy_now_item(self) -> LineItem | None:
        raw = self._store.get(BUY_NOW_ITEM)
        return LineItem.from_dict(raw) if raw else None

    # --- Guards ---

    def enter(self, step: CheckoutStep) -> StepEntry:
        """
        Check whether a step can be shown right now.

        Prerequisites are checked in order: staged items, then shipping
        address, then payment method, up to what ``step`` needs. The first
        missing one decides where to redirect.
        """
        session = self._session
        if not session.has_items:
            return StepEntry(
                step,
                allowed=False,
                redirect_to=CATALOG,
                notice="Order details missing. Please restart the checkout process.",
            )
        if step in (CheckoutStep.PAYMENT, CheckoutStep.PLACE_ORDER):
            if session.shipping_address is None:
                return StepEntry(
                    step,
                    allowed=False,
                    redirect_to=CheckoutStep.SHIPPING.value,
                    notice="Please save a valid shipping address before proceeding to payment.",
                )
        if step == CheckoutStep.PLACE_ORDER and session.payment_method is None:
            return StepEntry(
                step,
                allowed=False,
                redirect_to=CheckoutStep.PAYMENT.value,
                notice="Please choose a payment method.",
            )
        return StepEntry(step, allowed=True)

    def require(self, step: CheckoutStep) -> None:
        """
        Like enter(), but raises when the step can't be entered.

        Raises:
            PrerequisiteMissingError: Carrying the redirect target.
        """
        entry = self.enter(step)
        if not entry.allowed:
            raise PrerequisiteMissingError(entry.redirect_to or CATALOG, entry.notice)

    def current_step(self) -> CheckoutStep | None:
        """The step to resume at, or None when nothing is staged."""
        if not self._session.has_items:
            return None
        return derive_step(self._session)

    # --- Step answers ---

    def save_shipping_address(self, address: ShippingAddress) -> CheckoutStep:
        """
        Validate and store the shipping address.

        Returns:
            The next step (PAYMENT).

        Raises:
            PrerequisiteMissingError: If nothing is staged for checkout.
            ValidationError: If the address is invalid.
        """
        self.require(CheckoutStep.SHIPPING)
        validate_shipping_address(address)
        self._persist(**{SHIPPING_ADDRESS: address.to_dict()})
        logger.info("Shipping address saved")
        return CheckoutStep.PAYMENT

    def save_payment_method(self, method: "PaymentMethod | str") -> CheckoutStep:
        """
        Store the payment method.

        Returns:
            The next step (PLACE_ORDER).

        Raises:
            PrerequisiteMissingError: If items or shipping address are missing.
            ValidationError: If the method isn't one of the supported ones.
        """
        self.require(CheckoutStep.PAYMENT)
        try:
            parsed = PaymentMethod.parse(method)
        except ValueError as e:
            raise ValidationError(str(e), {"payment_method": "unsupported"}) from e

        self._persist(**{PAYMENT_METHOD: parsed.value})
        logger.info("Payment method saved: %s", parsed.value)
        return CheckoutStep.PLACE_ORDER

    def close(self) -> None:
        """
        Forget the staged items, buy-now item, payment method and placed-order marker.

        The shipping address is kept so the next checkout can reuse it.
        """
        self._store.delete(CHECKOUT, BUY_NOW_ITEM, PAYMENT_METHOD, PLACED_ORDER)
        self.reload()
        logger.info("Checkout closed")

    # --- Output ---

    def build_order_payload(self) -> dict[str, Any]:
        """Order-creation request body for the store API."""
        session = self._session
        payload: dict[str, Any] = {
            "orderItems": [item.to_wire() for item in session.order_items],
            "shippingAddress": session.shipping_address.to_wire() if session.shipping_address else None,
            "paymentMethod": session.payment_method.value if session.payment_method else None,
        }
        payload.update(self.totals.to_wire())
        return payload

    def to_dict(self) -> dict[str, Any]:
        session = self._session
        step = self.current_step()
        return {
            "source": session.source,
            "order_items": [item.to_dict() for item in session.order_items],
            "shipping_address": session.shipping_address.to_dict() if session.shipping_address else None,
            "payment_method": session.payment_method.value if session.payment_method else None,
            "totals": self.totals.to_dict(),
            "step": step.value if step else None,
            "started_at": session.started_at if session.has_items else None,
        }

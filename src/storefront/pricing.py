"""Price calculation for carts and checkout snapshots.

All arithmetic is exact ``Decimal``. Rounding happens only when a value
is shown to a person or written into a request payload.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from .models import CENT, LineItem, Totals


@dataclass(frozen=True)
class PricingPolicy:
    """Shipping and tax rules applied to a set of line items."""

    flat_shipping_fee: Decimal = Decimal("50")
    free_shipping_threshold: Decimal = Decimal("10000")
    tax_rate: Decimal = Decimal("0.18")

    def shipping_for(self, subtotal: Decimal, has_items: bool) -> Decimal:
        if not has_items or subtotal > self.free_shipping_threshold:
            return Decimal("0")
        return self.flat_shipping_fee


DEFAULT_POLICY = PricingPolicy()


def compute_totals(
    items: Iterable[LineItem], policy: PricingPolicy = DEFAULT_POLICY
) -> Totals:
    """
    Derive subtotal, shipping, tax and grand total from line items.

    Args:
        items: Line items to price.
        policy: Shipping/tax rules.

    Returns:
        Unrounded Totals where grand_total == subtotal + shipping_fee + tax.
    """
    items = list(items)
    if not items:
        return Totals.zero()

    subtotal = sum((item.line_total for item in items), Decimal("0"))
    shipping_fee = policy.shipping_for(subtotal, has_items=True)
    tax = subtotal * policy.tax_rate
    return Totals(
        subtotal=subtotal,
        shipping_fee=shipping_fee,
        tax=tax,
        grand_total=subtotal + shipping_fee + tax,
    )


def quantize_money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal, symbol: str = "₹") -> str:
    """Format an amount for display, e.g. ``₹1,230.00``."""
    return f"{symbol}{quantize_money(value):,.2f}"

"""Data models for storefront."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Any


CENT = Decimal("0.01")


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def to_decimal(value: Any) -> Decimal:
    """Coerce a JSON number/string to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def _wire_money(value: Decimal) -> float:
    # Request payloads carry plain JSON numbers rounded to cents
    return float(value.quantize(CENT, rounding=ROUND_HALF_UP))


@dataclass
class LineItem:
    """One product quantity in the cart or in a checkout snapshot."""

    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    available_stock: int
    image: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    def with_quantity(self, quantity: int) -> "LineItem":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "product_id": self.product_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "available_stock": self.available_stock,
        }
        if self.image is not None:
            result["image"] = self.image
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LineItem":
        return cls(
            product_id=data["product_id"],
            name=data["name"],
            unit_price=to_decimal(data["unit_price"]),
            quantity=int(data["quantity"]),
            available_stock=int(data.get("available_stock", 0)),
            image=data.get("image"),
        )

    def to_wire(self) -> dict[str, Any]:
        """Order-item shape expected by the store API."""
        return {
            "product": self.product_id,
            "name": self.name,
            "price": _wire_money(self.unit_price),
            "qty": self.quantity,
            "image": self.image,
            "countInStock": self.available_stock,
        }

    @classmethod
    def from_product(cls, product: dict[str, Any], quantity: int) -> "LineItem":
        """Snapshot a product document returned by the store API."""
        images = product.get("images") or []
        return cls(
            product_id=str(product.get("_id") or product["id"]),
            name=product["name"],
            unit_price=to_decimal(product["price"]),
            quantity=quantity,
            available_stock=int(product.get("countInStock", 0)),
            image=images[0] if images else None,
        )


@dataclass
class ShippingAddress:
    """Where an order is delivered."""

    name: str
    phone: str
    address_line: str
    city: str
    postal_code: str
    country: str = "India"
    email: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address_line": self.address_line,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShippingAddress":
        return cls(
            name=data.get("name", ""),
            email=data.get("email", ""),
            phone=data.get("phone", ""),
            address_line=data.get("address_line", ""),
            city=data.get("city", ""),
            postal_code=data.get("postal_code", ""),
            country=data.get("country", "India"),
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "mobileNumber": self.phone,
            "address": self.address_line,
            "city": self.city,
            "postalCode": self.postal_code,
            "country": self.country,
        }


class PaymentMethod(str, Enum):
    """Closed set of payment methods. Values are the store API's wire strings."""

    ONLINE_CARD = "CreditCard"
    CASH_ON_DELIVERY = "Cash on Delivery (COD)"

    @classmethod
    def parse(cls, value: "str | PaymentMethod") -> "PaymentMethod":
        """Accept an enum, its name, its wire value, or a short alias."""
        if isinstance(value, cls):
            return value
        key = str(value).strip()
        aliases = {
            "card": cls.ONLINE_CARD,
            "online": cls.ONLINE_CARD,
            "cod": cls.CASH_ON_DELIVERY,
            "cash": cls.CASH_ON_DELIVERY,
        }
        if key.lower() in aliases:
            return aliases[key.lower()]
        for member in cls:
            if key in (member.value, member.name):
                return member
        raise ValueError(f"Unknown payment method: {value}")


@dataclass(frozen=True)
class Totals:
    """Monetary totals derived from a list of line items."""

    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    grand_total: Decimal

    @classmethod
    def zero(cls) -> "Totals":
        z = Decimal("0")
        return cls(subtotal=z, shipping_fee=z, tax=z, grand_total=z)

    def rounded(self) -> "Totals":
        """Cent-rounded copy for display. Never feed this back into arithmetic."""
        return Totals(
            subtotal=self.subtotal.quantize(CENT, rounding=ROUND_HALF_UP),
            shipping_fee=self.shipping_fee.quantize(CENT, rounding=ROUND_HALF_UP),
            tax=self.tax.quantize(CENT, rounding=ROUND_HALF_UP),
            grand_total=self.grand_total.quantize(CENT, rounding=ROUND_HALF_UP),
        )

    def to_dict(self) -> dict[str, str]:
        return {
            "subtotal": str(self.subtotal),
            "shipping_fee": str(self.shipping_fee),
            "tax": str(self.tax),
            "grand_total": str(self.grand_total),
        }

    def to_wire(self) -> dict[str, float]:
        return {
            "itemsPrice": _wire_money(self.subtotal),
            "shippingPrice": _wire_money(self.shipping_fee),
            "taxPrice": _wire_money(self.tax),
            "totalPrice": _wire_money(self.grand_total),
        }


@dataclass
class CheckoutSession:
    """Items staged for checkout plus the shopper's step answers."""

    source: str | None  # "cart" | "buy_now", None when nothing is staged
    order_items: list[LineItem]
    shipping_address: ShippingAddress | None = None
    payment_method: PaymentMethod | None = None
    started_at: str = field(default_factory=_utc_now)

    @property
    def has_items(self) -> bool:
        return len(self.order_items) > 0


class OrderStatus(str, Enum):
    PLACED = "placed"
    AWAITING_PAYMENT = "awaiting_payment"
    REJECTED = "rejected"
    FAILED = "failed"
    PAYMENT_REDIRECT_FAILED = "payment_redirect_failed"
    STALE = "stale"


@dataclass
class OrderResult:
    """Outcome of an order submission."""

    status: OrderStatus
    order_id: str | None = None
    redirect_url: str | None = None
    message: str = ""
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.status in (OrderStatus.PLACED, OrderStatus.AWAITING_PAYMENT)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "ok": self.ok,
            "order_id": self.order_id,
            "redirect_url": self.redirect_url,
            "message": self.message,
            "error_type": type(self.error).__name__ if self.error else None,
        }

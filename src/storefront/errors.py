"""Custom exceptions for storefront."""


class StorefrontError(Exception):
    """Base exception for all storefront errors."""

    pass


class ValidationError(StorefrontError):
    """Raised when local input is invalid. Never reaches the network."""

    def __init__(self, message: str, fields: dict[str, str] | None = None):
        self.fields = fields or {}
        super().__init__(message)


class StockExceededError(ValidationError):
    """Raised when a quantity is larger than the stock snapshot."""

    def __init__(self, product_id: str, requested: int, available: int):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Only {available} unit(s) of {product_id} in stock, requested {requested}",
            {"quantity": f"max {available}"},
        )


class CartItemNotFoundError(StorefrontError):
    """Raised when a cart line item doesn't exist."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not in cart: {product_id}")


class PrerequisiteMissingError(StorefrontError):
    """Raised when a checkout step is entered without the prior state it needs."""

    def __init__(self, redirect_to: str, message: str):
        self.redirect_to = redirect_to
        super().__init__(message)


class NetworkError(StorefrontError):
    """Raised when a request to the store API fails."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        auth_expired: bool = False,
    ):
        self.status_code = status_code
        self.auth_expired = auth_expired
        super().__init__(message)


class ProductNotFoundError(NetworkError):
    """Raised when the store API has no product with the given ID."""

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product not found: {product_id}", status_code=404)


class OrderNotFoundError(NetworkError):
    """Raised when the store API has no order with the given ID."""

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}", status_code=404)


class PaymentRedirectError(StorefrontError):
    """Raised when the handoff to the external payment page can't start.

    The order already exists server-side in an unpaid state.
    """

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Payment for order {order_id} failed to start: {reason}")


class InvalidSchemaVersionError(StorefrontError):
    """Raised when the state file has an unsupported schema version."""

    def __init__(self, found: int, supported: int):
        self.found = found
        self.supported = supported
        super().__init__(
            f"Unsupported schema version {found}. This tool supports version {supported}."
        )

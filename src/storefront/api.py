"""FastAPI REST API for driving the cart and checkout from a local UI."""

from typing import Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .cart import add_product_to_cart
from .checkout import CheckoutStep
from .config import Settings
from .errors import (
    CartItemNotFoundError,
    InvalidSchemaVersionError,
    NetworkError,
    OrderNotFoundError,
    PaymentRedirectError,
    PrerequisiteMissingError,
    ProductNotFoundError,
    StockExceededError,
    StorefrontError,
    ValidationError,
)
from .models import LineItem, OrderResult, OrderStatus, ShippingAddress
from .pricing import format_money
from .state import AppState


# --- Pydantic Schemas ---


class LineItemSchema(BaseModel):
    product_id: str
    name: str
    unit_price: str
    quantity: int
    available_stock: int
    image: Optional[str] = None


class TotalsSchema(BaseModel):
    subtotal: str
    shipping_fee: str
    tax: str
    grand_total: str


class CartResponse(BaseModel):
    items: list[LineItemSchema]
    item_count: int
    totals: TotalsSchema
    display_total: str


class CartItemRequest(BaseModel):
    """Request body for adding a product to the cart."""

    product_id: str = Field(..., description="Store product ID; price and stock are fetched from the store")
    quantity: int = 1


class QuantityRequest(BaseModel):
    quantity: int = Field(..., description="New quantity; below 1 removes the item")


class ShippingAddressSchema(BaseModel):
    name: str
    email: str = ""
    phone: str
    address_line: str
    city: str
    postal_code: str
    country: str = "India"


class PaymentMethodRequest(BaseModel):
    payment_method: str = Field(
        ..., description="'CreditCard', 'Cash on Delivery (COD)', or the aliases 'card' / 'cod'"
    )


class OrderResultSchema(BaseModel):
    status: str
    ok: bool
    order_id: Optional[str] = None
    redirect_url: Optional[str] = None
    message: str = ""
    error_type: Optional[str] = None


class CheckoutResponse(BaseModel):
    source: Optional[str]
    order_items: list[LineItemSchema]
    shipping_address: Optional[ShippingAddressSchema]
    payment_method: Optional[str]
    totals: TotalsSchema
    step: Optional[str]
    started_at: Optional[str]
    last_order: Optional[OrderResultSchema] = None


class StepEntrySchema(BaseModel):
    step: str
    allowed: bool
    redirect_to: Optional[str] = None
    notice: str = ""


# --- Helper Functions ---


def get_state(request: Request) -> AppState:
    """The AppState attached to the app, opened from Settings on first use.

    Re-reads the state file on every request so edits made through the CLI
    are visible.
    """
    state = getattr(request.app.state, "storefront", None)
    if state is None:
        state = AppState.open()
        request.app.state.storefront = state
    state.reload()
    return state


def cart_response(state: AppState) -> CartResponse:
    data = state.cart.to_dict()
    return CartResponse(
        **data,
        display_total=format_money(
            state.cart.totals.grand_total, state.settings.currency_symbol
        ),
    )


def checkout_response(state: AppState) -> CheckoutResponse:
    data = state.checkout.to_dict()
    last = state.submission.last_result
    return CheckoutResponse(
        **data,
        last_order=OrderResultSchema(**last.to_dict()) if last else None,
    )


# --- FastAPI App ---


app = FastAPI(
    title="storefront API",
    description="Local REST API for the shopper's cart and checkout",
    version="0.1.0",
)

# CORS for the local UI dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=Settings().origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Global Exception Handler ---


# Map exception types to HTTP status codes
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    StockExceededError: 409,
    CartItemNotFoundError: 404,
    PrerequisiteMissingError: 409,
    NetworkError: 502,
    ProductNotFoundError: 404,
    OrderNotFoundError: 404,
    PaymentRedirectError: 502,
    InvalidSchemaVersionError: 500,
}

# Order results are returned, not raised; these pick the response status
RESULT_STATUS_CODES: dict[OrderStatus, int] = {
    OrderStatus.PLACED: 201,
    OrderStatus.AWAITING_PAYMENT: 202,
    OrderStatus.REJECTED: 409,
    OrderStatus.STALE: 409,
    OrderStatus.FAILED: 502,
    OrderStatus.PAYMENT_REDIRECT_FAILED: 502,
}


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    content = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, PrerequisiteMissingError):
        content["redirect_to"] = exc.redirect_to
    if isinstance(exc, ValidationError) and exc.fields:
        content["fields"] = exc.fields
    return JSONResponse(status_code=status_code, content=content)


def result_response(result: OrderResult) -> JSONResponse:
    return JSONResponse(
        status_code=RESULT_STATUS_CODES[result.status],
        content=result.to_dict(),
    )


# --- Endpoints ---


@app.get("/api/health")
def health_check(state: AppState = Depends(get_state)):
    """
    Health check endpoint.

    Reports local state only; the store API is not contacted.
    """
    return {
        "status": "ok",
        "api_base_url": state.settings.api_base_url,
        "cart_item_count": state.cart.item_count,
        "checkout_step": state.checkout.to_dict()["step"],
    }


# --- Cart Endpoints ---


@app.get("/api/cart", response_model=CartResponse)
def get_cart(state: AppState = Depends(get_state)):
    return cart_response(state)


@app.post("/api/cart/items", response_model=CartResponse, status_code=201)
def add_cart_item(request: CartItemRequest, state: AppState = Depends(get_state)):
    """Add a product, replacing any existing line for it."""
    add_product_to_cart(state.cart, state.client, request.product_id, request.quantity)
    return cart_response(state)


@app.put("/api/cart/items/{product_id}", response_model=CartResponse)
def update_cart_item(
    product_id: str, request: QuantityRequest, state: AppState = Depends(get_state)
):
    state.cart.set_quantity(product_id, request.quantity)
    return cart_response(state)


@app.delete("/api/cart/items/{product_id}", response_model=CartResponse)
def remove_cart_item(product_id: str, state: AppState = Depends(get_state)):
    """Remove a product. Removing a product that isn't in the cart is not an error."""
    state.cart.remove(product_id)
    return cart_response(state)


@app.delete("/api/cart", response_model=CartResponse)
def clear_cart(state: AppState = Depends(get_state)):
    state.cart.clear()
    return cart_response(state)


# --- Checkout Endpoints ---


@app.post("/api/checkout/cart", response_model=CheckoutResponse, status_code=201)
def start_cart_checkout(state: AppState = Depends(get_state)):
    state.checkout.start_from_cart(state.cart)
    return checkout_response(state)


@app.post("/api/checkout/buy-now", response_model=CheckoutResponse, status_code=201)
def start_buy_now_checkout(request: CartItemRequest, state: AppState = Depends(get_state)):
    """Check out a single product without touching the cart."""
    if request.quantity < 1:
        raise ValidationError("Quantity must be at least 1", {"quantity": "min 1"})
    product = state.client.get_product(request.product_id)
    state.checkout.start_buy_now(LineItem.from_product(product, request.quantity))
    return checkout_response(state)


@app.get("/api/checkout", response_model=CheckoutResponse)
def get_checkout(state: AppState = Depends(get_state)):
    return checkout_response(state)


@app.get("/api/checkout/steps/{step}", response_model=StepEntrySchema)
def enter_checkout_step(step: CheckoutStep, state: AppState = Depends(get_state)):
    """
    Ask whether a step can be shown.

    Always 200; a refused entry carries ``redirect_to`` and a notice.
    """
    return StepEntrySchema(**state.checkout.enter(step).to_dict())


@app.put("/api/checkout/shipping", response_model=CheckoutResponse)
def save_shipping(request: ShippingAddressSchema, state: AppState = Depends(get_state)):
    state.checkout.save_shipping_address(ShippingAddress(**request.model_dump()))
    return checkout_response(state)


@app.put("/api/checkout/payment", response_model=CheckoutResponse)
def save_payment(request: PaymentMethodRequest, state: AppState = Depends(get_state)):
    state.checkout.save_payment_method(request.payment_method)
    return checkout_response(state)


@app.post("/api/checkout/place-order", response_model=OrderResultSchema)
def place_order(state: AppState = Depends(get_state)):
    return result_response(state.submission.place_order())


@app.delete("/api/checkout", response_model=CheckoutResponse)
def close_checkout(state: AppState = Depends(get_state)):
    """Leave checkout. The saved shipping address is kept."""
    state.checkout.close()
    return checkout_response(state)


# --- Order Endpoints ---


@app.post("/api/orders/{order_id}/confirm-payment", response_model=OrderResultSchema)
def confirm_payment(order_id: str, state: AppState = Depends(get_state)):
    """Called after the hosted payment page returns to the shopper."""
    return result_response(state.submission.confirm_payment(order_id))

"""Command-line interface for storefront."""

import argparse
import json
import logging
import os
import sys
from typing import Any

from . import __version__
from .cart import add_product_to_cart
from .checkout import CheckoutStep
from .config import Settings
from .errors import StorefrontError
from .models import LineItem, OrderResult, OrderStatus, ShippingAddress, Totals, to_decimal
from .orders import browser_handoff, checkout_url_handoff
from .pricing import format_money
from .state import AppState


def build_settings(args: argparse.Namespace) -> Settings:
    """Settings from the environment, overridden by global command-line flags."""
    overrides: dict[str, Any] = {}
    if getattr(args, "data_dir", None):
        overrides["data_dir"] = args.data_dir
    if getattr(args, "api_url", None):
        overrides["api_base_url"] = args.api_url
    return Settings(**overrides)


def open_state(args: argparse.Namespace) -> AppState:
    """Open the shopper's state for the current command."""
    handoff = browser_handoff if getattr(args, "open_browser", False) else checkout_url_handoff
    return AppState.open(build_settings(args), handoff=handoff)


def format_totals(totals: Totals, symbol: str) -> list[str]:
    return [
        f"  Subtotal:  {format_money(totals.subtotal, symbol)}",
        f"  Shipping:  {format_money(totals.shipping_fee, symbol)}",
        f"  Tax:       {format_money(totals.tax, symbol)}",
        f"  Total:     {format_money(totals.grand_total, symbol)}",
    ]


def format_line_item(item: LineItem, symbol: str) -> str:
    return (
        f"  {item.product_id}  {item.name}  "
        f"{item.quantity} x {format_money(item.unit_price, symbol)} = "
        f"{format_money(item.line_total, symbol)}"
    )


def print_result(result: OrderResult) -> None:
    stream = sys.stdout if result.ok else sys.stderr
    print(result.message, file=stream)
    if result.redirect_url:
        print(f"Complete payment at: {result.redirect_url}", file=stream)


# --- Cart ---


def cmd_cart_list(args: argparse.Namespace) -> int:
    """Show the cart and its totals."""
    try:
        with open_state(args) as state:
            cart = state.cart
            if args.json:
                print(json.dumps(cart.to_dict(), indent=2))
                return 0

            if cart.is_empty():
                print("Your cart is empty.")
                return 0

            symbol = state.settings.currency_symbol
            print(f"Cart ({cart.item_count} item(s)):")
            for item in cart.items:
                print(format_line_item(item, symbol))
            print()
            for line in format_totals(cart.totals, symbol):
                print(line)
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cart_add(args: argparse.Namespace) -> int:
    """Add a product to the cart, replacing any existing line for it."""
    try:
        with open_state(args) as state:
            item = add_product_to_cart(state.cart, state.client, args.product_id, args.qty)
            print(f"Added to cart: {item.name} x{item.quantity}")
            print(f"Cart total: {format_money(state.cart.totals.grand_total, state.settings.currency_symbol)}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cart_qty(args: argparse.Namespace) -> int:
    """Change the quantity of a cart line."""
    try:
        with open_state(args) as state:
            item = state.cart.set_quantity(args.product_id, args.qty)
            if item is None:
                print(f"Removed from cart: {args.product_id}")
            else:
                print(f"Updated: {item.name} x{item.quantity}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cart_remove(args: argparse.Namespace) -> int:
    """Remove a product from the cart."""
    try:
        with open_state(args) as state:
            if state.cart.remove(args.product_id):
                print(f"Removed from cart: {args.product_id}")
            else:
                print(f"Not in cart: {args.product_id}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_cart_clear(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            state.cart.clear()
            print("Cart cleared.")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Checkout ---


def cmd_buy_now(args: argparse.Namespace) -> int:
    """Start a checkout for a single product, bypassing the cart."""
    try:
        with open_state(args) as state:
            if args.qty < 1:
                print("Error: Quantity must be at least 1", file=sys.stderr)
                return 1
            product = state.client.get_product(args.product_id)
            state.checkout.start_buy_now(LineItem.from_product(product, args.qty))
            print(f"Buy now: {product['name']} x{args.qty}")
            print(f"Next step: {state.checkout.current_step().value}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout_start(args: argparse.Namespace) -> int:
    """Stage the cart for checkout."""
    try:
        with open_state(args) as state:
            state.checkout.start_from_cart(state.cart)
            print(f"Checkout started with {len(state.checkout.session.order_items)} line(s).")
            print(f"Next step: {state.checkout.current_step().value}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout_status(args: argparse.Namespace) -> int:
    """Show the staged checkout and the step to resume at."""
    try:
        with open_state(args) as state:
            checkout = state.checkout
            if args.json:
                print(json.dumps(checkout.to_dict(), indent=2))
                return 0

            step = checkout.current_step()
            if step is None:
                print("No checkout in progress.")
                return 0

            session = checkout.session
            symbol = state.settings.currency_symbol
            print(f"Checkout ({session.source}), step: {step.value}")
            for item in session.order_items:
                print(format_line_item(item, symbol))
            if session.shipping_address:
                address = session.shipping_address
                print(f"Ship to: {address.name}, {address.address_line}, {address.city} {address.postal_code}")
            if session.payment_method:
                print(f"Payment: {session.payment_method.value}")
            print()
            for line in format_totals(checkout.totals, symbol):
                print(line)
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout_shipping(args: argparse.Namespace) -> int:
    """Save the shipping address."""
    try:
        with open_state(args) as state:
            address = ShippingAddress(
                name=args.name,
                email=args.email or "",
                phone=args.phone,
                address_line=args.address,
                city=args.city,
                postal_code=args.postal_code,
                country=args.country,
            )
            next_step = state.checkout.save_shipping_address(address)
            print("Shipping address saved.")
            print(f"Next step: {next_step.value}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        for field_name, message in getattr(e, "fields", {}).items():
            print(f"  {field_name}: {message}", file=sys.stderr)
        return 1


def cmd_checkout_payment(args: argparse.Namespace) -> int:
    """Choose the payment method."""
    try:
        with open_state(args) as state:
            next_step = state.checkout.save_payment_method(args.method)
            print(f"Payment method: {state.checkout.session.payment_method.value}")
            print(f"Next step: {next_step.value}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout_place(args: argparse.Namespace) -> int:
    """Place the order."""
    try:
        with open_state(args) as state:
            entry = state.checkout.enter(CheckoutStep.PLACE_ORDER)
            if entry.allowed:
                symbol = state.settings.currency_symbol
                print(f"Placing order for {format_money(state.checkout.totals.grand_total, symbol)}")

            state.submission.subscribe(print_result)
            result = state.submission.place_order()
            return 0 if result.ok else 1

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_checkout_close(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            state.checkout.close()
            print("Checkout closed.")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Orders ---


def cmd_orders_list(args: argparse.Namespace) -> int:
    """List the shopper's orders on the store."""
    try:
        with open_state(args) as state:
            orders = state.client.list_my_orders(is_paid=args.paid)
            if args.json:
                print(json.dumps(orders, indent=2))
                return 0

            if not orders:
                print("No orders found.")
                return 0

            print(f"Orders ({len(orders)}):")
            for order in orders:
                paid = "paid" if order.get("isPaid") else "unpaid"
                print(f"  {order.get('_id')}  {order.get('paymentMethod', '')}  {order.get('totalPrice')}  {paid}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_show(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            order = state.client.get_order(args.order_id)
            print(json.dumps(order, indent=2))
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_orders_confirm(args: argparse.Namespace) -> int:
    """Check whether an online payment has completed."""
    try:
        with open_state(args) as state:
            state.submission.subscribe(print_result)
            result = state.submission.confirm_payment(args.order_id)
            return 0 if result.status == OrderStatus.PLACED else 1

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Products and reviews ---


def cmd_products_list(args: argparse.Namespace) -> int:
    """Browse the store catalog."""
    try:
        with open_state(args) as state:
            data = state.client.list_products(search=args.search, page=args.page, limit=args.limit)
            if args.json:
                print(json.dumps(data, indent=2))
                return 0

            products = data.get("products", [])
            if not products:
                print("No products found.")
                return 0

            symbol = state.settings.currency_symbol
            print(f"Products (page {data.get('page', args.page)} of {data.get('pages', 1)}):")
            for product in products:
                price = format_money(to_decimal(product.get("price", 0)), symbol)
                stock = product.get("countInStock", 0)
                print(f"  {product.get('_id')}  {product.get('name', '')}  {price}  ({stock} in stock)")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_reviews_list(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            reviews = state.client.list_reviews(args.product_id)
            if not reviews:
                print(f"No reviews for {args.product_id}.")
                return 0

            print(f"Reviews for {args.product_id} ({len(reviews)}):")
            for review in reviews:
                author = review.get("name") or review.get("user") or "anonymous"
                print(f"  {review.get('rating')}/5  {author}: {review.get('comment', '')}")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_reviews_add(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            state.client.create_review(args.product_id, args.rating, args.comment)
            print(f"Review added for {args.product_id}.")
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Wishlist ---


def _print_wishlist(products: list[dict[str, Any]]) -> None:
    if not products:
        print("Your wishlist is empty.")
        return
    print(f"Wishlist ({len(products)}):")
    for product in products:
        if isinstance(product, dict):
            print(f"  {product.get('_id')}  {product.get('name', '')}")
        else:
            print(f"  {product}")


def cmd_wishlist_list(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            _print_wishlist(state.client.get_wishlist())
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_wishlist_add(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            _print_wishlist(state.client.add_to_wishlist(args.product_id))
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_wishlist_remove(args: argparse.Namespace) -> int:
    try:
        with open_state(args) as state:
            _print_wishlist(state.client.remove_from_wishlist(args.product_id))
            return 0

    except StorefrontError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


# --- Server ---


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the API server."""
    try:
        import uvicorn

        settings = build_settings(args)
        print("Starting storefront API server...")
        print(f"Store API: {settings.api_base_url}")
        print(f"State: {settings.data_dir}")
        print(f"API docs: http://{args.host}:{args.port}/docs")
        print()

        # When reload is enabled, uvicorn requires the app as an import string.
        # The reloaded worker builds its own Settings, so pass the flags on
        # through the environment it inherits.
        if args.reload:
            if args.data_dir:
                os.environ["STOREFRONT_DATA_DIR"] = str(args.data_dir)
            if args.api_url:
                os.environ["STOREFRONT_API_BASE_URL"] = args.api_url
            app_target = "storefront.api:app"
        else:
            from .api import app
            app.state.storefront = AppState.open(settings)
            app_target = app

        uvicorn.run(
            app_target,
            host=args.host,
            port=args.port,
            reload=args.reload,
            workers=1,  # Single worker; the state file is shared
        )
        return 0

    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="storefront",
        description="Manage a shopping cart and check out against a store API.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument("--data-dir", help="Directory for local state (default: ~/.storefront)")
    parser.add_argument("--api-url", help="Store API base URL")
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Log state changes and requests"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # cart (subcommand group)
    cart_parser = subparsers.add_parser("cart", help="Manage the cart")
    cart_subparsers = cart_parser.add_subparsers(dest="cart_command")

    cart_list_parser = cart_subparsers.add_parser("list", help="Show the cart")
    cart_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    cart_add_parser = cart_subparsers.add_parser("add", help="Add a product to the cart")
    cart_add_parser.add_argument("product_id", help="Store product ID")
    cart_add_parser.add_argument("--qty", "-q", type=int, default=1, help="Quantity (default: 1)")

    cart_qty_parser = cart_subparsers.add_parser("qty", help="Change a line's quantity (0 removes)")
    cart_qty_parser.add_argument("product_id", help="Store product ID")
    cart_qty_parser.add_argument("qty", type=int, help="New quantity")

    cart_remove_parser = cart_subparsers.add_parser("remove", help="Remove a product from the cart")
    cart_remove_parser.add_argument("product_id", help="Store product ID")

    cart_subparsers.add_parser("clear", help="Empty the cart")

    # buy-now
    buy_now_parser = subparsers.add_parser("buy-now", help="Check out a single product")
    buy_now_parser.add_argument("product_id", help="Store product ID")
    buy_now_parser.add_argument("--qty", "-q", type=int, default=1, help="Quantity (default: 1)")

    # checkout (subcommand group)
    checkout_parser = subparsers.add_parser("checkout", help="Step through checkout")
    checkout_subparsers = checkout_parser.add_subparsers(dest="checkout_command")

    checkout_subparsers.add_parser("start", help="Check out the cart")

    status_parser = checkout_subparsers.add_parser("status", help="Show the checkout in progress")
    status_parser.add_argument("--json", action="store_true", help="Output as JSON")

    shipping_parser = checkout_subparsers.add_parser("shipping", help="Save the shipping address")
    shipping_parser.add_argument("--name", required=True, help="Recipient name")
    shipping_parser.add_argument("--phone", required=True, help="10-digit mobile number")
    shipping_parser.add_argument("--address", required=True, help="Address line")
    shipping_parser.add_argument("--city", required=True, help="City")
    shipping_parser.add_argument("--postal-code", required=True, help="Postal code")
    shipping_parser.add_argument("--country", default="India", help="Country (default: India)")
    shipping_parser.add_argument("--email", help="Contact email")

    payment_parser = checkout_subparsers.add_parser("payment", help="Choose the payment method")
    payment_parser.add_argument(
        "method", help="'card' for online card payment, 'cod' for cash on delivery"
    )

    place_parser = checkout_subparsers.add_parser("place", help="Place the order")
    place_parser.add_argument(
        "--open-browser", action="store_true", help="Open the payment page for card orders"
    )

    checkout_subparsers.add_parser("close", help="Leave checkout (keeps the saved address)")

    # orders (subcommand group)
    orders_parser = subparsers.add_parser("orders", help="View orders on the store")
    orders_subparsers = orders_parser.add_subparsers(dest="orders_command")

    orders_list_parser = orders_subparsers.add_parser("list", help="List my orders")
    paid_group = orders_list_parser.add_mutually_exclusive_group()
    paid_group.add_argument("--paid", dest="paid", action="store_const", const=True, help="Only paid orders")
    paid_group.add_argument("--unpaid", dest="paid", action="store_const", const=False, help="Only unpaid orders")
    orders_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    orders_show_parser = orders_subparsers.add_parser("show", help="Show one order")
    orders_show_parser.add_argument("order_id", help="Order ID")

    orders_confirm_parser = orders_subparsers.add_parser(
        "confirm", help="Check whether an online payment completed"
    )
    orders_confirm_parser.add_argument("order_id", help="Order ID")

    # wishlist (subcommand group)
    wishlist_parser = subparsers.add_parser("wishlist", help="Manage the wishlist")
    wishlist_subparsers = wishlist_parser.add_subparsers(dest="wishlist_command")

    wishlist_subparsers.add_parser("list", help="Show the wishlist")
    wishlist_add_parser = wishlist_subparsers.add_parser("add", help="Add a product")
    wishlist_add_parser.add_argument("product_id", help="Store product ID")
    wishlist_remove_parser = wishlist_subparsers.add_parser("remove", help="Remove a product")
    wishlist_remove_parser.add_argument("product_id", help="Store product ID")

    # products (subcommand group)
    products_parser = subparsers.add_parser("products", help="Browse the store catalog")
    products_subparsers = products_parser.add_subparsers(dest="products_command")

    products_list_parser = products_subparsers.add_parser("list", help="List products")
    products_list_parser.add_argument("--search", "-s", help="Filter by keyword")
    products_list_parser.add_argument("--page", type=int, default=1, help="Page number (default: 1)")
    products_list_parser.add_argument("--limit", type=int, default=10, help="Products per page (default: 10)")
    products_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    # reviews (subcommand group)
    reviews_parser = subparsers.add_parser("reviews", help="Read and write product reviews")
    reviews_subparsers = reviews_parser.add_subparsers(dest="reviews_command")

    reviews_list_parser = reviews_subparsers.add_parser("list", help="List reviews for a product")
    reviews_list_parser.add_argument("product_id", help="Store product ID")
    reviews_add_parser = reviews_subparsers.add_parser("add", help="Review a product")
    reviews_add_parser.add_argument("product_id", help="Store product ID")
    reviews_add_parser.add_argument("--rating", "-r", type=int, required=True, help="Rating from 1 to 5")
    reviews_add_parser.add_argument("--comment", "-m", required=True, help="Review text")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument(
        "--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)"
    )
    serve_parser.add_argument(
        "--port", "-p", type=int, default=8000, help="Port to bind to (default: 8000)"
    )
    serve_parser.add_argument(
        "--reload", action="store_true", help="Enable auto-reload for development"
    )

    return parser


GROUP_COMMANDS = {
    "cart": ("cart_command", {
        "list": cmd_cart_list,
        "add": cmd_cart_add,
        "qty": cmd_cart_qty,
        "remove": cmd_cart_remove,
        "clear": cmd_cart_clear,
    }),
    "checkout": ("checkout_command", {
        "start": cmd_checkout_start,
        "status": cmd_checkout_status,
        "shipping": cmd_checkout_shipping,
        "payment": cmd_checkout_payment,
        "place": cmd_checkout_place,
        "close": cmd_checkout_close,
    }),
    "orders": ("orders_command", {
        "list": cmd_orders_list,
        "show": cmd_orders_show,
        "confirm": cmd_orders_confirm,
    }),
    "wishlist": ("wishlist_command", {
        "list": cmd_wishlist_list,
        "add": cmd_wishlist_add,
        "remove": cmd_wishlist_remove,
    }),
    "products": ("products_command", {
        "list": cmd_products_list,
    }),
    "reviews": ("reviews_command", {
        "list": cmd_reviews_list,
        "add": cmd_reviews_add,
    }),
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    level = "INFO" if args.verbose else build_settings(args).log_level
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 0

    # Handle grouped subcommands
    if args.command in GROUP_COMMANDS:
        dest, commands = GROUP_COMMANDS[args.command]
        sub_command = getattr(args, dest, None)
        if not sub_command:
            parser.parse_args([args.command, "--help"])
            return 0
        return commands[sub_command](args)

    commands = {
        "buy-now": cmd_buy_now,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)

    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())

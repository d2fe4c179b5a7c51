"""Checkout orchestrator: turns the user's cart into a placed order.

The whole unit (cart read, validation, order write, stock deduction, cart
clear, address book, customer stats) runs in one transaction, retried from
scratch on transient database errors. Business rule failures raise typed 400
errors and roll back without retrying.
"""

from dataclasses import dataclass
from typing import Optional

from libs.common.config import Settings, get_settings
from libs.common.currency import relative_difference
from libs.common.idempotency import generate_idempotency_key
from libs.common.logging import get_logger
from libs.common.retry import is_transient_db_error, retry_async
from libs.common.sanitize import sanitize_phone, sanitize_text
from libs.db.config import Database
from libs.db.session import transaction_scope
from services.store_service.errors import (
    EmptyCartError,
    IdempotencyConflictError,
    InsufficientStockError,
    InvalidOrderTotalError,
    PriceChangedError,
    ProductUnavailableError,
)
from services.store_service.models import Cart, Order, ProductStatus
from services.store_service.schemas import AddressIn, CheckoutRequest
from services.store_service.services import (
    carts,
    customers,
    inventory_ledger,
    orders,
    stock_ops,
)
from services.store_service.services.orders import OrderLine
from services.store_service.services.pricing import compute_order_totals
from sqlalchemy.exc import IntegrityError

logger = get_logger(__name__)


@dataclass
class CheckoutResult:
    order: Order
    replayed: bool = False


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def sanitize_address(address: AddressIn) -> dict:
    """Plain dict snapshot of an address with every free-text field cleaned."""
    data = address.model_dump(by_alias=False)
    cleaned = {
        key: sanitize_text(value, max_length=200) if isinstance(value, str) else value
        for key, value in data.items()
    }
    cleaned["phone"] = sanitize_phone(data["phone"])
    return cleaned


async def validate_cart_items(db, cart: Cart, settings: Settings) -> list[OrderLine]:
    """Re-check every line against the live product row.

    Raises the first failure found, naming the line's SKU.
    """
    lines = []
    for item in cart.items:
        product = await inventory_ledger.get_product(db, item.product_id)
        if product is not None and product.status == ProductStatus.OUT_OF_STOCK:
            raise InsufficientStockError(item.sku)
        if product is None or product.status != ProductStatus.ACTIVE:
            raise ProductUnavailableError(item.sku)
        if not product.can_fulfil(item.quantity):
            raise InsufficientStockError(item.sku)
        if relative_difference(product.price, item.price) > settings.PRICE_VARIANCE_THRESHOLD:
            raise PriceChangedError(item.sku)

        lines.append(
            OrderLine(
                product_id=item.product_id,
                sku=item.sku,
                title=item.title,
                price=item.price,
                quantity=item.quantity,
                image_url=item.image_url,
            )
        )
    return lines


async def _place_order(
    database: Database,
    *,
    user_id: str,
    request: CheckoutRequest,
    idempotency_key: str,
    settings: Settings,
) -> Order:
    async with transaction_scope(database) as db:
        cart = await carts.find_cart(db, user_id=user_id, for_update=True)
        if cart is None or not cart.items:
            raise EmptyCartError()

        lines = await validate_cart_items(db, cart, settings)

        shipping_address = sanitize_address(request.shipping_address)
        billing_address = sanitize_address(request.billing_address)

        totals = compute_order_totals(cart, settings)
        if totals.total <= 0:
            raise InvalidOrderTotalError()

        order = await orders.create_order(
            db,
            user_id=user_id,
            lines=lines,
            totals=totals,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=request.payment_method,
            currency=cart.currency or settings.STORE_CURRENCY,
            idempotency_key=idempotency_key,
            customer_notes=sanitize_text(request.customer_notes, max_length=1000),
        )

        await stock_ops.confirm_order_stock(db, order, idempotency_key=idempotency_key)
        await carts.clear_cart(db, cart)
        await customers.save_checkout_addresses(
            db,
            user_id,
            shipping_address=shipping_address,
            billing_address=billing_address,
            save_shipping=request.save_shipping_address,
            save_billing=request.save_billing_address,
        )
        await customers.record_customer_order(db, user_id, order.total)
    return order


async def _find_replay(database: Database, user_id: str, key: str) -> Optional[Order]:
    async with database.session() as db:
        order = await orders.check_idempotency_key(db, key)
    if order is not None and order.user_id != user_id:
        raise IdempotencyConflictError()
    return order


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


async def checkout(
    database: Database,
    *,
    user_id: str,
    request: CheckoutRequest,
    settings: Optional[Settings] = None,
) -> CheckoutResult:
    """Place an order from the user's cart.

    Steps:
    1. A known ``idempotency_key`` returns the original order, no side effects.
    2. Otherwise the transaction runs under ``retry_async``; a missing key is
       generated so stock log entries are always keyed.
    3. Losing a race to a concurrent request with the same key (unique
       violation on the order) resolves to that request's order.
    """
    settings = settings or get_settings()

    if request.idempotency_key:
        existing = await _find_replay(database, user_id, request.idempotency_key)
        if existing is not None:
            logger.info(
                "Checkout replay for key %s -> order %s",
                request.idempotency_key,
                existing.order_number,
            )
            return CheckoutResult(order=existing, replayed=True)

    idempotency_key = request.idempotency_key or generate_idempotency_key("order")

    async def attempt() -> Order:
        return await _place_order(
            database,
            user_id=user_id,
            request=request,
            idempotency_key=idempotency_key,
            settings=settings,
        )

    try:
        order = await retry_async(
            attempt,
            max_attempts=settings.CHECKOUT_MAX_ATTEMPTS,
            initial_delay=settings.CHECKOUT_RETRY_INITIAL_DELAY,
            is_retryable=is_transient_db_error,
            operation="checkout",
        )
    except IntegrityError:
        existing = await _find_replay(database, user_id, idempotency_key)
        if existing is None:
            raise
        logger.info("Concurrent checkout with key %s already placed", idempotency_key)
        return CheckoutResult(order=existing, replayed=True)

    logger.info(
        "Checkout complete: order %s for user %s",
        order.order_number,
        user_id,
        extra={"extra_fields": {
            "order_id": str(order.id),
            "total": str(order.total),
            "idempotency_key": idempotency_key,
        }},
    )
    return CheckoutResult(order=order)

"""Order aggregate: creation, numbering, status machines, payment updates."""

import math
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence

from libs.common.currency import line_total
from libs.common.datetime_utils import utc_now
from libs.common.idempotency import generate_idempotency_key
from libs.common.logging import get_logger
from libs.common.sanitize import sanitize_text
from services.store_service.errors import (
    DuplicatePaymentError,
    IdempotencyConflictError,
    InvalidOrderError,
    InvalidOrderTotalError,
    InvalidStatusTransitionError,
    OrderCancellationError,
    OrderNotFoundError,
)
from services.store_service.models import (
    Order,
    OrderItem,
    OrderPaymentEvent,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from services.store_service.models.commerce import next_order_number
from services.store_service.services import stock_ops
from services.store_service.services.inventory_log import Actor
from services.store_service.services.pricing import OrderTotals
from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# State machines
# ---------------------------------------------------------------------------

ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset(
        {OrderStatus.PROCESSING, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    ),
    OrderStatus.PROCESSING: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REFUNDED}
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.REFUNDED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.CANCELLED: frozenset({OrderStatus.REFUNDED}),
    OrderStatus.REFUNDED: frozenset(),
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PAID, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING, PaymentStatus.PAID}),
    PaymentStatus.PAID: frozenset(
        {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED}
    ),
    PaymentStatus.PARTIALLY_REFUNDED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

CANCELLABLE_STATUSES = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING}
)
POST_PAYMENT_STATUSES = frozenset(
    {PaymentStatus.PAID, PaymentStatus.PARTIALLY_REFUNDED, PaymentStatus.REFUNDED}
)

REQUIRED_ADDRESS_FIELDS = (
    "first_name",
    "last_name",
    "address_line1",
    "city",
    "state",
    "postal_code",
    "country",
    "phone",
)


@dataclass(frozen=True)
class OrderLine:
    product_id: uuid.UUID
    sku: str
    title: str
    price: Decimal
    quantity: int
    image_url: Optional[str] = None


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def generate_order_number(db: AsyncSession, year: Optional[int] = None) -> str:
    """Claim the next ``ORD-<year>-<sequence>`` on the session's transaction."""
    return await db.run_sync(lambda session: next_order_number(session.connection(), year))


def _validate_address(address: dict, label: str) -> None:
    missing = [field for field in REQUIRED_ADDRESS_FIELDS if not address.get(field)]
    if missing:
        raise InvalidOrderError(f"{label} address is missing: {', '.join(missing)}")


async def create_order(
    db: AsyncSession,
    *,
    user_id: str,
    lines: Sequence[OrderLine],
    totals: OrderTotals,
    shipping_address: dict,
    billing_address: dict,
    payment_method: PaymentMethod,
    currency: str,
    idempotency_key: Optional[str] = None,
    customer_notes: Optional[str] = None,
) -> Order:
    """Persist a new pending order; the insert hook assigns its number."""
    if not lines:
        raise InvalidOrderError("Order must contain at least one item")
    _validate_address(shipping_address, "Shipping")
    _validate_address(billing_address, "Billing")
    if totals.total <= 0:
        raise InvalidOrderTotalError()

    order = Order(
        user_id=user_id,
        subtotal=totals.subtotal,
        tax=totals.tax,
        shipping=totals.shipping,
        discount=totals.discount,
        total=totals.total,
        currency=currency,
        shipping_address=shipping_address,
        billing_address=billing_address,
        payment_method=payment_method,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        idempotency_key=idempotency_key,
        customer_notes=customer_notes,
        items=[
            OrderItem(
                product_id=line.product_id,
                product_sku=line.sku,
                product_title=line.title,
                image_url=line.image_url,
                quantity=line.quantity,
                price=line.price,
                total=line_total(line.price, line.quantity),
            )
            for line in lines
        ],
    )
    db.add(order)
    await db.flush()

    logger.info(
        "Created order %s for user %s (total=%s %s)",
        order.order_number,
        user_id,
        order.total,
        currency,
    )
    return order


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def check_idempotency_key(db: AsyncSession, key: str) -> Optional[Order]:
    """Order previously placed with this checkout key, if any."""
    result = await db.execute(select(Order).where(Order.idempotency_key == key))
    return result.scalar_one_or_none()


async def check_duplicate_payment(
    db: AsyncSession,
    *,
    payment_intent_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    exclude_order_id: Optional[uuid.UUID] = None,
) -> bool:
    """Whether either payment reference is already attached to another order."""
    refs = []
    if payment_intent_id:
        refs.append(Order.payment_intent_id == payment_intent_id)
    if payment_id:
        refs.append(Order.payment_id == payment_id)
    if not refs:
        return False

    query = select(Order.id).where(or_(*refs))
    if exclude_order_id is not None:
        query = query.where(Order.id != exclude_order_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none() is not None


async def _lock_order(db: AsyncSession, order_id: uuid.UUID) -> Optional[Order]:
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_order(db: AsyncSession, order_id: uuid.UUID) -> Order:
    result = await db.execute(select(Order).where(Order.id == order_id))
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError()
    return order


async def get_order_for_user(
    db: AsyncSession, order_id: uuid.UUID, user_id: str
) -> Order:
    """Another user's order is reported as not found."""
    result = await db.execute(
        select(Order).where(Order.id == order_id, Order.user_id == user_id)
    )
    order = result.scalar_one_or_none()
    if order is None:
        raise OrderNotFoundError()
    return order


async def list_orders_for_user(
    db: AsyncSession,
    user_id: str,
    *,
    status: Optional[OrderStatus] = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Order], int, int]:
    """Return ``(orders, total, total_pages)``, newest first."""
    filters = [Order.user_id == user_id]
    if status is not None:
        filters.append(Order.status == status)

    total = await db.scalar(select(func.count(Order.id)).where(*filters)) or 0
    result = await db.execute(
        select(Order)
        .where(*filters)
        .order_by(Order.created_at.desc(), Order.order_number.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    return list(result.scalars().all()), total, math.ceil(total / limit) if total else 0


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


def _enter_status(order: Order, status: OrderStatus) -> None:
    """Set the status and stamp first-entry timestamps (never overwritten)."""
    order.status = status
    now = utc_now()
    if status == OrderStatus.SHIPPED and order.shipped_at is None:
        order.shipped_at = now
    elif status == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now


def _check_transition(order: Order, target: OrderStatus) -> None:
    if target not in ORDER_TRANSITIONS[order.status]:
        raise InvalidStatusTransitionError("status", order.status.value, target.value)
    if target == OrderStatus.REFUNDED and order.payment_status not in POST_PAYMENT_STATUSES:
        raise InvalidStatusTransitionError("status", order.status.value, target.value)


async def _apply_cancellation(
    db: AsyncSession,
    order: Order,
    *,
    reason: str,
    actor: Actor,
    cancellation_key: str,
) -> None:
    await stock_ops.restore_order_stock(
        db, order, idempotency_key=cancellation_key, actor=actor
    )
    _enter_status(order, OrderStatus.CANCELLED)
    order.cancelled_at = utc_now()
    order.cancelled_reason = sanitize_text(reason, max_length=500)
    order.cancellation_key = cancellation_key
    await db.flush()
    logger.info("Cancelled order %s: %s", order.order_number, order.cancelled_reason)


async def cancel_order(
    db: AsyncSession,
    *,
    order_id: uuid.UUID,
    user_id: str,
    actor: Actor,
    reason: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> tuple[Order, bool]:
    """Cancel one of the user's own orders and put its stock back.

    Returns ``(order, replayed)``. Replaying the key of a cancellation that
    already happened returns the cancelled order with ``replayed=True``.
    Payment is left as is; refunds are recorded through
    ``update_payment_status``.
    """
    order = await _lock_order(db, order_id)
    if order is None or order.user_id != user_id:
        raise OrderNotFoundError()

    if idempotency_key and order.cancellation_key == idempotency_key:
        return order, True
    if order.status == OrderStatus.CANCELLED:
        raise OrderCancellationError("Order is already cancelled")
    if order.status not in CANCELLABLE_STATUSES:
        raise OrderCancellationError(f"Cannot cancel {order.status.value} order")

    if idempotency_key:
        used = await db.scalar(
            select(Order.id).where(Order.cancellation_key == idempotency_key)
        )
        if used is not None:
            raise IdempotencyConflictError()

    await _apply_cancellation(
        db,
        order,
        reason=reason or "Cancelled by user",
        actor=actor,
        cancellation_key=idempotency_key or generate_idempotency_key("cancel"),
    )
    return order, False


async def transition_order_status(
    db: AsyncSession,
    order_id: uuid.UUID,
    status: OrderStatus,
    *,
    actor: Actor,
    tracking_number: Optional[str] = None,
    carrier: Optional[str] = None,
    notes: Optional[str] = None,
) -> Order:
    """Admin-driven status change validated against ``ORDER_TRANSITIONS``.

    Re-sending the current status only updates the fulfilment fields.
    Cancelling goes through the same stock-restoring path as a customer
    cancellation.
    """
    order = await _lock_order(db, order_id)
    if order is None:
        raise OrderNotFoundError()

    if status != order.status:
        _check_transition(order, status)
        if status == OrderStatus.CANCELLED:
            await _apply_cancellation(
                db,
                order,
                reason=notes or "Cancelled by admin",
                actor=actor,
                cancellation_key=generate_idempotency_key("cancel"),
            )
        else:
            _enter_status(order, status)

    if tracking_number is not None:
        order.tracking_number = sanitize_text(tracking_number, max_length=100)
    if carrier is not None:
        order.carrier = sanitize_text(carrier, max_length=100)
    if notes is not None:
        order.notes = sanitize_text(notes)
    await db.flush()

    logger.info("Order %s is now %s", order.order_number, order.status.value)
    return order


# ---------------------------------------------------------------------------
# Payment
# ---------------------------------------------------------------------------


def _derive_order_status(order: Order, payment_status: PaymentStatus) -> None:
    if payment_status == PaymentStatus.PAID and order.status == OrderStatus.PENDING:
        _enter_status(order, OrderStatus.CONFIRMED)
    elif payment_status == PaymentStatus.FAILED and order.status in (
        OrderStatus.PENDING,
        OrderStatus.CONFIRMED,
    ):
        # Back to pending so the customer can retry payment
        _enter_status(order, OrderStatus.PENDING)
    elif payment_status == PaymentStatus.REFUNDED:
        _enter_status(order, OrderStatus.REFUNDED)


async def _find_payment_event(
    db: AsyncSession, idempotency_key: str
) -> Optional[OrderPaymentEvent]:
    return await db.scalar(
        select(OrderPaymentEvent).where(
            OrderPaymentEvent.idempotency_key == idempotency_key
        )
    )


async def _replay_payment_event(
    db: AsyncSession, event: OrderPaymentEvent, order_id: uuid.UUID
) -> tuple[Order, bool]:
    if event.order_id != order_id:
        raise IdempotencyConflictError()
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one(), True


async def update_payment_status(
    db: AsyncSession,
    order_id: uuid.UUID,
    payment_status: PaymentStatus,
    *,
    payment_intent_id: Optional[str] = None,
    payment_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> tuple[Order, bool]:
    """Apply a payment status change and derive the order status from it.

    Steps:
    1. A consumed ``idempotency_key`` returns the order unchanged.
    2. Payment references already attached to another order raise 409.
    3. The transition is checked against ``PAYMENT_TRANSITIONS``. Keeping
       the same status is allowed, which lets a gateway attach references
       while payment is still pending.
    4. The key is claimed before the order changes; losing that claim to a
       concurrent update with the same key is a replay too.
    5. paid → confirmed, failed → pending, refunded → refunded.

    Returns ``(order, replayed)``.
    """
    if idempotency_key:
        event = await _find_payment_event(db, idempotency_key)
        if event is not None:
            return await _replay_payment_event(db, event, order_id)

    order = await _lock_order(db, order_id)
    if order is None:
        raise OrderNotFoundError()

    if await check_duplicate_payment(
        db,
        payment_intent_id=payment_intent_id,
        payment_id=payment_id,
        exclude_order_id=order.id,
    ):
        logger.warning(
            "Duplicate payment reference for order %s",
            order.order_number,
            extra={"extra_fields": {
                "payment_intent_id": payment_intent_id,
                "payment_id": payment_id,
            }},
        )
        raise DuplicatePaymentError()

    current = order.payment_status
    if payment_status != current and payment_status not in PAYMENT_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            "payment status", current.value, payment_status.value
        )

    if idempotency_key:
        try:
            async with db.begin_nested():
                db.add(
                    OrderPaymentEvent(
                        order_id=order.id,
                        idempotency_key=idempotency_key,
                        payment_status=payment_status,
                        payment_intent_id=payment_intent_id,
                        payment_id=payment_id,
                    )
                )
        except IntegrityError:
            event = await _find_payment_event(db, idempotency_key)
            if event is None:
                raise
            logger.info("Payment update %s recorded concurrently", idempotency_key)
            return await _replay_payment_event(db, event, order_id)

    if payment_intent_id:
        order.payment_intent_id = payment_intent_id
    if payment_id:
        order.payment_id = payment_id
    order.payment_status = payment_status
    if payment_status == PaymentStatus.PAID and order.paid_at is None:
        order.paid_at = utc_now()
    _derive_order_status(order, payment_status)

    try:
        await db.flush()
    except IntegrityError as exc:
        # A concurrent update claimed the payment reference first
        raise DuplicatePaymentError() from exc

    logger.info(
        "Order %s payment %s -> %s (status=%s)",
        order.order_number,
        current.value,
        payment_status.value,
        order.status.value,
    )
    return order, False

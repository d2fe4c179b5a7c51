"""Stock flows built on the ledger: order confirmation, returns, restocks.

Each flow runs on the caller's session so the counter updates and their log
entries commit or roll back together with whatever else the caller is doing.
"""

import uuid
from typing import Optional

from libs.common.idempotency import derive_key
from libs.common.logging import get_logger
from services.store_service.errors import InsufficientStockError, ProductNotFoundError
from services.store_service.models import InventoryLogType, Order, PerformedByType, Product
from services.store_service.services import inventory_ledger, inventory_log
from services.store_service.services.inventory_log import SYSTEM_ACTOR, Actor
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def confirm_order_stock(
    db: AsyncSession,
    order: Order,
    *,
    idempotency_key: str,
    actor: Actor = SYSTEM_ACTOR,
) -> None:
    """Deduct stock for every line of a freshly placed order.

    Steps per line:
    1. Reserve the units (conditional on availability).
    2. Confirm the sale, converting the hold into a deduction.
    3. Flip the product to out_of_stock if it just ran dry.
    4. Append a ``sale`` log keyed ``{idempotency_key}-{product_id}``.

    Raises ``InsufficientStockError`` naming the SKU when a line cannot be
    covered; the caller's transaction must then be rolled back. Does nothing
    when the order already has sale entries.
    """
    if await inventory_log.has_order_log(db, order.id, InventoryLogType.SALE):
        logger.info("Stock already confirmed for order %s", order.order_number)
        return

    for item in order.items:
        # The reserve UPDATE locks the row until commit, so the quantity it
        # returns is the true starting point for this sale.
        held = await inventory_ledger.reserve_stock(db, item.product_id, item.quantity)
        if held is None:
            raise InsufficientStockError(item.product_sku)
        previous_quantity = held.quantity

        sold = await inventory_ledger.confirm_sale(db, item.product_id, item.quantity)
        if sold is None:
            raise InsufficientStockError(item.product_sku)
        new_quantity = sold.quantity

        await inventory_ledger.mark_out_of_stock_if_depleted(db, item.product_id)
        # Backordered units past what was on hand are not deducted
        await inventory_log.append(
            db,
            product=sold,
            log_type=InventoryLogType.SALE,
            quantity=new_quantity - previous_quantity,
            previous_quantity=previous_quantity,
            new_quantity=new_quantity,
            actor=actor,
            order_id=order.id,
            user_id=order.user_id,
            idempotency_key=derive_key(idempotency_key, item.product_id),
            reason=f"Order {order.order_number}",
        )

    logger.info(
        "Confirmed stock for order %s (%d lines)", order.order_number, len(order.items)
    )


async def restore_order_stock(
    db: AsyncSession,
    order: Order,
    *,
    idempotency_key: str,
    actor: Actor,
    reason: str = "Order cancellation",
) -> None:
    """Put an order's units back on hand and log a ``return`` per line.

    Only the units the ``sale`` entry actually deducted go back on hand;
    ``sales_count`` still drops by the full line quantity. Does nothing when
    the order already has return entries.
    """
    if await inventory_log.has_order_log(db, order.id, InventoryLogType.RETURN):
        logger.info("Stock already restored for order %s", order.order_number)
        return

    for item in order.items:
        sale = await inventory_log.get_order_log(
            db, order.id, item.product_id, InventoryLogType.SALE
        )
        deducted = -sale.quantity if sale is not None else item.quantity

        product = await inventory_ledger.restore_stock(
            db, item.product_id, item.quantity, on_hand_quantity=deducted
        )
        if product is None:
            raise ProductNotFoundError(f"Product {item.product_sku} not found")
        new_quantity = product.quantity

        await inventory_ledger.reactivate_if_restocked(db, item.product_id)
        await inventory_log.append(
            db,
            product=product,
            log_type=InventoryLogType.RETURN,
            quantity=deducted,
            previous_quantity=new_quantity - deducted,
            new_quantity=new_quantity,
            actor=actor,
            order_id=order.id,
            user_id=order.user_id,
            idempotency_key=derive_key(idempotency_key, item.product_id, "return"),
            reason=reason,
        )

    logger.info("Restored stock for order %s", order.order_number)


async def restock_product(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    actor: Actor,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None,
) -> Product:
    """Add units on hand and log a ``restock``.

    A repeated ``idempotency_key`` returns the product untouched.
    """
    log_key = derive_key(idempotency_key, "restock") if idempotency_key else None
    if log_key and await inventory_log.get_log_by_key(db, log_key):
        logger.info("Restock %s already applied", log_key)
        product = await inventory_ledger.get_product(db, product_id)
        if product is None:
            raise ProductNotFoundError()
        return product

    product = await inventory_ledger.restock(db, product_id, quantity)
    if product is None:
        raise ProductNotFoundError()
    new_quantity = product.quantity

    await inventory_ledger.reactivate_if_restocked(db, product_id)
    await inventory_log.append(
        db,
        product=product,
        log_type=InventoryLogType.RESTOCK,
        quantity=quantity,
        previous_quantity=new_quantity - quantity,
        new_quantity=new_quantity,
        actor=actor,
        idempotency_key=log_key,
        reason=reason or "Restock",
        notes=notes,
    )

    logger.info(
        "Restocked %s by %d (now %d)",
        product.sku,
        quantity,
        new_quantity,
        extra={"extra_fields": {"performed_by": actor.id}},
    )
    return product


async def get_inventory_summary(db: AsyncSession, product_id: uuid.UUID) -> Product:
    product = await inventory_ledger.get_product(db, product_id)
    if product is None:
        raise ProductNotFoundError()
    return product


def admin_actor(user_id: str, name: Optional[str] = None) -> Actor:
    return Actor(PerformedByType.ADMIN, id=user_id, name=name)


def customer_actor(user_id: str) -> Actor:
    return Actor(PerformedByType.CUSTOMER, id=user_id)

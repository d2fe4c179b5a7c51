"""Inventory ledger: atomic stock counters on the product row.

Every mutation is a single ``UPDATE ... WHERE <precondition> RETURNING``. A
statement that matches no row returns ``None``, which callers treat as a
business failure (usually insufficient stock). Only infrastructure failures
raise. Nothing here reads a counter, changes it in Python and writes it back.
"""

import uuid
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.store_service.models import Product, ProductStatus
from sqlalchemy import case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def _apply(db: AsyncSession, stmt) -> Optional[Product]:
    result = await db.execute(
        stmt.returning(Product).execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Counter operations
# ---------------------------------------------------------------------------


async def reserve_stock(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> Optional[Product]:
    """Hold ``quantity`` units for a checkout in progress.

    Matches only an active product that is untracked, backorderable, or has
    at least ``quantity`` units available.
    """
    if quantity <= 0:
        return None
    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.status == ProductStatus.ACTIVE,
            or_(
                Product.track_quantity.is_(False),
                Product.allow_backorder.is_(True),
                Product.quantity - Product.reserved_quantity >= quantity,
            ),
        )
        .values(reserved_quantity=Product.reserved_quantity + quantity)
    )
    return await _apply(db, stmt)


async def release_reserved_stock(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> Optional[Product]:
    """Give back a hold. Never drives ``reserved_quantity`` below zero."""
    if quantity <= 0:
        return None
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.reserved_quantity >= quantity)
        .values(reserved_quantity=Product.reserved_quantity - quantity)
    )
    return await _apply(db, stmt)


async def confirm_sale(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> Optional[Product]:
    """Turn a hold into a permanent deduction.

    On-hand and reserved drop together and ``sales_count`` rises, all in one
    statement. Backordered units beyond what is on hand floor ``quantity``
    at zero instead of driving it negative.
    """
    if quantity <= 0:
        return None
    stmt = (
        update(Product)
        .where(Product.id == product_id, Product.reserved_quantity >= quantity)
        .values(
            quantity=case(
                (Product.quantity >= quantity, Product.quantity - quantity),
                else_=0,
            ),
            reserved_quantity=Product.reserved_quantity - quantity,
            sales_count=Product.sales_count + quantity,
            last_sold_at=utc_now(),
        )
    )
    return await _apply(db, stmt)


async def restore_stock(
    db: AsyncSession,
    product_id: uuid.UUID,
    quantity: int,
    *,
    on_hand_quantity: Optional[int] = None,
) -> Optional[Product]:
    """Put sold units back on hand (cancellation and refund path).

    ``sales_count`` drops by ``quantity``. ``on_hand_quantity`` is how many
    units the sale actually took off the shelf, which is less than
    ``quantity`` for backorder sales; it defaults to ``quantity``.
    """
    if quantity <= 0:
        return None
    returned = quantity if on_hand_quantity is None else max(on_hand_quantity, 0)
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(
            quantity=Product.quantity + returned,
            sales_count=case(
                (Product.sales_count >= quantity, Product.sales_count - quantity),
                else_=0,
            ),
        )
    )
    return await _apply(db, stmt)


async def restock(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> Optional[Product]:
    """Admin replenishment. Unconditional apart from the product existing."""
    if quantity <= 0:
        return None
    stmt = (
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + quantity, last_restock_at=utc_now())
    )
    return await _apply(db, stmt)


# ---------------------------------------------------------------------------
# Status flips
# ---------------------------------------------------------------------------


async def mark_out_of_stock_if_depleted(
    db: AsyncSession, product_id: uuid.UUID
) -> Optional[Product]:
    """Flip an active, tracked, non-backorder product at zero to out_of_stock."""
    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.status == ProductStatus.ACTIVE,
            Product.track_quantity.is_(True),
            Product.allow_backorder.is_(False),
            Product.quantity <= Product.reserved_quantity,
        )
        .values(status=ProductStatus.OUT_OF_STOCK)
    )
    product = await _apply(db, stmt)
    if product is not None:
        logger.info("Product %s is now out of stock", product.sku)
    return product


async def reactivate_if_restocked(
    db: AsyncSession, product_id: uuid.UUID
) -> Optional[Product]:
    """Flip an out_of_stock product back to active once units are available."""
    stmt = (
        update(Product)
        .where(
            Product.id == product_id,
            Product.status == ProductStatus.OUT_OF_STOCK,
            Product.quantity > Product.reserved_quantity,
        )
        .values(status=ProductStatus.ACTIVE)
    )
    product = await _apply(db, stmt)
    if product is not None:
        logger.info("Product %s is back in stock", product.sku)
    return product


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_product(db: AsyncSession, product_id: uuid.UUID) -> Optional[Product]:
    result = await db.execute(
        select(Product)
        .where(Product.id == product_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def check_availability(
    db: AsyncSession, product_id: uuid.UUID, quantity: int
) -> tuple[bool, int, Optional[str]]:
    """Return ``(available, available_quantity, reason)`` without holding stock."""
    product = await get_product(db, product_id)
    if product is None:
        return False, 0, "Product not found"
    if product.status != ProductStatus.ACTIVE:
        return False, 0, "Product is not available"
    if product.can_fulfil(quantity):
        return True, product.available_quantity, None
    available = product.available_quantity
    return False, available, f"Only {available} items available"


async def list_low_stock(db: AsyncSession, limit: int = 50) -> list[Product]:
    """Tracked products whose available stock is at or under their threshold."""
    available = Product.quantity - Product.reserved_quantity
    result = await db.execute(
        select(Product)
        .where(
            Product.track_quantity.is_(True),
            Product.status.in_([ProductStatus.ACTIVE, ProductStatus.OUT_OF_STOCK]),
            available <= Product.low_stock_threshold,
        )
        .order_by(available.asc(), Product.sku)
        .limit(limit)
    )
    return list(result.scalars().all())

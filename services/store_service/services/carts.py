"""Cart operations: ownership, line items, totals, guest expiry.

Adding to the cart checks availability but never holds stock; stock is only
deducted by checkout.
"""

import uuid
from typing import Optional

from libs.common.config import Settings, get_settings
from libs.common.datetime_utils import days_from_now, utc_now
from libs.common.logging import get_logger
from services.store_service.errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    ProductNotFoundError,
    ProductUnavailableError,
    QuantityLimitError,
    StoreError,
)
from services.store_service.models import Cart, CartItem, Product, ProductStatus
from services.store_service.services import inventory_ledger
from services.store_service.services.pricing import empty_cart_totals, recalculate_cart
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Lookup / creation
# ---------------------------------------------------------------------------


async def find_cart(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    for_update: bool = False,
) -> Optional[Cart]:
    if user_id:
        query = select(Cart).where(Cart.user_id == user_id)
    elif session_id:
        query = select(Cart).where(Cart.session_id == session_id, Cart.user_id.is_(None))
    else:
        return None
    if for_update:
        query = query.with_for_update()
    result = await db.execute(query.execution_options(populate_existing=True))
    return result.scalar_one_or_none()


async def _create_cart(db: AsyncSession, settings: Settings, **owner) -> Cart:
    cart = Cart(currency=settings.STORE_CURRENCY, items=[], **owner)
    if owner.get("session_id"):
        cart.expires_at = days_from_now(settings.GUEST_CART_EXPIRY_DAYS)
    try:
        async with db.begin_nested():
            db.add(cart)
    except IntegrityError:
        # Another request created it first
        existing = await find_cart(db, **owner)
        if existing is None:
            raise
        return existing
    return cart


async def _merge_guest_cart(
    db: AsyncSession, user_cart: Cart, guest_cart: Cart, settings: Settings
) -> None:
    by_product = {item.product_id: item for item in user_cart.items}
    for guest_item in guest_cart.items:
        existing = by_product.get(guest_item.product_id)
        if existing is not None:
            existing.quantity = min(
                existing.quantity + guest_item.quantity, settings.MAX_QUANTITY_PER_ITEM
            )
        else:
            user_cart.items.append(
                CartItem(
                    product_id=guest_item.product_id,
                    sku=guest_item.sku,
                    title=guest_item.title,
                    image_url=guest_item.image_url,
                    price=guest_item.price,
                    quantity=guest_item.quantity,
                    subtotal=guest_item.subtotal,
                )
            )
    recalculate_cart(user_cart, settings)
    await db.delete(guest_cart)
    await db.flush()
    logger.info("Merged guest cart %s into cart %s", guest_cart.id, user_cart.id)


async def get_or_create_cart(
    db: AsyncSession,
    *,
    user_id: Optional[str] = None,
    session_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> Cart:
    """Return the caller's cart, creating it on first use.

    When a signed-in user still sends their guest session id, the guest cart
    is folded into the user's cart and deleted.
    """
    settings = settings or get_settings()

    if user_id:
        cart = await find_cart(db, user_id=user_id)
        if cart is None:
            cart = await _create_cart(db, settings, user_id=user_id)
        if session_id:
            guest_cart = await find_cart(db, session_id=session_id)
            if guest_cart is not None and guest_cart.id != cart.id:
                await _merge_guest_cart(db, cart, guest_cart, settings)
        return cart

    if session_id:
        cart = await find_cart(db, session_id=session_id)
        if cart is None:
            cart = await _create_cart(db, settings, session_id=session_id)
        return cart

    raise StoreError("Session ID required for guest cart")


def _touch(cart: Cart, settings: Settings) -> None:
    if cart.user_id is None:
        cart.expires_at = days_from_now(settings.GUEST_CART_EXPIRY_DAYS)


def _find_item(cart: Cart, product_id: uuid.UUID) -> Optional[CartItem]:
    return next((item for item in cart.items if item.product_id == product_id), None)


def _check_purchasable(product: Product, quantity: int, settings: Settings) -> None:
    if product.status == ProductStatus.OUT_OF_STOCK:
        raise InsufficientStockError(product.sku)
    if product.status != ProductStatus.ACTIVE:
        raise ProductUnavailableError(product.sku)
    if quantity > settings.MAX_QUANTITY_PER_ITEM:
        raise QuantityLimitError(settings.MAX_QUANTITY_PER_ITEM)
    if not product.can_fulfil(quantity):
        raise InsufficientStockError(product.sku)


# ---------------------------------------------------------------------------
# Line items
# ---------------------------------------------------------------------------


async def add_item(
    db: AsyncSession,
    cart: Cart,
    product_id: uuid.UUID,
    quantity: int,
    settings: Optional[Settings] = None,
) -> Cart:
    """Add units of a product; an existing line has its quantity increased.

    The line takes the product's current price.
    """
    settings = settings or get_settings()
    product = await inventory_ledger.get_product(db, product_id)
    if product is None:
        raise ProductNotFoundError()

    item = _find_item(cart, product_id)
    new_quantity = quantity + (item.quantity if item else 0)
    _check_purchasable(product, new_quantity, settings)

    if item is None:
        cart.items.append(
            CartItem(
                product_id=product.id,
                sku=product.sku,
                title=product.title,
                image_url=product.image_url,
                price=product.price,
                quantity=new_quantity,
                subtotal=product.price * new_quantity,
            )
        )
    else:
        item.quantity = new_quantity
        item.price = product.price

    recalculate_cart(cart, settings)
    _touch(cart, settings)
    await db.flush()
    return cart


async def update_item_quantity(
    db: AsyncSession,
    cart: Cart,
    product_id: uuid.UUID,
    quantity: int,
    settings: Optional[Settings] = None,
) -> Cart:
    settings = settings or get_settings()
    item = _find_item(cart, product_id)
    if item is None:
        raise CartItemNotFoundError()

    product = await inventory_ledger.get_product(db, product_id)
    if product is None:
        raise ProductNotFoundError()
    _check_purchasable(product, quantity, settings)

    item.quantity = quantity
    recalculate_cart(cart, settings)
    _touch(cart, settings)
    await db.flush()
    return cart


async def remove_item(
    db: AsyncSession,
    cart: Cart,
    product_id: uuid.UUID,
    settings: Optional[Settings] = None,
) -> Cart:
    settings = settings or get_settings()
    item = _find_item(cart, product_id)
    if item is None:
        raise CartItemNotFoundError()

    cart.items.remove(item)
    recalculate_cart(cart, settings)
    _touch(cart, settings)
    await db.flush()
    return cart


async def clear_cart(db: AsyncSession, cart: Cart) -> Cart:
    """Drop every line and zero the derived totals."""
    cart.items.clear()
    empty_cart_totals(cart)
    await db.flush()
    return cart


# ---------------------------------------------------------------------------
# Expiry
# ---------------------------------------------------------------------------


async def delete_expired_guest_carts(db: AsyncSession) -> int:
    """Delete guest carts past ``expires_at``. Line items go with them."""
    result = await db.execute(
        delete(Cart)
        .where(
            Cart.user_id.is_(None),
            Cart.expires_at.is_not(None),
            Cart.expires_at < utc_now(),
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0

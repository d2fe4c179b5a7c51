"""Store cart router: cart contents for signed-in users and guests."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request, status
from libs.auth.dependencies import get_optional_user
from libs.auth.models import AuthUser
from libs.common.rate_limit import limiter
from libs.db.session import get_async_db
from services.store_service.models import Cart
from services.store_service.schemas import CartItemAdd, CartItemUpdate, CartResponse
from services.store_service.services import carts
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])


async def current_cart(
    user: Optional[AuthUser] = Depends(get_optional_user),
    session_id: Optional[str] = Header(None, alias="X-Session-ID", max_length=255),
    db: AsyncSession = Depends(get_async_db),
) -> Cart:
    """Cart for the signed-in user, or for the guest session header."""
    return await carts.get_or_create_cart(
        db,
        user_id=user.user_id if user else None,
        session_id=session_id,
    )


@router.get("/cart", response_model=CartResponse)
async def get_cart(
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_async_db),
):
    await db.commit()
    return CartResponse.model_validate(cart)


@router.post("/cart/items", response_model=CartResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def add_cart_item(
    request: Request,
    payload: CartItemAdd,
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_async_db),
):
    """Add a product; checks availability but does not hold stock."""
    await carts.add_item(db, cart, payload.product_id, payload.quantity)
    await db.commit()
    return CartResponse.model_validate(cart)


@router.patch("/cart/items/{product_id}", response_model=CartResponse)
async def update_cart_item(
    product_id: uuid.UUID,
    payload: CartItemUpdate,
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_async_db),
):
    await carts.update_item_quantity(db, cart, product_id, payload.quantity)
    await db.commit()
    return CartResponse.model_validate(cart)


@router.delete("/cart/items/{product_id}", response_model=CartResponse)
async def remove_cart_item(
    product_id: uuid.UUID,
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_async_db),
):
    await carts.remove_item(db, cart, product_id)
    await db.commit()
    return CartResponse.model_validate(cart)


@router.delete("/cart", response_model=CartResponse)
async def clear_cart(
    cart: Cart = Depends(current_cart),
    db: AsyncSession = Depends(get_async_db),
):
    await carts.clear_cart(db, cart)
    await db.commit()
    return CartResponse.model_validate(cart)

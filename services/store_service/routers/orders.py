"""Store orders router: checkout, order history, cancellation."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.rate_limit import limiter
from libs.db.config import Database
from libs.db.session import get_async_db, get_database
from services.store_service.models import OrderStatus
from services.store_service.routers._helpers import run_in_transaction
from services.store_service.schemas import (
    CancelOrderRequest,
    CheckoutRequest,
    CheckoutResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderSummaryResponse,
    Pagination,
)
from services.store_service.services import checkout as checkout_service
from services.store_service.services import orders as order_service
from services.store_service.services.stock_ops import customer_actor
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["store"])
settings = get_settings()


# ============================================================================
# CHECKOUT
# ============================================================================


@router.post(
    "/orders/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(settings.RATE_LIMIT_CHECKOUT)
async def checkout(
    request: Request,
    response: Response,
    payload: CheckoutRequest,
    current_user: AuthUser = Depends(get_current_user),
    database: Database = Depends(get_database),
):
    """Place an order from the current cart.

    201 for a new order, 200 when the idempotency key matches an order that
    was already placed.
    """
    result = await checkout_service.checkout(
        database, user_id=current_user.user_id, request=payload
    )
    if result.replayed:
        response.status_code = status.HTTP_200_OK
    return CheckoutResponse(
        message="Order already processed" if result.replayed else "Order created successfully",
        replayed=result.replayed,
        order=OrderSummaryResponse.model_validate(result.order),
    )


# ============================================================================
# ORDER HISTORY
# ============================================================================


@router.get("/orders", response_model=OrderListResponse)
async def list_my_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=50),
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    """List the current user's orders, newest first."""
    orders, total, total_pages = await order_service.list_orders_for_user(
        db, current_user.user_id, status=order_status, page=page, limit=limit
    )
    return OrderListResponse(
        orders=[OrderSummaryResponse.model_validate(order) for order in orders],
        pagination=Pagination(
            page=page, limit=limit, total=total, total_pages=total_pages
        ),
    )


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_my_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_service.get_order_for_user(db, order_id, current_user.user_id)
    return OrderDetailResponse.model_validate(order)


# ============================================================================
# CANCELLATION
# ============================================================================


@router.post("/orders/{order_id}/cancel", response_model=OrderDetailResponse)
@limiter.limit("10/minute")
async def cancel_my_order(
    request: Request,
    order_id: uuid.UUID,
    payload: Optional[CancelOrderRequest] = None,
    current_user: AuthUser = Depends(get_current_user),
    database: Database = Depends(get_database),
):
    """Cancel an order that has not shipped yet and return its stock."""
    payload = payload or CancelOrderRequest()

    async def work(db: AsyncSession):
        order, _ = await order_service.cancel_order(
            db,
            order_id=order_id,
            user_id=current_user.user_id,
            actor=customer_actor(current_user.user_id),
            reason=payload.reason,
            idempotency_key=payload.idempotency_key,
        )
        return OrderDetailResponse.model_validate(order)

    return await run_in_transaction(database, work, operation="cancel_order")

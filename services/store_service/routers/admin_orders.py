"""Admin store orders router: fulfilment status and payment updates."""

import uuid

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.config import Database
from libs.db.session import get_async_db, get_database
from services.store_service.routers._helpers import run_in_transaction
from services.store_service.schemas import (
    OrderDetailResponse,
    OrderStatusUpdate,
    PaymentStatusUpdate,
)
from services.store_service.services import orders as order_service
from services.store_service.services.stock_ops import admin_actor
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-store"])
logger = get_logger(__name__)


@router.get("/orders/{order_id}", response_model=OrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    order = await order_service.get_order(db, order_id)
    return OrderDetailResponse.model_validate(order)


@router.patch("/orders/{order_id}/status", response_model=OrderDetailResponse)
async def update_order_status(
    order_id: uuid.UUID,
    payload: OrderStatusUpdate,
    current_user: AuthUser = Depends(require_admin),
    database: Database = Depends(get_database),
):
    """Move an order along its fulfilment lifecycle."""

    async def work(db: AsyncSession):
        order = await order_service.transition_order_status(
            db,
            order_id,
            payload.status,
            actor=admin_actor(current_user.user_id, current_user.email),
            tracking_number=payload.tracking_number,
            carrier=payload.carrier,
            notes=payload.notes,
        )
        return OrderDetailResponse.model_validate(order)

    return await run_in_transaction(database, work, operation="update_order_status")


@router.post("/orders/{order_id}/payment", response_model=OrderDetailResponse)
async def update_payment(
    order_id: uuid.UUID,
    payload: PaymentStatusUpdate,
    current_user: AuthUser = Depends(require_admin),
    database: Database = Depends(get_database),
):
    """Record a payment status reported by the gateway or an operator.

    409 when a payment reference already belongs to another order.
    """

    async def work(db: AsyncSession):
        order, replayed = await order_service.update_payment_status(
            db,
            order_id,
            payload.payment_status,
            payment_intent_id=payload.payment_intent_id,
            payment_id=payload.payment_id,
            idempotency_key=payload.idempotency_key,
        )
        if replayed:
            logger.info("Payment update %s already applied", payload.idempotency_key)
        return OrderDetailResponse.model_validate(order)

    return await run_in_transaction(database, work, operation="update_payment")

"""Admin store inventory router: stock levels, restocks, audit trail."""

import math
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.config import Database
from libs.db.session import get_async_db, get_database
from services.store_service.models import InventoryLogType
from services.store_service.routers._helpers import run_in_transaction
from services.store_service.schemas import (
    AvailabilityResponse,
    InventoryLogListResponse,
    InventoryLogResponse,
    InventorySummaryResponse,
    Pagination,
    RestockRequest,
)
from services.store_service.services import inventory_ledger, inventory_log, stock_ops
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["admin-store"])
logger = get_logger(__name__)


# ============================================================================
# STOCK LEVELS
# ============================================================================


@router.get("/inventory/low-stock", response_model=list[InventorySummaryResponse])
async def list_low_stock(
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Tracked products at or under their low-stock threshold."""
    products = await inventory_ledger.list_low_stock(db, limit=limit)
    return [InventorySummaryResponse.model_validate(product) for product in products]


@router.get("/inventory/{product_id}", response_model=InventorySummaryResponse)
async def get_inventory(
    product_id: uuid.UUID,
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    product = await stock_ops.get_inventory_summary(db, product_id)
    return InventorySummaryResponse.model_validate(product)


@router.get("/inventory/{product_id}/availability", response_model=AvailabilityResponse)
async def get_availability(
    product_id: uuid.UUID,
    quantity: int = Query(1, ge=1),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    available, available_quantity, reason = await inventory_ledger.check_availability(
        db, product_id, quantity
    )
    return AvailabilityResponse(
        available=available, available_quantity=available_quantity, reason=reason
    )


# ============================================================================
# RESTOCK
# ============================================================================


@router.post("/inventory/{product_id}/restock", response_model=InventorySummaryResponse)
async def restock_product(
    product_id: uuid.UUID,
    payload: RestockRequest,
    current_user: AuthUser = Depends(require_admin),
    database: Database = Depends(get_database),
):
    """Add stock on hand. Repeating an idempotency key is a no-op."""

    async def work(db: AsyncSession):
        product = await stock_ops.restock_product(
            db,
            product_id,
            payload.quantity,
            actor=stock_ops.admin_actor(current_user.user_id, current_user.email),
            reason=payload.reason,
            notes=payload.notes,
            idempotency_key=payload.idempotency_key,
        )
        return InventorySummaryResponse.model_validate(product)

    return await run_in_transaction(database, work, operation="restock_product")


# ============================================================================
# AUDIT TRAIL
# ============================================================================


@router.get("/inventory/{product_id}/logs", response_model=InventoryLogListResponse)
async def list_inventory_logs(
    product_id: uuid.UUID,
    log_type: Optional[InventoryLogType] = Query(None, alias="type"),
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    current_user: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    await stock_ops.get_inventory_summary(db, product_id)
    logs, total = await inventory_log.list_logs(
        db, product_id, log_type=log_type, offset=(page - 1) * limit, limit=limit
    )
    return InventoryLogListResponse(
        logs=[InventoryLogResponse.model_validate(entry) for entry in logs],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )

"""Inventory log: append-only audit trail for stock mutations."""

import uuid
from dataclasses import dataclass
from typing import Optional

from libs.common.logging import get_logger
from services.store_service.models import (
    InventoryLog,
    InventoryLogType,
    PerformedByType,
    Product,
)
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class Actor:
    """Who caused a stock change."""

    type: PerformedByType = PerformedByType.SYSTEM
    id: Optional[str] = None
    name: Optional[str] = None


SYSTEM_ACTOR = Actor(PerformedByType.SYSTEM, name="Order Confirmation")


async def get_log_by_key(
    db: AsyncSession, idempotency_key: str
) -> Optional[InventoryLog]:
    result = await db.execute(
        select(InventoryLog).where(InventoryLog.idempotency_key == idempotency_key)
    )
    return result.scalar_one_or_none()


async def has_order_log(
    db: AsyncSession, order_id: uuid.UUID, log_type: InventoryLogType
) -> bool:
    """Whether any entry of ``log_type`` was already written for the order."""
    result = await db.execute(
        select(InventoryLog.id)
        .where(InventoryLog.order_id == order_id, InventoryLog.type == log_type)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_order_log(
    db: AsyncSession,
    order_id: uuid.UUID,
    product_id: uuid.UUID,
    log_type: InventoryLogType,
) -> Optional[InventoryLog]:
    result = await db.execute(
        select(InventoryLog)
        .where(
            InventoryLog.order_id == order_id,
            InventoryLog.product_id == product_id,
            InventoryLog.type == log_type,
        )
        .order_by(InventoryLog.created_at)
        .limit(1)
    )
    return result.scalars().first()


async def append(
    db: AsyncSession,
    *,
    product: Product,
    log_type: InventoryLogType,
    quantity: int,
    previous_quantity: int,
    new_quantity: int,
    actor: Actor = SYSTEM_ACTOR,
    order_id: Optional[uuid.UUID] = None,
    user_id: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    reason: Optional[str] = None,
    notes: Optional[str] = None,
) -> InventoryLog:
    """Insert one log entry.

    With an ``idempotency_key`` that is already recorded, the existing entry
    is returned and nothing is written. The insert runs in a savepoint so a
    concurrent writer winning the unique key does not poison the caller's
    transaction.
    """
    if idempotency_key:
        existing = await get_log_by_key(db, idempotency_key)
        if existing is not None:
            logger.info("Inventory log %s already recorded", idempotency_key)
            return existing

    entry = InventoryLog(
        product_id=product.id,
        product_sku=product.sku,
        product_title=product.title,
        type=log_type,
        quantity=quantity,
        previous_quantity=previous_quantity,
        new_quantity=new_quantity,
        reason=reason,
        notes=notes,
        order_id=order_id,
        user_id=user_id,
        idempotency_key=idempotency_key,
        performed_by_type=actor.type,
        performed_by_id=actor.id,
        performed_by_name=actor.name,
    )

    if not idempotency_key:
        db.add(entry)
        await db.flush()
        return entry

    try:
        async with db.begin_nested():
            db.add(entry)
    except IntegrityError:
        existing = await get_log_by_key(db, idempotency_key)
        if existing is None:
            raise
        logger.info("Inventory log %s recorded concurrently", idempotency_key)
        return existing
    return entry


async def list_logs(
    db: AsyncSession,
    product_id: uuid.UUID,
    *,
    log_type: Optional[InventoryLogType] = None,
    offset: int = 0,
    limit: int = 50,
) -> tuple[list[InventoryLog], int]:
    """Newest first, with the unpaginated total."""
    filters = [InventoryLog.product_id == product_id]
    if log_type is not None:
        filters.append(InventoryLog.type == log_type)

    total = await db.scalar(select(func.count(InventoryLog.id)).where(*filters))
    result = await db.execute(
        select(InventoryLog)
        .where(*filters)
        .order_by(InventoryLog.created_at.desc(), InventoryLog.id)
        .offset(offset)
        .limit(limit)
    )
    return list(result.scalars().all()), total or 0

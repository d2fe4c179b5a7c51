"""Store inventory models: append-only stock audit trail."""

import uuid
from datetime import datetime
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.store_service.models.enums import (
    InventoryLogType,
    PerformedByType,
    enum_values,
)
from sqlalchemy import CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

# ============================================================================
# INVENTORY LOG
# ============================================================================


class InventoryLog(Base):
    """One row per stock mutation. Rows are never updated or deleted."""

    __tablename__ = "store_inventory_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    product_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("store_products.id"), nullable=False
    )
    # Snapshot so the trail stays readable if the product is renamed
    product_sku: Mapped[str] = mapped_column(String(64), nullable=False)
    product_title: Mapped[str] = mapped_column(String(200), nullable=False)

    type: Mapped[InventoryLogType] = mapped_column(
        SAEnum(
            InventoryLogType,
            values_callable=enum_values,
            name="store_inventory_log_type_enum",
        ),
        nullable=False,
    )
    quantity: Mapped[int] = mapped_column(
        Integer, nullable=False
    )  # Signed delta: positive adds stock, negative removes it
    previous_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    new_quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("store_orders.id"), nullable=True, index=True
    )
    user_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    idempotency_key: Mapped[Optional[str]] = mapped_column(
        String(255), unique=True, nullable=True
    )

    performed_by_type: Mapped[PerformedByType] = mapped_column(
        SAEnum(
            PerformedByType,
            values_callable=enum_values,
            name="store_performed_by_type_enum",
        ),
        default=PerformedByType.SYSTEM,
        nullable=False,
    )
    performed_by_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    performed_by_name: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )

    __table_args__ = (
        CheckConstraint("previous_quantity >= 0", name="non_negative_previous"),
        CheckConstraint("new_quantity >= 0", name="non_negative_new"),
        Index("ix_store_inventory_logs_product_created", "product_id", "created_at"),
        Index("ix_store_inventory_logs_order_type", "order_id", "type"),
    )

    product = relationship("Product", lazy="raise")

    def __repr__(self):
        return f"<InventoryLog {self.type} {self.product_sku} qty={self.quantity}>"


class ImmutableRecordError(RuntimeError):
    pass


@event.listens_for(InventoryLog, "before_update")
def _reject_update(mapper, connection, target):
    raise ImmutableRecordError("Inventory log entries cannot be modified")


@event.listens_for(InventoryLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise ImmutableRecordError("Inventory log entries cannot be deleted")

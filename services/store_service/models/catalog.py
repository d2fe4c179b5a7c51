"""Store catalog models: products with their embedded inventory counters."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.db.base import Base
from services.store_service.models.enums import ProductStatus, enum_values
from sqlalchemy import Boolean, CheckConstraint, DateTime
from sqlalchemy import Enum as SAEnum
from sqlalchemy import Integer, Numeric, String, Text, Uuid, false, true
from sqlalchemy.orm import Mapped, mapped_column

# ============================================================================
# CATALOG MODELS
# ============================================================================


class Product(Base):
    """Sellable product.

    Stock counters live on the product row. They are only ever changed by the
    conditional UPDATE statements in ``services.inventory_ledger``.
    """

    __tablename__ = "store_products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sku: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    slug: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    compare_at_price: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    currency: Mapped[str] = mapped_column(
        String(3), default="INR", server_default="INR", nullable=False
    )

    status: Mapped[ProductStatus] = mapped_column(
        SAEnum(
            ProductStatus,
            values_callable=enum_values,
            name="store_product_status_enum",
        ),
        default=ProductStatus.DRAFT,
        server_default="draft",
        nullable=False,
    )

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------
    quantity: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    reserved_quantity: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    track_quantity: Mapped[bool] = mapped_column(
        Boolean, default=True, server_default=true(), nullable=False
    )
    allow_backorder: Mapped[bool] = mapped_column(
        Boolean, default=False, server_default=false(), nullable=False
    )
    low_stock_threshold: Mapped[int] = mapped_column(
        Integer, default=5, server_default="5", nullable=False
    )
    sales_count: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )
    last_restock_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_sold_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now
    )

    # reserved_quantity may exceed quantity for backorders, so only the
    # lower bounds are enforced.
    __table_args__ = (
        CheckConstraint("quantity >= 0", name="non_negative_quantity"),
        CheckConstraint("reserved_quantity >= 0", name="non_negative_reserved"),
        CheckConstraint("sales_count >= 0", name="non_negative_sales"),
        CheckConstraint("price >= 0", name="non_negative_price"),
    )

    @property
    def available_quantity(self) -> int:
        return max(0, self.quantity - self.reserved_quantity)

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.available_quantity <= self.low_stock_threshold

    @property
    def is_out_of_stock(self) -> bool:
        return (
            self.track_quantity
            and not self.allow_backorder
            and self.available_quantity == 0
        )

    def can_fulfil(self, quantity: int) -> bool:
        """Whether ``quantity`` units can be sold right now."""
        return (
            not self.track_quantity
            or self.allow_backorder
            or self.available_quantity >= quantity
        )

    def __repr__(self):
        return f"<Product {self.sku} qty={self.quantity} reserved={self.reserved_quantity}>"

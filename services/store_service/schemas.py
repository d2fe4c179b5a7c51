"""Pydantic schemas for store service."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from services.store_service.models import (
    InventoryLogType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PerformedByType,
    ProductStatus,
)


class RequestModel(BaseModel):
    """Request bodies accept both camelCase and snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ============================================================================
# ADDRESS SCHEMAS
# ============================================================================


class AddressIn(RequestModel):
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    company: Optional[str] = Field(None, max_length=100)
    address_line1: str = Field(..., min_length=1, max_length=200)
    address_line2: Optional[str] = Field(None, max_length=200)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(
        ...,
        min_length=3,
        max_length=20,
        validation_alias=AliasChoices("postalCode", "postal_code", "zipCode"),
    )
    country: str = Field("India", min_length=1, max_length=100)
    phone: str = Field(..., pattern=r"^\+?[0-9\s\-()]{7,20}$")
    country_code: str = Field("+91", pattern=r"^\+\d{1,4}$")


class AddressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    first_name: str
    last_name: str
    company: Optional[str] = None
    address_line1: str
    address_line2: Optional[str] = None
    city: str
    state: str
    postal_code: str
    country: str
    phone: str
    country_code: str


# ============================================================================
# CART SCHEMAS
# ============================================================================


class CartItemAdd(RequestModel):
    product_id: uuid.UUID
    quantity: int = Field(1, ge=1)


class CartItemUpdate(RequestModel):
    quantity: int = Field(..., ge=1)


class CartItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    sku: str
    title: str
    image_url: Optional[str] = None
    price: Decimal
    quantity: int
    subtotal: Decimal


class CartResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    items: list[CartItemResponse] = []
    item_count: int = 0
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    currency: str
    expires_at: Optional[datetime] = None


# ============================================================================
# ORDER SCHEMAS
# ============================================================================


class CheckoutRequest(RequestModel):
    shipping_address: AddressIn
    billing_address: AddressIn
    payment_method: PaymentMethod
    customer_notes: Optional[str] = Field(None, max_length=1000)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=100)
    save_shipping_address: bool = False
    save_billing_address: bool = False


class OrderItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: uuid.UUID
    product_sku: str
    product_title: str
    image_url: Optional[str] = None
    quantity: int
    price: Decimal
    total: Decimal


class OrderSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    total: Decimal
    currency: str
    items: list[OrderItemResponse] = []
    created_at: datetime


class OrderDetailResponse(OrderSummaryResponse):
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    payment_method: PaymentMethod
    shipping_address: AddressResponse
    billing_address: AddressResponse
    customer_notes: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier: Optional[str] = None
    paid_at: Optional[datetime] = None
    shipped_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancelled_reason: Optional[str] = None
    updated_at: datetime


class CheckoutResponse(BaseModel):
    message: str
    replayed: bool = False
    order: OrderSummaryResponse


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class OrderListResponse(BaseModel):
    orders: list[OrderSummaryResponse]
    pagination: Pagination


class CancelOrderRequest(RequestModel):
    reason: Optional[str] = Field(None, max_length=500)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=100)


class OrderStatusUpdate(RequestModel):
    status: OrderStatus
    tracking_number: Optional[str] = Field(None, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = Field(None, max_length=2000)


class PaymentStatusUpdate(RequestModel):
    payment_status: PaymentStatus
    payment_intent_id: Optional[str] = Field(None, max_length=255)
    payment_id: Optional[str] = Field(None, max_length=255)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=100)


# ============================================================================
# INVENTORY SCHEMAS
# ============================================================================


class RestockRequest(RequestModel):
    quantity: int = Field(..., ge=1, le=10000)
    reason: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=2000)
    idempotency_key: Optional[str] = Field(None, min_length=1, max_length=100)


class InventorySummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: uuid.UUID = Field(validation_alias="id")
    sku: str
    title: str
    status: ProductStatus
    quantity: int
    reserved_quantity: int
    available_quantity: int
    track_quantity: bool
    allow_backorder: bool
    low_stock_threshold: int
    is_low_stock: bool
    is_out_of_stock: bool
    sales_count: int


class AvailabilityResponse(BaseModel):
    available: bool
    available_quantity: int
    reason: Optional[str] = None


class InventoryLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    product_id: uuid.UUID
    product_sku: str
    type: InventoryLogType
    quantity: int
    previous_quantity: int
    new_quantity: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    order_id: Optional[uuid.UUID] = None
    performed_by_type: PerformedByType
    performed_by_id: Optional[str] = None
    performed_by_name: Optional[str] = None
    created_at: datetime


class InventoryLogListResponse(BaseModel):
    logs: list[InventoryLogResponse]
    pagination: Pagination

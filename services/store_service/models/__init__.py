"""Store Service models package."""

from services.store_service.models.catalog import Product
from services.store_service.models.commerce import (
    Cart,
    CartItem,
    Order,
    OrderCounter,
    OrderItem,
    OrderPaymentEvent,
)
from services.store_service.models.customer import Customer, CustomerAddress
from services.store_service.models.enums import (
    AddressType,
    InventoryLogType,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    PerformedByType,
    ProductStatus,
)
from services.store_service.models.inventory import InventoryLog

__all__ = [
    "AddressType",
    "Cart",
    "CartItem",
    "Customer",
    "CustomerAddress",
    "InventoryLog",
    "InventoryLogType",
    "Order",
    "OrderCounter",
    "OrderItem",
    "OrderPaymentEvent",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "PerformedByType",
    "Product",
    "ProductStatus",
]

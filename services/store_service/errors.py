"""Typed store errors.

Each one is an ``HTTPException`` so routers can let it propagate straight to
the shared JSON error handler, while services and tests can still catch the
specific business failure.
"""

from typing import Optional

from fastapi import HTTPException, status


class StoreError(HTTPException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)


# ---------------------------------------------------------------------------
# Checkout business rules (400, never retried)
# ---------------------------------------------------------------------------


class CheckoutError(StoreError):
    default_detail = "Checkout failed"


class EmptyCartError(CheckoutError):
    default_detail = "Cart is empty"


class ProductUnavailableError(CheckoutError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Product {sku} is no longer available")


class InsufficientStockError(CheckoutError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Insufficient stock for {sku}")


class PriceChangedError(CheckoutError):
    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(f"Price has changed for {sku}. Please refresh your cart.")


class InvalidOrderTotalError(CheckoutError):
    default_detail = "Order total must be greater than zero"


class QuantityLimitError(StoreError):
    def __init__(self, limit: int):
        super().__init__(f"Maximum quantity per item is {limit}")


# ---------------------------------------------------------------------------
# Order aggregate
# ---------------------------------------------------------------------------


class InvalidOrderError(StoreError):
    """Structural problem with an order being built (no items, bad address)."""

    default_detail = "Order is invalid"


class InvalidStatusTransitionError(StoreError):
    def __init__(self, field: str, current: str, target: str):
        super().__init__(f"Cannot change {field} from {current} to {target}")


class OrderCancellationError(StoreError):
    default_detail = "Order cannot be cancelled"


class DuplicatePaymentError(StoreError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Payment has already been applied to another order"


class IdempotencyConflictError(StoreError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Idempotency key was already used for a different request"


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class NotFoundError(StoreError):
    status_code = status.HTTP_404_NOT_FOUND


class OrderNotFoundError(NotFoundError):
    default_detail = "Order not found"


class ProductNotFoundError(NotFoundError):
    default_detail = "Product not found"


class CartItemNotFoundError(NotFoundError):
    default_detail = "Item not in cart"

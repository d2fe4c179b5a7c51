"""
Model factories and request payloads for creating valid test data.

Every model factory produces a valid, insertable SQLAlchemy instance.
Override any field via kwargs.

Usage:
    product = ProductFactory.create(price=Decimal("1000.00"), quantity=5)
    db_session.add(product)
    await db_session.commit()
"""

import uuid
from decimal import Decimal

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _uuid() -> uuid.UUID:
    return uuid.uuid4()


def _unique_sku() -> str:
    return f"SKU-{uuid.uuid4().hex[:8].upper()}"


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class ProductFactory:
    @staticmethod
    def create(**overrides):
        from services.store_service.models import Product, ProductStatus

        sku = overrides.pop("sku", None) or _unique_sku()
        defaults = {
            "id": _uuid(),
            "sku": sku,
            "slug": sku.lower(),
            "title": f"Product {sku}",
            "price": Decimal("1000.00"),
            "currency": "INR",
            "status": ProductStatus.ACTIVE,
            "quantity": 5,
            "reserved_quantity": 0,
            "track_quantity": True,
            "allow_backorder": False,
            "low_stock_threshold": 5,
            "sales_count": 0,
        }
        defaults.update(overrides)
        return Product(**defaults)


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


class CartFactory:
    @staticmethod
    def create(user_id=None, lines=(), **overrides):
        """``lines`` holds ``(product, quantity)`` or ``(product, quantity, price)``."""
        from services.store_service.models import Cart, CartItem

        items = []
        for line in lines:
            product, quantity = line[0], line[1]
            price = line[2] if len(line) > 2 else product.price
            items.append(
                CartItem(
                    product_id=product.id,
                    sku=product.sku,
                    title=product.title,
                    price=price,
                    quantity=quantity,
                    subtotal=price * quantity,
                )
            )

        defaults = {
            "id": _uuid(),
            "user_id": user_id or f"user-{uuid.uuid4().hex[:8]}",
            "currency": "INR",
            "items": items,
        }
        defaults.update(overrides)
        return Cart(**defaults)


# ---------------------------------------------------------------------------
# Request payloads
# ---------------------------------------------------------------------------


def address_payload(**overrides) -> dict:
    data = {
        "firstName": "Asha",
        "lastName": "Rao",
        "addressLine1": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "postalCode": "560001",
        "country": "India",
        "phone": "9876543210",
        "countryCode": "+91",
    }
    data.update(overrides)
    return data


def checkout_payload(**overrides) -> dict:
    data = {
        "shippingAddress": address_payload(),
        "billingAddress": address_payload(),
        "paymentMethod": "cod",
    }
    data.update(overrides)
    return data

"""Unit tests for cart operations and the customer address book."""

from datetime import timedelta
from decimal import Decimal

import pytest
from libs.common.datetime_utils import utc_now
from services.store_service.errors import (
    CartItemNotFoundError,
    InsufficientStockError,
    ProductUnavailableError,
    QuantityLimitError,
    StoreError,
)
from services.store_service.models import AddressType, ProductStatus
from services.store_service.services import carts, customers, inventory_ledger
from tests.factories import ProductFactory

ADDRESS = {
    "first_name": "Asha",
    "last_name": "Rao",
    "company": None,
    "address_line1": "12 MG Road",
    "address_line2": None,
    "city": "Bengaluru",
    "state": "Karnataka",
    "postal_code": "560001",
    "country": "India",
    "phone": "9876543210",
    "country_code": "+91",
}


async def _make_product(db, **overrides):
    product = ProductFactory.create(**overrides)
    db.add(product)
    await db.commit()
    return product


# ---------------------------------------------------------------------------
# Carts
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_guest_cart_needs_session_and_expires(db_session):
    with pytest.raises(StoreError):
        await carts.get_or_create_cart(db_session)

    cart = await carts.get_or_create_cart(db_session, session_id="guest-1")
    await db_session.commit()

    assert cart.user_id is None
    assert cart.expires_at is not None
    assert (await carts.get_or_create_cart(db_session, session_id="guest-1")).id == cart.id


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_item_merges_lines_and_does_not_hold_stock(db_session):
    product = await _make_product(db_session, quantity=5)
    cart = await carts.get_or_create_cart(db_session, user_id="buyer-1")

    await carts.add_item(db_session, cart, product.id, 1)
    await carts.add_item(db_session, cart, product.id, 1)
    await db_session.commit()

    assert len(cart.items) == 1
    assert cart.items[0].quantity == 2
    assert cart.total == Decimal("2460.00")
    product = await inventory_ledger.get_product(db_session, product.id)
    assert product.reserved_quantity == 0


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_item_checks_availability_and_limits(db_session):
    scarce = await _make_product(db_session, quantity=1)
    draft = await _make_product(db_session, status=ProductStatus.DRAFT)
    plenty = await _make_product(db_session, quantity=1000)
    cart = await carts.get_or_create_cart(db_session, user_id="buyer-1")

    with pytest.raises(InsufficientStockError):
        await carts.add_item(db_session, cart, scarce.id, 2)
    with pytest.raises(ProductUnavailableError):
        await carts.add_item(db_session, cart, draft.id, 1)
    with pytest.raises(QuantityLimitError):
        await carts.add_item(db_session, cart, plenty.id, 101)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_add_sold_out_product_reports_insufficient_stock(db_session):
    sold_out = await _make_product(
        db_session, sku="SKU-SOLD", quantity=0, status=ProductStatus.OUT_OF_STOCK
    )
    cart = await carts.get_or_create_cart(db_session, user_id="buyer-1")

    with pytest.raises(InsufficientStockError) as exc_info:
        await carts.add_item(db_session, cart, sold_out.id, 1)

    assert exc_info.value.sku == "SKU-SOLD"


@pytest.mark.asyncio
@pytest.mark.unit
async def test_update_and_remove_items(db_session):
    product = await _make_product(db_session, quantity=10, price=Decimal("100.00"))
    cart = await carts.get_or_create_cart(db_session, user_id="buyer-1")
    await carts.add_item(db_session, cart, product.id, 1)

    await carts.update_item_quantity(db_session, cart, product.id, 4)
    assert cart.subtotal == Decimal("400.00")

    await carts.remove_item(db_session, cart, product.id)
    await db_session.commit()
    assert cart.items == []
    assert cart.total == Decimal("0.00")

    with pytest.raises(CartItemNotFoundError):
        await carts.remove_item(db_session, cart, product.id)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_guest_cart_merges_into_user_cart(db_session):
    product = await _make_product(db_session, quantity=10)
    guest = await carts.get_or_create_cart(db_session, session_id="guest-1")
    await carts.add_item(db_session, guest, product.id, 2)
    await db_session.commit()

    cart = await carts.get_or_create_cart(
        db_session, user_id="buyer-1", session_id="guest-1"
    )
    await db_session.commit()

    assert cart.user_id == "buyer-1"
    assert [item.quantity for item in cart.items] == [2]
    assert await carts.find_cart(db_session, session_id="guest-1") is None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_delete_expired_guest_carts(db_session):
    stale = await carts.get_or_create_cart(db_session, session_id="stale")
    await carts.get_or_create_cart(db_session, session_id="fresh")
    await carts.get_or_create_cart(db_session, user_id="buyer-1")
    stale.expires_at = utc_now() - timedelta(days=1)
    await db_session.commit()

    deleted = await carts.delete_expired_guest_carts(db_session)
    await db_session.commit()

    assert deleted == 1
    assert await carts.find_cart(db_session, session_id="fresh") is not None


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_record_customer_order_accumulates(db_session):
    await customers.record_customer_order(db_session, "buyer-1", Decimal("100.50"))
    customer = await customers.record_customer_order(db_session, "buyer-1", Decimal("20.00"))
    await db_session.commit()

    assert customer.total_orders == 2
    assert customer.total_spent == Decimal("120.50")
    assert customer.last_order_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_save_address_skips_duplicates_and_sets_default(db_session):
    customer = await customers.get_or_create_customer(db_session, "buyer-1")

    first = await customers.save_address(db_session, customer, ADDRESS, AddressType.SHIPPING)
    duplicate = await customers.save_address(
        db_session, customer, dict(ADDRESS), AddressType.BILLING
    )
    other = await customers.save_address(
        db_session, customer, {**ADDRESS, "city": "Mysuru"}, AddressType.BILLING
    )
    await db_session.commit()

    assert first.is_default is True
    assert duplicate is None
    assert other.is_default is False
    assert len(customer.addresses) == 2


@pytest.mark.asyncio
@pytest.mark.unit
async def test_save_checkout_addresses_respects_flags(db_session):
    saved = await customers.save_checkout_addresses(
        db_session,
        "buyer-1",
        shipping_address=ADDRESS,
        billing_address=ADDRESS,
        save_shipping=False,
        save_billing=False,
    )
    assert saved == []
    assert await customers.get_customer(db_session, "buyer-1") is None

    saved = await customers.save_checkout_addresses(
        db_session,
        "buyer-1",
        shipping_address=ADDRESS,
        billing_address=ADDRESS,
        save_shipping=True,
        save_billing=True,
    )
    await db_session.commit()
    assert [entry.type for entry in saved] == [AddressType.SHIPPING]

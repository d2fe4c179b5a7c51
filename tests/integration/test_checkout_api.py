"""Integration tests for POST /store/orders/checkout."""

import asyncio
from decimal import Decimal

import pytest
from libs.common.datetime_utils import utc_now
from services.store_service.models import InventoryLog, Order, ProductStatus
from services.store_service.services import carts, customers, inventory_ledger, stock_ops
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select
from tests.conftest import auth_headers, make_user, seed_cart, seed_product
from tests.factories import address_payload, checkout_payload

CHECKOUT_URL = "/store/orders/checkout"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _count(database, model) -> int:
    async with database.session() as db:
        return await db.scalar(select(func.count(model.id)))


async def _product(database, product_id):
    async with database.session() as db:
        return await inventory_ledger.get_product(db, product_id)


async def _cart(database, user_id):
    async with database.session() as db:
        return await carts.find_cart(db, user_id=user_id)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_places_order_and_deducts_stock(client, database):
    """Price 1000 x 2 with stock 5: total includes 18% tax and flat shipping."""
    user = make_user()
    product = await seed_product(database, sku="SKU-TEE", price=Decimal("1000.00"), quantity=5)
    await seed_cart(database, user.user_id, [(product, 2)])

    response = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(user))

    assert response.status_code == 201, response.text
    data = response.json()
    assert data["message"] == "Order created successfully"
    assert data["replayed"] is False
    order = data["order"]
    assert order["status"] == "pending"
    assert order["payment_status"] == "pending"
    assert Decimal(order["total"]) == Decimal("2460.00")
    assert order["items"][0]["product_sku"] == "SKU-TEE"
    assert order["items"][0]["quantity"] == 2

    product = await _product(database, product.id)
    assert product.quantity == 3
    assert product.reserved_quantity == 0
    assert product.sales_count == 2

    cart = await _cart(database, user.user_id)
    assert cart.items == []
    assert cart.total == Decimal("0.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_records_sale_log_and_customer_stats(client, database):
    user = make_user()
    product = await seed_product(database, quantity=5)
    await seed_cart(database, user.user_id, [(product, 2)])

    response = await client.post(
        CHECKOUT_URL,
        json=checkout_payload(saveShippingAddress=True, idempotencyKey="order-key-1"),
        headers=auth_headers(user),
    )
    assert response.status_code == 201, response.text

    async with database.session() as db:
        log = await db.scalar(select(InventoryLog).where(InventoryLog.product_id == product.id))
        customer = await customers.get_customer(db, user.user_id)

    assert log.type.value == "sale"
    assert (log.quantity, log.previous_quantity, log.new_quantity) == (-2, 5, 3)
    assert log.idempotency_key == f"order-key-1-{product.id}"
    assert customer.total_orders == 1
    assert customer.total_spent == Decimal("2460.00")
    assert len(customer.addresses) == 1
    assert customer.addresses[0].is_default is True


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_sanitizes_address_and_notes(client, database):
    user = make_user()
    product = await seed_product(database)
    await seed_cart(database, user.user_id, [(product, 1)])

    payload = checkout_payload(
        shippingAddress=address_payload(addressLine1="<b>12 MG Road</b>"),
        customerNotes="<script>x()</script>Ring the bell",
    )
    response = await client.post(CHECKOUT_URL, json=payload, headers=auth_headers(user))
    assert response.status_code == 201, response.text

    async with database.session() as db:
        order = await db.scalar(select(Order))
    assert order.shipping_address["address_line1"] == "12 MG Road"
    assert order.customer_notes == "Ring the bell"


# ---------------------------------------------------------------------------
# Business rule failures
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_rejects_price_drift(client, database):
    """Cart captured 1000, live price is now 1200 (20% drift)."""
    user = make_user()
    product = await seed_product(database, sku="SKU-DRIFT", price=Decimal("1200.00"))
    await seed_cart(database, user.user_id, [(product, 1, Decimal("1000.00"))])

    response = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["error"] == (
        "Price has changed for SKU-DRIFT. Please refresh your cart."
    )
    assert await _count(database, Order) == 0


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_tolerates_small_price_change(client, database):
    user = make_user()
    product = await seed_product(database, price=Decimal("1050.00"))
    await seed_cart(database, user.user_id, [(product, 1, Decimal("1000.00"))])

    response = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(user))

    assert response.status_code == 201, response.text
    # The order keeps the price the customer saw
    assert Decimal(response.json()["order"]["items"][0]["price"]) == Decimal("1000.00")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_out_of_stock_leaves_cart_untouched(client, database):
    user = make_user()
    product = await seed_product(database, sku="SKU-GONE", quantity=0, allow_backorder=False)
    await seed_cart(database, user.user_id, [(product, 1)])

    response = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["error"] == "Insufficient stock for SKU-GONE"
    assert await _count(database, Order) == 0
    assert await _count(database, InventoryLog) == 0
    cart = await _cart(database, user.user_id)
    assert [(item.sku, item.quantity) for item in cart.items] == [("SKU-GONE", 1)]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_inactive_product_is_unavailable(client, database):
    user = make_user()
    product = await seed_product(database, sku="SKU-OLD", status=ProductStatus.ARCHIVED)
    await seed_cart(database, user.user_id, [(product, 1)])

    response = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(user))

    assert response.status_code == 400
    assert response.json()["error"] == "Product SKU-OLD is no longer available"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_empty_cart(client, database):
    response = await client.post(
        CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(make_user())
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Cart is empty"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_requires_authentication(client):
    response = await client.post(CHECKOUT_URL, json=checkout_payload())

    assert response.status_code == 401
    assert response.json() == {"error": "Not authenticated"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_validation_errors_list_fields(client):
    payload = checkout_payload(paymentMethod="cheque")
    del payload["shippingAddress"]

    response = await client.post(
        CHECKOUT_URL, json=payload, headers=auth_headers(make_user())
    )

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed"
    fields = {detail["field"] for detail in body["details"]}
    assert {"shippingAddress", "paymentMethod"} <= fields


# ---------------------------------------------------------------------------
# Idempotency / concurrency
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_replay_with_same_key(client, database):
    user = make_user()
    product = await seed_product(database, quantity=5)
    await seed_cart(database, user.user_id, [(product, 2)])
    payload = checkout_payload(idempotencyKey="abc")

    first = await client.post(CHECKOUT_URL, json=payload, headers=auth_headers(user))
    logs_after_first = await _count(database, InventoryLog)
    second = await client.post(CHECKOUT_URL, json=payload, headers=auth_headers(user))

    assert first.status_code == 201, first.text
    assert second.status_code == 200, second.text
    assert first.json()["order"]["order_number"] == f"ORD-{utc_now().year}-000001"
    assert second.json()["order"]["id"] == first.json()["order"]["id"]
    assert second.json()["replayed"] is True
    assert second.json()["message"] == "Order already processed"
    assert await _count(database, InventoryLog) == logs_after_first == 1
    assert (await _product(database, product.id)).quantity == 3


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_key_owned_by_another_user_conflicts(client, database):
    owner, other = make_user(), make_user()
    product = await seed_product(database, quantity=5)
    await seed_cart(database, owner.user_id, [(product, 1)])
    await seed_cart(database, other.user_id, [(product, 1)])
    payload = checkout_payload(idempotencyKey="shared-key")

    first = await client.post(CHECKOUT_URL, json=payload, headers=auth_headers(owner))
    second = await client.post(CHECKOUT_URL, json=payload, headers=auth_headers(other))

    assert first.status_code == 201
    assert second.status_code == 409
    assert await _count(database, Order) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_concurrent_checkouts_for_last_unit(client, database):
    """Exactly one of two buyers gets the last unit; stock never goes negative."""
    product = await seed_product(database, sku="SKU-LAST", quantity=1)
    buyers = [make_user(), make_user()]
    for buyer in buyers:
        await seed_cart(database, buyer.user_id, [(product, 1)])

    responses = await asyncio.gather(
        *(
            client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(buyer))
            for buyer in buyers
        )
    )

    assert sorted(r.status_code for r in responses) == [201, 400]
    failed = next(r for r in responses if r.status_code == 400)
    assert failed.json()["error"] == "Insufficient stock for SKU-LAST"

    product = await _product(database, product.id)
    assert product.quantity == 0
    assert product.reserved_quantity == 0
    assert product.sales_count == 1
    assert await _count(database, Order) == 1


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_after_last_unit_sold_reports_insufficient_stock(client, database):
    product = await seed_product(database, sku="SKU-ONE", quantity=1)
    first, second = make_user(), make_user()
    await seed_cart(database, first.user_id, [(product, 1)])
    await seed_cart(database, second.user_id, [(product, 1)])

    sold = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(first))
    late = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(second))

    assert sold.status_code == 201, sold.text
    assert (await _product(database, product.id)).status == ProductStatus.OUT_OF_STOCK
    assert late.status_code == 400
    assert late.json() == {"error": "Insufficient stock for SKU-ONE"}


@pytest.mark.asyncio
@pytest.mark.integration
async def test_checkout_retries_transient_failure_from_scratch(client, database, monkeypatch):
    """A locked database on the first attempt rolls back and the checkout runs again."""
    user = make_user()
    product = await seed_product(database, quantity=5)
    await seed_cart(database, user.user_id, [(product, 2)])

    calls = []
    confirm = stock_ops.confirm_order_stock

    async def locked_once(db, order, **kwargs):
        calls.append(order.order_number)
        if len(calls) == 1:
            raise sa_exc.OperationalError("UPDATE store_products", {}, Exception("database is locked"))
        return await confirm(db, order, **kwargs)

    monkeypatch.setattr(stock_ops, "confirm_order_stock", locked_once)

    response = await client.post(CHECKOUT_URL, json=checkout_payload(), headers=auth_headers(user))

    assert response.status_code == 201, response.text
    assert len(calls) == 2
    assert await _count(database, Order) == 1
    assert await _count(database, InventoryLog) == 1
    product = await _product(database, product.id)
    assert (product.quantity, product.sales_count) == (3, 2)
    assert (await _cart(database, user.user_id)).items == []

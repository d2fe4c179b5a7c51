"""Unit tests for the inventory log and the stock flows built on the ledger."""

import uuid
from decimal import Decimal

import pytest
from services.store_service.errors import InsufficientStockError, ProductNotFoundError
from services.store_service.models import (
    InventoryLog,
    InventoryLogType,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PerformedByType,
    ProductStatus,
)
from services.store_service.models.inventory import ImmutableRecordError
from services.store_service.services import inventory_ledger, inventory_log, stock_ops
from sqlalchemy import func, select
from tests.factories import ProductFactory


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _make_product(db, **overrides):
    product = ProductFactory.create(**overrides)
    db.add(product)
    await db.commit()
    return product


async def _make_order(db, lines, user_id="buyer-1"):
    """Insert a pending order for ``(product, quantity)`` lines."""
    items = [
        OrderItem(
            product_id=product.id,
            product_sku=product.sku,
            product_title=product.title,
            quantity=quantity,
            price=product.price,
            total=product.price * quantity,
        )
        for product, quantity in lines
    ]
    subtotal = sum((item.total for item in items), Decimal("0"))
    address = {"first_name": "Asha", "city": "Pune"}
    order = Order(
        user_id=user_id,
        subtotal=subtotal,
        total=subtotal,
        currency="INR",
        shipping_address=address,
        billing_address=address,
        payment_method=PaymentMethod.COD,
        items=items,
    )
    db.add(order)
    await db.commit()
    return order


async def _log_count(db, **filters) -> int:
    query = select(func.count(InventoryLog.id))
    for field, value in filters.items():
        query = query.where(getattr(InventoryLog, field) == value)
    return await db.scalar(query)


# ---------------------------------------------------------------------------
# inventory_log.append
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_append_records_actor_and_snapshot(db_session):
    product = await _make_product(db_session, quantity=5)
    actor = stock_ops.admin_actor("admin-1", "ops@test.com")

    entry = await inventory_log.append(
        db_session,
        product=product,
        log_type=InventoryLogType.ADJUSTMENT,
        quantity=-1,
        previous_quantity=5,
        new_quantity=4,
        actor=actor,
        reason="Damaged",
    )
    await db_session.commit()

    assert entry.product_sku == product.sku
    assert entry.performed_by_type == PerformedByType.ADMIN
    assert entry.performed_by_id == "admin-1"
    assert entry.created_at is not None


@pytest.mark.asyncio
@pytest.mark.unit
async def test_append_same_key_returns_existing_entry(db_session):
    product = await _make_product(db_session, quantity=5)
    kwargs = dict(
        product=product,
        log_type=InventoryLogType.RESTOCK,
        quantity=3,
        previous_quantity=5,
        new_quantity=8,
        idempotency_key="restock-1",
    )

    first = await inventory_log.append(db_session, **kwargs)
    second = await inventory_log.append(db_session, **kwargs)
    await db_session.commit()

    assert second.id == first.id
    assert await _log_count(db_session, product_id=product.id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_log_entries_cannot_be_modified(db_session):
    product = await _make_product(db_session, quantity=5)
    entry = await inventory_log.append(
        db_session,
        product=product,
        log_type=InventoryLogType.RESTOCK,
        quantity=1,
        previous_quantity=5,
        new_quantity=6,
    )
    await db_session.commit()

    entry.reason = "rewritten"
    with pytest.raises(ImmutableRecordError):
        await db_session.flush()
    await db_session.rollback()


@pytest.mark.asyncio
@pytest.mark.unit
async def test_list_logs_newest_first_with_total(db_session):
    product = await _make_product(db_session, quantity=0)
    for i in range(3):
        await stock_ops.restock_product(
            db_session,
            product.id,
            1,
            actor=stock_ops.admin_actor("admin-1"),
            idempotency_key=f"r-{i}",
        )
    await db_session.commit()

    logs, total = await inventory_log.list_logs(db_session, product.id, limit=2)

    assert total == 3
    assert len(logs) == 2
    assert logs[0].new_quantity == 3


# ---------------------------------------------------------------------------
# confirm_order_stock
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_confirm_order_stock_deducts_and_logs_each_line(db_session):
    first = await _make_product(db_session, quantity=5)
    second = await _make_product(db_session, quantity=2)
    order = await _make_order(db_session, [(first, 2), (second, 2)])

    await stock_ops.confirm_order_stock(db_session, order, idempotency_key="key-1")
    await db_session.commit()

    first = await inventory_ledger.get_product(db_session, first.id)
    second = await inventory_ledger.get_product(db_session, second.id)
    assert (first.quantity, first.reserved_quantity, first.sales_count) == (3, 0, 2)
    assert second.quantity == 0
    assert second.status == ProductStatus.OUT_OF_STOCK

    entry = await inventory_log.get_log_by_key(db_session, f"key-1-{first.id}")
    assert entry.type == InventoryLogType.SALE
    assert (entry.quantity, entry.previous_quantity, entry.new_quantity) == (-2, 5, 3)
    assert entry.order_id == order.id
    assert entry.performed_by_type == PerformedByType.SYSTEM


@pytest.mark.asyncio
@pytest.mark.unit
async def test_confirm_order_stock_runs_once_per_order(db_session):
    product = await _make_product(db_session, quantity=5)
    order = await _make_order(db_session, [(product, 1)])

    await stock_ops.confirm_order_stock(db_session, order, idempotency_key="key-1")
    await stock_ops.confirm_order_stock(db_session, order, idempotency_key="key-2")
    await db_session.commit()

    product = await inventory_ledger.get_product(db_session, product.id)
    assert product.quantity == 4
    assert await _log_count(db_session, order_id=order.id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_confirm_order_stock_names_short_sku(db_session):
    product = await _make_product(db_session, quantity=1, sku="SKU-SHORT")
    order = await _make_order(db_session, [(product, 2)])

    with pytest.raises(InsufficientStockError) as exc_info:
        await stock_ops.confirm_order_stock(db_session, order, idempotency_key="key-1")
    await db_session.rollback()

    assert exc_info.value.sku == "SKU-SHORT"
    assert exc_info.value.status_code == 400


# ---------------------------------------------------------------------------
# restore_order_stock / restock_product
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.unit
async def test_restore_order_stock_puts_units_back_once(db_session):
    product = await _make_product(db_session, quantity=2)
    order = await _make_order(db_session, [(product, 2)])
    await stock_ops.confirm_order_stock(db_session, order, idempotency_key="key-1")
    await db_session.commit()

    actor = stock_ops.customer_actor("buyer-1")
    await stock_ops.restore_order_stock(db_session, order, idempotency_key="cancel-1", actor=actor)
    await stock_ops.restore_order_stock(db_session, order, idempotency_key="cancel-2", actor=actor)
    await db_session.commit()

    product = await inventory_ledger.get_product(db_session, product.id)
    assert product.quantity == 2
    assert product.sales_count == 0
    assert product.status == ProductStatus.ACTIVE
    assert await _log_count(db_session, order_id=order.id, type=InventoryLogType.RETURN) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_backorder_sale_logs_actual_deduction_and_restores_it(db_session):
    product = await _make_product(db_session, quantity=1, allow_backorder=True)
    order = await _make_order(db_session, [(product, 3)])

    await stock_ops.confirm_order_stock(db_session, order, idempotency_key="key-1")
    await db_session.commit()

    sale = await inventory_log.get_log_by_key(db_session, f"key-1-{product.id}")
    assert (sale.quantity, sale.previous_quantity, sale.new_quantity) == (-1, 1, 0)

    await stock_ops.restore_order_stock(
        db_session, order, idempotency_key="cancel-1", actor=stock_ops.customer_actor("buyer-1")
    )
    await db_session.commit()

    product = await inventory_ledger.get_product(db_session, product.id)
    assert product.quantity == 1
    assert product.sales_count == 0
    returned = await inventory_log.get_log_by_key(db_session, f"cancel-1-{product.id}-return")
    assert (returned.quantity, returned.previous_quantity, returned.new_quantity) == (1, 0, 1)


@pytest.mark.asyncio
@pytest.mark.unit
async def test_restock_product_is_idempotent_by_key(db_session):
    product = await _make_product(db_session, quantity=1)
    actor = stock_ops.admin_actor("admin-1")

    await stock_ops.restock_product(db_session, product.id, 5, actor=actor, idempotency_key="po-7")
    again = await stock_ops.restock_product(
        db_session, product.id, 5, actor=actor, idempotency_key="po-7"
    )
    await db_session.commit()

    assert again.quantity == 6
    assert await _log_count(db_session, product_id=product.id) == 1


@pytest.mark.asyncio
@pytest.mark.unit
async def test_restock_unknown_product_raises(db_session):
    with pytest.raises(ProductNotFoundError):
        await stock_ops.restock_product(
            db_session, uuid.uuid4(), 1, actor=stock_ops.admin_actor("admin-1")
        )

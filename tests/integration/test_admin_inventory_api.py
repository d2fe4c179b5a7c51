"""Integration tests for the admin inventory endpoints."""

import uuid

import pytest
from tests.conftest import auth_headers, make_admin_user, make_user, seed_product


@pytest.fixture
def admin_headers():
    return auth_headers(make_admin_user())


@pytest.mark.asyncio
@pytest.mark.integration
async def test_inventory_summary(client, database, admin_headers):
    product = await seed_product(database, quantity=7, reserved_quantity=2)

    response = await client.get(f"/admin/store/inventory/{product.id}", headers=admin_headers)

    assert response.status_code == 200, response.text
    data = response.json()
    assert data["product_id"] == str(product.id)
    assert data["available_quantity"] == 5
    assert data["is_low_stock"] is True
    assert data["is_out_of_stock"] is False


@pytest.mark.asyncio
@pytest.mark.integration
async def test_restock_adds_units_and_logs(client, database, admin_headers):
    product = await seed_product(database, quantity=5)
    url = f"/admin/store/inventory/{product.id}/restock"
    body = {"quantity": 10, "reason": "Supplier delivery", "idempotencyKey": "po-100"}

    first = await client.post(url, json=body, headers=admin_headers)
    replay = await client.post(url, json=body, headers=admin_headers)

    assert first.status_code == 200, first.text
    assert first.json()["quantity"] == 15
    assert replay.json()["quantity"] == 15

    logs = await client.get(f"/admin/store/inventory/{product.id}/logs", headers=admin_headers)
    assert logs.status_code == 200
    data = logs.json()
    assert data["pagination"]["total"] == 1
    entry = data["logs"][0]
    assert entry["type"] == "restock"
    assert (entry["previous_quantity"], entry["new_quantity"]) == (5, 15)
    assert entry["performed_by_type"] == "admin"
    assert entry["reason"] == "Supplier delivery"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_restock_reactivates_out_of_stock_product(client, database, admin_headers):
    from services.store_service.models import ProductStatus

    product = await seed_product(database, quantity=0, status=ProductStatus.OUT_OF_STOCK)

    response = await client.post(
        f"/admin/store/inventory/{product.id}/restock",
        json={"quantity": 3},
        headers=admin_headers,
    )

    assert response.status_code == 200, response.text
    assert response.json()["status"] == "active"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_restock_validation_and_unknown_product(client, admin_headers):
    too_many = await client.post(
        f"/admin/store/inventory/{uuid.uuid4()}/restock",
        json={"quantity": 10001},
        headers=admin_headers,
    )
    unknown = await client.post(
        f"/admin/store/inventory/{uuid.uuid4()}/restock",
        json={"quantity": 1},
        headers=admin_headers,
    )

    assert too_many.status_code == 400
    assert unknown.status_code == 404


@pytest.mark.asyncio
@pytest.mark.integration
async def test_low_stock_and_availability(client, database, admin_headers):
    low = await seed_product(database, quantity=2)
    await seed_product(database, quantity=100)

    low_stock = await client.get("/admin/store/inventory/low-stock", headers=admin_headers)
    availability = await client.get(
        f"/admin/store/inventory/{low.id}/availability",
        params={"quantity": 3},
        headers=admin_headers,
    )

    assert [p["product_id"] for p in low_stock.json()] == [str(low.id)]
    assert availability.json() == {
        "available": False,
        "available_quantity": 2,
        "reason": "Only 2 items available",
    }


@pytest.mark.asyncio
@pytest.mark.integration
async def test_inventory_requires_admin(client, database):
    product = await seed_product(database)

    anonymous = await client.get(f"/admin/store/inventory/{product.id}")
    customer = await client.get(
        f"/admin/store/inventory/{product.id}", headers=auth_headers(make_user())
    )

    assert anonymous.status_code == 401
    assert customer.status_code == 403

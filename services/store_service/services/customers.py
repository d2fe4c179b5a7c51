"""Customer profile: lifetime order stats and saved addresses."""

from decimal import Decimal
from typing import Optional

from libs.common.datetime_utils import utc_now
from libs.common.logging import get_logger
from services.store_service.models import AddressType, Customer, CustomerAddress
from services.store_service.models.customer import ADDRESS_FIELDS
from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


async def get_customer(db: AsyncSession, user_id: str) -> Optional[Customer]:
    result = await db.execute(select(Customer).where(Customer.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_customer(
    db: AsyncSession, user_id: str, email: Optional[str] = None
) -> Customer:
    customer = await get_customer(db, user_id)
    if customer is not None:
        return customer

    customer = Customer(user_id=user_id, email=email, addresses=[])
    try:
        async with db.begin_nested():
            db.add(customer)
    except IntegrityError:
        # Created by a concurrent request for the same user
        customer = await get_customer(db, user_id)
        if customer is None:
            raise
    return customer


async def record_customer_order(
    db: AsyncSession, user_id: str, amount: Decimal
) -> Customer:
    """Bump lifetime order count and spend in one UPDATE."""
    customer = await get_or_create_customer(db, user_id)
    result = await db.execute(
        update(Customer)
        .where(Customer.id == customer.id)
        .values(
            total_orders=Customer.total_orders + 1,
            total_spent=Customer.total_spent + amount,
            last_order_at=utc_now(),
        )
        .returning(Customer)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


def _same_address(saved: CustomerAddress, address: dict) -> bool:
    return all(
        (getattr(saved, field) or None) == (address.get(field) or None)
        for field in ADDRESS_FIELDS
    )


async def save_address(
    db: AsyncSession,
    customer: Customer,
    address: dict,
    address_type: AddressType,
) -> Optional[CustomerAddress]:
    """Add ``address`` to the book unless an identical one is already saved.

    The first saved address becomes the default. Returns the new row, or None
    for a duplicate.
    """
    if any(_same_address(saved, address) for saved in customer.addresses):
        return None

    entry = CustomerAddress(
        type=address_type,
        is_default=not customer.addresses,
        **{field: address.get(field) for field in ADDRESS_FIELDS},
    )
    customer.addresses.append(entry)
    await db.flush()
    return entry


async def save_checkout_addresses(
    db: AsyncSession,
    user_id: str,
    *,
    shipping_address: dict,
    billing_address: dict,
    save_shipping: bool,
    save_billing: bool,
) -> list[CustomerAddress]:
    if not (save_shipping or save_billing):
        return []

    customer = await get_or_create_customer(db, user_id)
    saved = []
    if save_shipping:
        entry = await save_address(db, customer, shipping_address, AddressType.SHIPPING)
        if entry is not None:
            saved.append(entry)
    if save_billing:
        entry = await save_address(db, customer, billing_address, AddressType.BILLING)
        if entry is not None:
            saved.append(entry)

    if saved:
        logger.info("Saved %d address(es) for user %s", len(saved), user_id)
    return saved

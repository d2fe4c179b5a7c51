"""Shared helpers for store routers."""

from typing import Awaitable, Callable, TypeVar

from libs.common.config import get_settings
from libs.common.retry import retry_async
from libs.db.config import Database
from libs.db.session import transaction_scope
from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


async def run_in_transaction(
    database: Database,
    work: Callable[[AsyncSession], Awaitable[T]],
    *,
    operation: str,
) -> T:
    """Run ``work`` in its own transaction, retrying on transient errors."""
    settings = get_settings()

    async def attempt() -> T:
        async with transaction_scope(database) as db:
            return await work(db)

    return await retry_async(
        attempt,
        max_attempts=settings.CHECKOUT_MAX_ATTEMPTS,
        initial_delay=settings.CHECKOUT_RETRY_INITIAL_DELAY,
        operation=operation,
    )

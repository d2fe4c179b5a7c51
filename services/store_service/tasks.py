"""Background maintenance tasks for the store service."""

from libs.common.logging import get_logger
from libs.common.retry import retry_async
from libs.db.config import Database
from libs.db.session import transaction_scope
from services.store_service.services.carts import delete_expired_guest_carts

logger = get_logger(__name__)


async def cleanup_expired_carts(database: Database) -> int:
    """Delete guest carts whose expiry has passed.

    Carts never hold stock, so nothing needs releasing first.
    """

    async def _run() -> int:
        async with transaction_scope(database) as db:
            return await delete_expired_guest_carts(db)

    deleted = await retry_async(_run, operation="cleanup_expired_carts")
    logger.info("Deleted %d expired guest cart(s)", deleted)
    return deleted

"""ARQ worker for store housekeeping."""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger
from libs.db.config import Database

logger = get_logger(__name__)


async def startup(ctx: dict) -> None:
    configure_logging()
    ctx["database"] = Database.from_settings()


async def shutdown(ctx: dict) -> None:
    database = ctx.pop("database", None)
    if database is not None:
        await database.dispose()


async def task_cleanup_expired_carts(ctx: dict) -> int:
    from services.store_service.tasks import cleanup_expired_carts

    logger.info("Running: cleanup_expired_carts")
    return await cleanup_expired_carts(ctx["database"])


class WorkerSettings:
    redis_settings = get_redis_settings()
    on_startup = startup
    on_shutdown = shutdown

    functions = [task_cleanup_expired_carts]

    cron_jobs = [
        cron(task_cleanup_expired_carts, hour={3}, minute={0}, run_at_startup=True),
    ]

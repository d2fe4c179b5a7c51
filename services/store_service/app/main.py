"""FastAPI application for the Store Service."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi.errors import RateLimitExceeded

from libs.common.config import get_settings
from libs.common.error_handler import add_exception_handlers
from libs.common.logging import get_logger
from libs.common.middleware import add_observability_middleware
from libs.common.rate_limit import limiter, rate_limit_exceeded_handler
from libs.db.config import Database
from services.store_service.routers import (
    admin_inventory_router,
    admin_orders_router,
    cart_router,
    orders_router,
)

logger = get_logger(__name__)


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Create and configure the Store Service FastAPI app.

    Without an explicit ``database`` one is built from settings when the app
    starts and disposed when it stops.
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = getattr(app.state, "database", None) is None
        if owned:
            app.state.database = Database.from_settings(settings)
        logger.info("Store service started (%s)", settings.ENVIRONMENT)
        try:
            yield
        finally:
            if owned:
                await app.state.database.dispose()
                app.state.database = None

    app = FastAPI(
        title="Store Service",
        version="0.1.0",
        description="Cart, checkout, orders and inventory for the storefront.",
        lifespan=lifespan,
    )
    if database is not None:
        app.state.database = database

    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    add_observability_middleware(app)
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": settings.SERVICE_NAME}

    # Customer routes
    app.include_router(cart_router, prefix="/store")
    app.include_router(orders_router, prefix="/store")

    # Admin routes
    app.include_router(admin_inventory_router, prefix="/admin/store")
    app.include_router(admin_orders_router, prefix="/admin/store")

    return app


app = create_app()

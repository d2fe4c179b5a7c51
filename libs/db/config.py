"""Database engine lifecycle.

A ``Database`` owns one async engine and its session factory. The application
builds it at start-up, keeps it on ``app.state`` and disposes it at shutdown;
workers and scripts construct their own.
"""
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from libs.common.config import Settings, get_settings
from libs.common.logging import get_logger
from libs.db.base import Base

logger = get_logger(__name__)


class Database:
    def __init__(self, url: str, *, echo: bool = False, **engine_kwargs: Any):
        self.url = url
        self.engine: AsyncEngine = create_async_engine(url, echo=echo, **engine_kwargs)
        if self.engine.dialect.name == "sqlite":
            _configure_sqlite(self.engine)
        self.session_factory = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "Database":
        settings = settings or get_settings()
        engine_kwargs: dict[str, Any] = {}
        if not settings.DATABASE_URL.startswith("sqlite"):
            engine_kwargs.update(
                pool_pre_ping=True,
                pool_size=settings.DB_POOL_SIZE,
                max_overflow=settings.DB_MAX_OVERFLOW,
                pool_timeout=settings.DB_POOL_TIMEOUT,
                pool_recycle=settings.DB_POOL_RECYCLE,
            )
        return cls(settings.DATABASE_URL, echo=settings.DB_ECHO, **engine_kwargs)

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def create_all(self) -> None:
        """Create every mapped table. Local runs and tests only; deployments use alembic."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()
        logger.info("Database engine disposed")


def _configure_sqlite(engine: AsyncEngine) -> None:
    """
    Make SQLite transactions behave like the production database.

    The sqlite3 driver defers BEGIN until the first write and breaks SAVEPOINT,
    so we take over transaction control: ``BEGIN IMMEDIATE`` serializes writers
    for the whole unit of work, and foreign keys are switched on.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

from contextlib import asynccontextmanager
from typing import AsyncGenerator, AsyncIterator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from libs.db.config import Database


def get_database(request: Request) -> Database:
    """
    FastAPI dependency returning the Database built at application start-up.
    """
    return request.app.state.database


async def get_async_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that yields an async database session.
    """
    async with get_database(request).session() as session:
        yield session


@asynccontextmanager
async def transaction_scope(database: Database) -> AsyncIterator[AsyncSession]:
    """
    Unit of work: one session, one transaction.

    Commits when the block exits cleanly. Any exception rolls the transaction
    back and closes the session before it propagates.
    """
    async with database.session() as session:
        async with session.begin():
            yield session

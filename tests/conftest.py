import os

# Settings are read at import time by the app modules below.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./store-test.db")
os.environ["ENVIRONMENT"] = "test"
os.environ["RATE_LIMIT_ENABLED"] = "false"

import uuid
from contextlib import contextmanager
from datetime import timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from libs.auth.dependencies import get_current_user
from libs.auth.models import AuthUser
from libs.common.config import get_settings
from libs.common.datetime_utils import utc_now
from libs.db.config import Database
from libs.db.session import transaction_scope
from tests.factories import CartFactory, ProductFactory

get_settings.cache_clear()
settings = get_settings()


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def database(tmp_path) -> AsyncGenerator[Database, None]:
    """
    Fresh SQLite file per test.

    A file (not :memory:) lets the app and the test open separate connections
    that see each other's commits, which is what concurrency tests rely on.
    """
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def db_session(database) -> AsyncGenerator[AsyncSession, None]:
    """
    Session for tests that drive service functions directly.

    SQLite takes the write lock when a transaction begins, so tests that
    also go through the app must commit before calling it.
    """
    async with database.session() as session:
        yield session


# ---------------------------------------------------------------------------
# App / client
# ---------------------------------------------------------------------------


@pytest.fixture
def app(database):
    from services.store_service.app.main import create_app

    application = create_app(database=database)
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as ac:
        yield ac


# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------


def make_user(user_id: Optional[str] = None, role: str = "authenticated") -> AuthUser:
    user_id = user_id or f"user-{uuid.uuid4().hex[:8]}"
    return AuthUser(user_id=user_id, email=f"{user_id}@test.com", role=role)


def make_admin_user(user_id: Optional[str] = None) -> AuthUser:
    return make_user(user_id or f"admin-{uuid.uuid4().hex[:8]}", role="admin")


def make_token(user: AuthUser) -> str:
    claims = {
        "sub": user.user_id,
        "email": user.email,
        "role": user.role,
        "exp": utc_now() + timedelta(hours=1),
    }
    return jwt.encode(claims, settings.AUTH_JWT_SECRET, algorithm=settings.AUTH_JWT_ALGORITHM)


def auth_headers(user: AuthUser) -> dict:
    """Real bearer token signed with the test secret."""
    return {"Authorization": f"Bearer {make_token(user)}"}


@contextmanager
def override_auth(app, user: AuthUser):
    """Temporarily replace ``get_current_user`` for one block."""
    app.dependency_overrides[get_current_user] = lambda: user
    try:
        yield user
    finally:
        app.dependency_overrides.pop(get_current_user, None)


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


async def seed_product(database: Database, **overrides):
    """Insert and commit a product; returns the detached instance."""
    product = ProductFactory.create(**overrides)
    async with transaction_scope(database) as db:
        db.add(product)
    return product


async def seed_cart(database: Database, user_id: str, lines: list[tuple]):
    """
    Insert a cart with ``(product, quantity[, price])`` lines and committed totals.

    Lines are written as-is, without availability checks, so tests can set up
    carts that went stale after the products changed.
    """
    from services.store_service.services.pricing import recalculate_cart

    cart = CartFactory.create(user_id=user_id, lines=lines)
    async with transaction_scope(database) as db:
        recalculate_cart(cart, settings)
        db.add(cart)
    return cart

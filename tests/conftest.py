"""
Shared fixtures.

Provides:
- session: AsyncSession on a fresh in-memory SQLite database
- restaurant_id: a seeded restaurant with a small menu
- customer / other_customer / admin: resolved identities
- clock: controllable time source for the lifecycle manager
- manager: OrderLifecycleManager on the test session and clock
- client: httpx AsyncClient talking to the app in-process
"""

import os

# Must be set before food_ordering is imported
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["ENV_MODE"] = "development"

from datetime import datetime, timezone

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from food_ordering.core.security import CurrentUser, Role
from food_ordering.database import Base, get_db
from food_ordering.main import app
from food_ordering.services.orders import OrderLifecycleManager
from tests.factories import FixedClock, add_restaurant


@pytest_asyncio.fixture
async def session_maker():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def restaurant_id(session_maker) -> int:
    return await add_restaurant(session_maker)


@pytest.fixture
def customer() -> CurrentUser:
    return CurrentUser(id="customer-a", role=Role.CUSTOMER, name="Ada Obi")


@pytest.fixture
def other_customer() -> CurrentUser:
    return CurrentUser(id="customer-b", role=Role.CUSTOMER, name="Bola Ade")


@pytest.fixture
def admin() -> CurrentUser:
    return CurrentUser(id="admin-1", role=Role.ADMIN, name="Kemi Admin")


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def manager(session, clock) -> OrderLifecycleManager:
    return OrderLifecycleManager(session, clock=clock)


@pytest_asyncio.fixture
async def client(session_maker):
    """In-process client; each request gets its own session on the test database."""
    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()

"""
Pytest fixtures - test DB, client, auth, notification capture.
Challenge: Isolated tests; no Postgres, Redis or broker needed.
"""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from studyswap.core.security import hash_password
from studyswap.db.base import Base
from studyswap.db.models import Item, User
from studyswap.db.repositories import BarterRepository, ItemRepository
from studyswap.db.session import get_db
from studyswap.main import app
from studyswap.services.barter_service import BarterService
from studyswap.services.notification_sink import get_notification_sink

from helpers import RecordingNotificationSink

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite://"

# bcrypt is slow on purpose; hash once for all fixture users
PASSWORD = "password123"
PASSWORD_HASH = hash_password(PASSWORD)


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Item cache calls become no-ops; tests never talk to Redis."""
    monkeypatch.setattr("studyswap.services.item_service.cache_get", AsyncMock(return_value=None))
    monkeypatch.setattr("studyswap.services.item_service.cache_set", AsyncMock(return_value=True))
    delete = AsyncMock(return_value=True)
    monkeypatch.setattr("studyswap.services.item_service.cache_delete", delete)
    return delete


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(TEST_DATABASE_URL, poolclass=StaticPool, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine) -> AsyncGenerator[AsyncSession, None]:
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as s:
        yield s


@pytest.fixture
def sink() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
def service(session: AsyncSession, sink: RecordingNotificationSink) -> BarterService:
    return BarterService(BarterRepository(session), ItemRepository(session), sink)


@pytest_asyncio.fixture
async def client(session: AsyncSession, sink: RecordingNotificationSink):
    async def override_get_db():
        # Same shape as get_db: commit once the handler returns cleanly
        yield session
        await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notification_sink] = lambda: sink
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session: AsyncSession):
    async def _make(name: str, role: str = "user") -> User:
        user = User(
            email=f"{name.lower()}@example.com",
            hashed_password=PASSWORD_HASH,
            name=name,
            role=role,
        )
        session.add(user)
        await session.flush()
        await session.refresh(user)
        return user

    return _make


@pytest.fixture
def make_item(session: AsyncSession):
    async def _make(owner: User, title: str, status: str = "Available") -> Item:
        item = Item(title=title, owner_id=owner.id, status=status, price_cents=500)
        session.add(item)
        await session.flush()
        await session.refresh(item)
        return item

    return _make


@pytest_asyncio.fixture
async def bob(make_user) -> User:
    """Owner of the target item in most scenarios."""
    return await make_user("Bob")


@pytest_asyncio.fixture
async def alice(make_user) -> User:
    """Requester in most scenarios."""
    return await make_user("Alice")


@pytest_asyncio.fixture
async def textbook(make_item, bob) -> Item:
    return await make_item(bob, "Calculus Textbook")


@pytest_asyncio.fixture
async def notes(make_item, alice) -> Item:
    return await make_item(alice, "Physics Notes")
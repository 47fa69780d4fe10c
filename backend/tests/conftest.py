"""Pytest configuration and shared fixtures for service and API tests."""

import asyncio
import os
import tempfile
from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test DB before app imports so config/engine use it
_DB_DIR = tempfile.mkdtemp(prefix="soulbuddy-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DB_DIR}/test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("APP_ENV", "test")

from app.core.auth import create_access_token
from app.core.errors import PermanentDeliveryError
from app.db.base import Base
from app.db.session import async_session_maker, engine, init_db
from app.main import app
from app.models.content import Affirmation, AffirmationCategory
from app.models.device_token import DeviceToken
from app.models.preferences import NotificationPreferences
from app.models.user import User

pytest_plugins = ["pytest_asyncio"]

NOW = datetime(2026, 3, 2, 0, 0, tzinfo=timezone.utc)
TOKEN_A = "a" * 64
TOKEN_B = "b" * 64


@pytest.fixture(scope="session")
def event_loop():
    loop = asyncio.new_event_loop()
    yield loop
    loop.close()


@pytest_asyncio.fixture(scope="session")
async def ensure_db():
    """Create tables and init HTTP client once per test session (no scheduler)."""
    await init_db()
    from app.services.http_client import init_http_client

    init_http_client(timeout=30.0)
    yield
    from app.services.http_client import close_http_client

    await close_http_client()
    await engine.dispose()


async def _reset_tables():
    """SQLite has no TRUNCATE: drop and recreate every table so tests start clean."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


@pytest_asyncio.fixture
async def client(ensure_db):
    """Yield AsyncClient. No session override; use clean_db + test_user for isolated state."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest_asyncio.fixture
async def clean_db(ensure_db):
    await _reset_tables()
    yield


@pytest_asyncio.fixture
async def make_user(clean_db):
    """Factory: committed user (+ preferences, optional device token). Returns the user id."""

    async def _make(
        user_id: str = "user-1",
        *,
        subscriber: bool = True,
        tz: str = "UTC",
        locale: str = "en",
        frequency: int = 2,
        allow_push: bool = True,
        token: str | None = None,
    ) -> str:
        async with async_session_maker() as session:
            session.add(User(id=user_id, is_subscriber=subscriber, timezone=tz, locale=locale))
            await session.flush()
            session.add(NotificationPreferences(user_id=user_id, frequency=frequency, allow_push=allow_push))
            if token:
                session.add(DeviceToken(user_id=user_id, token=token, bundle_id="app.soulbuddy.ios"))
            await session.commit()
        return user_id

    return _make


@pytest_asyncio.fixture
async def make_category(clean_db):
    """Factory: committed category with `count` active affirmations. Returns (category_id, affirmation_ids)."""

    async def _make(key: str = "calm", *, locale: str = "en", count: int = 40) -> tuple[int, list[int]]:
        async with async_session_maker() as session:
            category = AffirmationCategory(key=key, locale=locale)
            session.add(category)
            await session.flush()
            items = [
                Affirmation(category_id=category.id, text=f"{key} affirmation {i}", locale=locale, intensity=1)
                for i in range(count)
            ]
            session.add_all(items)
            await session.commit()
            return category.id, [a.id for a in items]

    return _make


@pytest_asyncio.fixture
async def test_user(make_user):
    """Subscriber with a device token; returns (user_id, access_token)."""
    user_id = await make_user("subject-123", token=TOKEN_A)
    return user_id, create_access_token(user_id)


@pytest_asyncio.fixture
def auth_headers(test_user):
    """Return dict of Authorization header for test_user."""
    _, token = test_user
    return {"Authorization": f"Bearer {token}"}


class FakeGateway:
    """Scripted push gateway: each send() consumes the next outcome (exception instance or delivery id)."""

    def __init__(self, outcomes=None):
        self.outcomes = list(outcomes or [])
        self.calls: list[tuple[str, dict]] = []

    async def send(self, device_token: str, payload: dict) -> str:
        self.calls.append((device_token, payload))
        outcome = self.outcomes.pop(0) if self.outcomes else f"delivery-{len(self.calls)}"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def invalid_token_gateway():
    return FakeGateway([PermanentDeliveryError("invalid_token")])

"""
Shared fixtures: a throwaway SQLite database per test, a frozen clock and an
ASGI client with the database and clock dependencies overridden.
"""
import os
import random
from datetime import datetime, timedelta, timezone

# Settings are read at import time, so the environment goes first
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///./pytest_bootstrap.db")
os.environ.setdefault("ENABLE_FILE_LOGGING", "false")
os.environ.setdefault("ENABLE_RATE_LIMITING", "false")
os.environ.setdefault("ENABLE_REQUEST_LOGGING", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("GEMINI_API_KEY", "")

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import update

from app import app
from core.clock import get_clock
from db_config import Base, build_async_engine, build_session_factory, get_async_db
from models.models import User, UserRoleEnum
from services.subscription_service import SubscriptionService

START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
async def engine(tmp_path):
    engine = build_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def make_user(session_factory):
    """Insert a user row directly, bypassing registration."""
    async def _make(username: str = None, email: str = None, **fields) -> User:
        suffix = random.randint(10000, 99999)
        username = username or f"learner_{suffix}"
        async with session_factory() as session:
            user = User(
                username=username,
                email=email or f"{username}@example.com",
                first_name="Test",
                last_name="Learner",
                password_hash="not-a-real-hash",
                role=fields.pop("role", UserRoleEnum.user),
                is_active=True,
                is_verified=True,
                **fields,
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user
    return _make


@pytest.fixture
async def client(session_factory, clock):
    async def override_get_async_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_db] = override_get_async_db
    app.dependency_overrides[get_clock] = lambda: clock
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


def generate_test_user(prefix: str = "learner") -> dict:
    return {
        "username": f"{prefix}_{random.randint(10000, 99999)}",
        "email": f"{prefix}_{random.randint(10000, 99999)}@example.com",
        "password": "testpass123",
        "first_name": "Test",
        "last_name": "Learner",
    }


@pytest.fixture
def register_user(client, session_factory):
    """Register and log in through the API; returns (user_id, auth headers)."""
    async def _register(prefix: str = "learner", admin: bool = False):
        user_data = generate_test_user(prefix)
        response = await client.post("/auth/register", json=user_data)
        assert response.status_code == 201, response.text
        user_id = response.json()["user"]["id"]

        if admin:
            async with session_factory() as session:
                await session.execute(
                    update(User).where(User.id == user_id).values(role=UserRoleEnum.admin)
                )
                await session.commit()

        response = await client.post("/auth/login", json={
            "username": user_data["username"],
            "password": user_data["password"],
        })
        assert response.status_code == 200, response.text
        token = response.json()["access_token"]
        return user_id, {"Authorization": f"Bearer {token}"}
    return _register


@pytest.fixture
async def seeded_plans(session_factory):
    async with session_factory() as session:
        await SubscriptionService(session).seed_default_plans()

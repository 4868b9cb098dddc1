"""
HTTP-level fixtures.

Each test gets a fresh SQLite file database wired into the app through
dependency overrides. TestClient is used without a context manager so the
lifespan (Sentry, Postgres init) never runs.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from reindeer_letter.api.internal import get_notifier
from reindeer_letter.core.config import settings
from reindeer_letter.core.database import Base, get_db
from reindeer_letter.core.middleware import limiter
from reindeer_letter.core.security import create_access_token
from reindeer_letter.main import app
from reindeer_letter.models import User
from reindeer_letter.modules.letters.lifecycle import LifecycleConfig
from reindeer_letter.modules.letters.routes import get_lifecycle_config

from tests.conftest import RecordingNotifier


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)

    async def _create_tables():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create_tables())

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    asyncio.run(engine.dispose())


@pytest.fixture
def client(session_factory, clock, notifier):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lifecycle_config] = lambda: LifecycleConfig.from_settings(settings, clock=clock)
    app.dependency_overrides[get_notifier] = lambda: notifier
    limiter.enabled = False

    yield TestClient(app)

    app.dependency_overrides.clear()
    limiter.enabled = True


@pytest.fixture
def seed_user(session_factory):
    """Insert a user directly and return (user_id, auth headers)."""

    def _seed(nickname: str):
        async def _insert():
            async with session_factory() as session:
                user = User(email=f"{nickname}@example.com", nickname=nickname)
                session.add(user)
                await session.commit()
                return user.id

        user_id = asyncio.run(_insert())
        token = create_access_token(user_id, f"{nickname}@example.com")
        return user_id, {"Authorization": f"Bearer {token}"}

    return _seed

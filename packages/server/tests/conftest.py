"""
Shared fixtures for server tests.

Settings are read once at import time, so the environment is prepared here
before any ``tm_server`` module is imported.
"""

import os

os.environ.setdefault("TM_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TM_SECRET_KEY", "test-secret-key-for-the-task-manager-suite")
os.environ.setdefault("TM_BCRYPT_ROUNDS", "4")

from unittest.mock import AsyncMock, patch

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel


@pytest.fixture
async def session_factory():
    """In-memory SQLite database with every table created."""
    import tm_server.models  # noqa: F401

    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def revoked():
    """Redis stand-in for the revocation list. Yields the set of revoked keys."""
    keys: set[str] = set()

    async def setex(key, ttl, value):
        keys.add(key)

    async def exists(key):
        return int(key in keys)

    redis_mock = AsyncMock()
    redis_mock.setex = AsyncMock(side_effect=setex)
    redis_mock.exists = AsyncMock(side_effect=exists)
    with patch("tm_server.core.redis.get_redis", return_value=redis_mock):
        yield keys


@pytest.fixture
async def api(session_factory, revoked):
    """The full application over ASGI with the test database."""
    from tm_server.core.database import get_session
    from tm_server.main import create_app

    app = create_app()

    async def override_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

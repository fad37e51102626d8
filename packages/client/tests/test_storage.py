"""Tests for credential storage."""

import pytest

from taskmanager_shared.schemas.auth import AuthTokens
from tm_client.storage import MemoryTokenStorage, SqliteTokenStorage

PAIR = AuthTokens(access_token="access-1", refresh_token="refresh-1")
NEXT = AuthTokens(access_token="access-2", refresh_token="refresh-2")


@pytest.fixture
async def sqlite_storage(tmp_path):
    s = SqliteTokenStorage(str(tmp_path / "creds" / "credentials.db"))
    await s.open()
    yield s
    await s.close()


async def test_memory_round_trip():
    storage = MemoryTokenStorage()
    assert await storage.get_access_token() is None

    await storage.save_tokens(PAIR)
    assert await storage.get_access_token() == "access-1"
    assert await storage.get_refresh_token() == "refresh-1"

    await storage.clear()
    assert storage.keys() == set()


async def test_memory_pair_replaced_together():
    storage = MemoryTokenStorage()
    await storage.save_tokens(PAIR)
    await storage.save_tokens(NEXT)
    assert (await storage.get_access_token(), await storage.get_refresh_token()) == ("access-2", "refresh-2")


async def test_sqlite_round_trip(sqlite_storage: SqliteTokenStorage):
    await sqlite_storage.save_tokens(PAIR)
    assert await sqlite_storage.get_access_token() == "access-1"
    assert await sqlite_storage.get_refresh_token() == "refresh-1"
    assert await sqlite_storage.keys() == {"access_token", "refresh_token"}

    await sqlite_storage.save_tokens(NEXT)
    assert await sqlite_storage.get_refresh_token() == "refresh-2"

    await sqlite_storage.clear()
    assert await sqlite_storage.keys() == set()
    assert await sqlite_storage.get_access_token() is None


async def test_sqlite_persists_across_connections(tmp_path):
    path = str(tmp_path / "credentials.db")
    first = SqliteTokenStorage(path)
    await first.open()
    await first.save_tokens(PAIR)
    await first.close()

    second = SqliteTokenStorage(path)
    await second.open()
    try:
        assert await second.get_access_token() == "access-1"
    finally:
        await second.close()

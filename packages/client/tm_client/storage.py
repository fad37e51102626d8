"""
Credential storage.

Holds exactly two values, the access token and the refresh token, under the
keys ``access_token`` and ``refresh_token``. The pair is written and removed
as a unit; readers never observe one key from an old pair next to one from a
new pair.
"""

from __future__ import annotations

import os
from datetime import datetime, timezone
from typing import Optional, Protocol

import aiosqlite

from taskmanager_shared.schemas.auth import AuthTokens

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"

_SCHEMA = """
CREATE TABLE IF NOT EXISTS credentials (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


class TokenStorage(Protocol):
    async def get_access_token(self) -> Optional[str]: ...

    async def get_refresh_token(self) -> Optional[str]: ...

    async def save_tokens(self, tokens: AuthTokens) -> None: ...

    async def clear(self) -> None: ...


class MemoryTokenStorage:
    """Process-local storage. Used by tests and short-lived scripts."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}

    async def get_access_token(self) -> Optional[str]:
        return self._values.get(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[str]:
        return self._values.get(REFRESH_TOKEN_KEY)

    async def save_tokens(self, tokens: AuthTokens) -> None:
        self._values = {
            ACCESS_TOKEN_KEY: tokens.access_token,
            REFRESH_TOKEN_KEY: tokens.refresh_token,
        }

    async def clear(self) -> None:
        self._values = {}

    def keys(self) -> set[str]:
        return set(self._values)


class SqliteTokenStorage:
    """Async SQLite credential store, one row per key."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def open(self) -> None:
        if self._db_path != ":memory:":
            os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(_SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    async def _get(self, key: str) -> Optional[str]:
        assert self._db
        cursor = await self._db.execute(
            "SELECT value FROM credentials WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row["value"] if row else None

    async def get_access_token(self) -> Optional[str]:
        return await self._get(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[str]:
        return await self._get(REFRESH_TOKEN_KEY)

    async def save_tokens(self, tokens: AuthTokens) -> None:
        assert self._db
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self._db.executemany(
                "INSERT OR REPLACE INTO credentials (key, value, updated_at) VALUES (?, ?, ?)",
                [
                    (ACCESS_TOKEN_KEY, tokens.access_token, now),
                    (REFRESH_TOKEN_KEY, tokens.refresh_token, now),
                ],
            )
            await self._db.commit()
        except aiosqlite.Error:
            await self._db.rollback()
            raise

    async def clear(self) -> None:
        assert self._db
        await self._db.execute(
            "DELETE FROM credentials WHERE key IN (?, ?)",
            (ACCESS_TOKEN_KEY, REFRESH_TOKEN_KEY),
        )
        await self._db.commit()

    async def keys(self) -> set[str]:
        assert self._db
        cursor = await self._db.execute("SELECT key FROM credentials")
        rows = await cursor.fetchall()
        return {r["key"] for r in rows}

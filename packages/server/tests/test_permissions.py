"""Tests for the permission matrix backends and seeding."""

from __future__ import annotations

import pytest

from tm_server.core.permissions import (
    DEFAULT_PERMISSIONS,
    SqlPermissionTable,
    StaticPermissionTable,
    seed_permissions,
)


class TestStaticTable:
    @pytest.mark.asyncio
    async def test_default_matrix(self):
        table = StaticPermissionTable()
        assert len(table) == len(DEFAULT_PERMISSIONS)
        assert await table.grants("delete", "task", ["admin"])
        assert await table.grants("read", "task", ["viewer"])
        assert not await table.grants("delete", "task", ["viewer"])

    @pytest.mark.asyncio
    async def test_any_role_matches(self):
        table = StaticPermissionTable()
        assert await table.grants("invite", "user", ["viewer", "admin"])

    @pytest.mark.asyncio
    async def test_no_roles(self):
        assert not await StaticPermissionTable().grants("read", "task", [])


class TestSqlTable:
    @pytest.mark.asyncio
    async def test_seed_then_query(self, db):
        added = await seed_permissions(db)
        assert added == len(DEFAULT_PERMISSIONS)

        table = SqlPermissionTable(db)
        assert await table.grants("update", "task", ["admin"])
        assert await table.grants("read", "task", ["viewer"])
        assert not await table.grants("delete", "task", ["viewer"])
        assert not await table.grants("read", "task", [])

    @pytest.mark.asyncio
    async def test_seeding_is_idempotent(self, db):
        await seed_permissions(db)
        assert await seed_permissions(db) == 0

    @pytest.mark.asyncio
    async def test_empty_table_denies(self, db):
        assert not await SqlPermissionTable(db).grants("read", "task", ["admin"])

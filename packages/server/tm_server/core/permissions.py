"""
Read-only access to the permission matrix.

The authorization engine only ever asks one question: does any of these
roles hold (action, resource)? ``PermissionTable`` captures that question so
the engine can run against the database or an in-memory matrix.
"""

from __future__ import annotations

from typing import Iterable, Protocol

import structlog
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskmanager_shared.schemas.common import PermissionAction, PermissionResource, Role
from tm_server.models.permission import Permission

log = structlog.get_logger()

PermissionRow = tuple[str, str, str]  # (action, resource, role)

# Shared across all organizations
DEFAULT_PERMISSIONS: tuple[PermissionRow, ...] = (
    (PermissionAction.CREATE.value, PermissionResource.TASK.value, Role.ADMIN.value),
    (PermissionAction.READ.value, PermissionResource.TASK.value, Role.ADMIN.value),
    (PermissionAction.UPDATE.value, PermissionResource.TASK.value, Role.ADMIN.value),
    (PermissionAction.DELETE.value, PermissionResource.TASK.value, Role.ADMIN.value),
    (PermissionAction.READ.value, PermissionResource.DEPARTMENT.value, Role.ADMIN.value),
    (PermissionAction.INVITE.value, PermissionResource.USER.value, Role.ADMIN.value),
    (PermissionAction.READ.value, PermissionResource.TASK.value, Role.VIEWER.value),
)


def _value(item) -> str:
    return item.value if hasattr(item, "value") else str(item)


class PermissionTable(Protocol):
    async def grants(self, action: str, resource: str, roles: Iterable[str]) -> bool:
        """True iff a row matches (action, resource, role) for any role in ``roles``."""
        ...


class StaticPermissionTable:
    """Permission matrix held in memory."""

    def __init__(self, rows: Iterable[PermissionRow] = DEFAULT_PERMISSIONS):
        self._rows = frozenset(
            (_value(action), _value(resource), _value(role)) for action, resource, role in rows
        )

    async def grants(self, action: str, resource: str, roles: Iterable[str]) -> bool:
        action, resource = _value(action), _value(resource)
        return any((action, resource, _value(role)) in self._rows for role in roles)

    def __len__(self) -> int:
        return len(self._rows)


class SqlPermissionTable:
    """Permission matrix backed by the ``permissions`` table."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def grants(self, action: str, resource: str, roles: Iterable[str]) -> bool:
        role_values = [_value(r) for r in roles]
        if not role_values:
            return False
        result = await self._session.execute(
            select(func.count(Permission.id)).where(
                Permission.action == _value(action),
                Permission.resource == _value(resource),
                Permission.role.in_(role_values),
            )
        )
        return (result.scalar_one() or 0) > 0


async def seed_permissions(
    session: AsyncSession, rows: Iterable[PermissionRow] = DEFAULT_PERMISSIONS
) -> int:
    """Insert any missing rows of the permission matrix. Returns how many were added."""
    result = await session.execute(select(Permission))
    existing = {(p.action, p.resource, p.role) for p in result.scalars().all()}

    added = 0
    for action, resource, role in rows:
        key = (_value(action), _value(resource), _value(role))
        if key in existing:
            continue
        session.add(Permission(action=key[0], resource=key[1], role=key[2]))
        existing.add(key)
        added += 1

    if added:
        await session.flush()
        log.info("permissions.seeded", added=added)
    return added

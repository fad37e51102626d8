"""
Authorization decision engine.

Each protected operation declares at most one requirement in
``OPERATION_REQUIREMENTS``: a set of acceptable roles or a single
(action, resource) permission. A decision is a pure function of the
principal, the requirement, the department the request targets and the
permission table:

- Owners bypass every check.
- Department-scoped roles only count for the department the request targets;
  when the request names no department, every role the principal holds counts.
- Denials are terminal. Retrying after a credential refresh is the client's
  business and never happens here.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import structlog
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from taskmanager_shared.errors import ErrorKind
from taskmanager_shared.schemas.common import PermissionAction, PermissionResource, Role
from tm_server.core.auth import Principal, get_optional_principal
from tm_server.core.database import get_session
from tm_server.core.errors import AuthenticationRequired, Forbidden
from tm_server.core.permissions import PermissionTable, SqlPermissionTable

log = structlog.get_logger()

DEPARTMENT_KEY = "departmentId"

# ---------------------------------------------------------------------------
# Requirements
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RoleRequirement:
    roles: frozenset[Role]


@dataclass(frozen=True)
class PermissionRequirement:
    action: PermissionAction
    resource: PermissionResource


Requirement = Union[RoleRequirement, PermissionRequirement]


def requires_roles(*roles: Role) -> RoleRequirement:
    return RoleRequirement(frozenset(roles))


def requires_permission(action: PermissionAction, resource: PermissionResource) -> PermissionRequirement:
    return PermissionRequirement(action, resource)


OPERATION_REQUIREMENTS: dict[str, Optional[Requirement]] = {
    # Auth
    "auth.me": None,
    # Tasks
    "tasks.list": None,
    "tasks.create": requires_permission(PermissionAction.CREATE, PermissionResource.TASK),
    "tasks.get": requires_permission(PermissionAction.READ, PermissionResource.TASK),
    "tasks.update": requires_permission(PermissionAction.UPDATE, PermissionResource.TASK),
    "tasks.reorder": requires_permission(PermissionAction.UPDATE, PermissionResource.TASK),
    "tasks.delete": requires_permission(PermissionAction.DELETE, PermissionResource.TASK),
    # Departments
    "departments.list": None,
    "departments.create": requires_roles(Role.OWNER),
    "departments.update": requires_roles(Role.OWNER),
    "departments.delete": requires_roles(Role.OWNER),
    # Department members
    "members.list": requires_permission(PermissionAction.READ, PermissionResource.DEPARTMENT),
    "members.invite": requires_permission(PermissionAction.INVITE, PermissionResource.USER),
    "members.update": requires_roles(Role.OWNER),
    "members.remove": requires_roles(Role.ADMIN),
    # Organization
    "organizations.me": None,
    "organizations.users.list": requires_roles(Role.OWNER, Role.ADMIN),
    "organizations.users.add": requires_roles(Role.OWNER),
    # Audit log
    "audit.list": requires_roles(Role.OWNER, Role.ADMIN),
}


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Decision:
    allowed: bool
    kind: Optional[ErrorKind] = None
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "Decision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, kind: ErrorKind, reason: str) -> "Decision":
        return cls(allowed=False, kind=kind, reason=reason)

    def raise_for_denial(self) -> None:
        if self.allowed:
            return
        if self.kind == ErrorKind.AUTHENTICATION_REQUIRED:
            raise AuthenticationRequired(self.reason or "Authentication required")
        raise Forbidden(self.reason or "Forbidden")


def _present(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text or None


def resolve_department_id(
    body: Optional[Mapping[str, Any]],
    path_params: Optional[Mapping[str, Any]],
    query_params: Optional[Mapping[str, Any]],
) -> Optional[str]:
    """
    Resolve the department a request targets.

    Tries body ``departmentId``, path ``departmentId``, path ``id`` and query
    ``departmentId`` in that order; the first non-empty value wins. None
    means the request is unscoped.

    A path ``id`` is taken as a department id even on routes where it names
    another resource.
    """
    body = body if isinstance(body, Mapping) else {}
    path_params = path_params or {}
    query_params = query_params or {}

    for candidate in (
        body.get(DEPARTMENT_KEY),
        path_params.get(DEPARTMENT_KEY),
        path_params.get("id"),
        query_params.get(DEPARTMENT_KEY),
    ):
        resolved = _present(candidate)
        if resolved:
            return resolved
    return None


def applicable_roles(principal: Principal, department_id: Optional[str]) -> set[Role]:
    """Roles that count for ``department_id`` (all roles when unscoped)."""
    if department_id is None:
        return {grant.role for grant in principal.roles}
    return {grant.role for grant in principal.roles if grant.department_id == department_id}


def check_roles(
    principal: Principal,
    requirement: Optional[RoleRequirement],
    department_id: Optional[str],
) -> Decision:
    if requirement is None or not requirement.roles:
        return Decision.allow()
    if principal.is_owner:
        return Decision.allow()
    if requirement.roles & applicable_roles(principal, department_id):
        return Decision.allow()
    return Decision.deny(ErrorKind.FORBIDDEN, "Insufficient role for this department")


async def check_permission(
    principal: Principal,
    requirement: Optional[PermissionRequirement],
    department_id: Optional[str],
    table: PermissionTable,
) -> Decision:
    if requirement is None:
        return Decision.allow()
    if principal.is_owner:
        return Decision.allow()

    roles = applicable_roles(principal, department_id)
    if not roles:
        return Decision.deny(ErrorKind.FORBIDDEN, "No role in this department")

    action, resource = requirement.action.value, requirement.resource.value
    if await table.grants(action, resource, sorted(r.value for r in roles)):
        return Decision.allow()
    return Decision.deny(ErrorKind.FORBIDDEN, f"Permission denied: {action} on {resource}")


async def decide(
    principal: Optional[Principal],
    requirement: Optional[Requirement],
    department_id: Optional[str],
    table: PermissionTable,
) -> Decision:
    """Grant or deny one request."""
    if principal is None:
        return Decision.deny(ErrorKind.AUTHENTICATION_REQUIRED, "Authentication required")
    if isinstance(requirement, PermissionRequirement):
        return await check_permission(principal, requirement, department_id, table)
    return check_roles(principal, requirement, department_id)


# ---------------------------------------------------------------------------
# FastAPI wiring
# ---------------------------------------------------------------------------

async def request_body(request: Request) -> Optional[Mapping[str, Any]]:
    """The JSON object body of a request, or None when there is none."""
    if "json" not in request.headers.get("content-type", ""):
        return None
    raw = await request.body()
    if not raw:
        return None
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, Mapping) else None


async def get_permission_table(session: AsyncSession = Depends(get_session)) -> PermissionTable:
    return SqlPermissionTable(session)


def requirement_for(operation_id: str) -> Optional[Requirement]:
    """Look up an operation's requirement. Unknown operations raise KeyError."""
    return OPERATION_REQUIREMENTS[operation_id]


def authorize(operation_id: str) -> Callable[..., Any]:
    """
    Build a dependency enforcing ``operation_id``'s requirement.

    Usage::

        @router.delete("/tasks/{id}", dependencies=[Depends(authorize("tasks.delete"))])
    """
    requirement = requirement_for(operation_id)

    async def dependency(
        request: Request,
        principal: Optional[Principal] = Depends(get_optional_principal),
        table: PermissionTable = Depends(get_permission_table),
    ) -> Principal:
        body = await request_body(request)
        department_id = resolve_department_id(body, request.path_params, request.query_params)
        decision = await decide(principal, requirement, department_id, table)
        if not decision.allowed:
            log.info(
                "authz.denied",
                operation=operation_id,
                department_id=department_id,
                kind=decision.kind.value if decision.kind else None,
                reason=decision.reason,
            )
            decision.raise_for_denial()
        return principal

    dependency.__name__ = f"authorize_{operation_id.replace('.', '_')}"
    return dependency

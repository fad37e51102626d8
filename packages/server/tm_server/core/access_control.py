"""
Per-resource access rules layered on top of the authorization engine.

The engine answers "may this role perform this action here?"; these rules
add the task ownership constraint for viewers and the member-management
rules. Owners bypass everything.
"""

from __future__ import annotations

from typing import Optional

from taskmanager_shared.schemas.common import Role
from tm_server.core.auth import Principal
from tm_server.core.permissions import PermissionTable
from tm_server.models.task import Task


class AccessControlService:
    """Answers ownership-sensitive questions about a principal."""

    def __init__(self, permissions: PermissionTable):
        self._permissions = permissions

    @staticmethod
    def role_for_department(principal: Principal, department_id: str) -> Optional[Role]:
        """The principal's department-scoped role, or None."""
        for grant in principal.roles:
            if grant.department_id is not None and grant.department_id == str(department_id):
                return grant.role
        return None

    @staticmethod
    def _is_own_task(principal: Principal, task: Task) -> bool:
        user_id = principal.user_id
        return str(task.created_by_id) == user_id or (
            task.assigned_to_id is not None and str(task.assigned_to_id) == user_id
        )

    def _task_rule(self, principal: Principal, task: Task) -> bool:
        if principal.is_owner:
            return True
        role = self.role_for_department(principal, str(task.department_id))
        if role is None:
            return False
        if role == Role.ADMIN:
            return True
        # Viewers only touch tasks they created or are assigned to
        return self._is_own_task(principal, task)

    def can_access_task(self, principal: Principal, task: Task) -> bool:
        return self._task_rule(principal, task)

    def can_modify_task(self, principal: Principal, task: Task) -> bool:
        return self._task_rule(principal, task)

    def can_create_task_in_department(self, principal: Principal, department_id: str) -> bool:
        if principal.is_owner:
            return True
        return self.role_for_department(principal, department_id) == Role.ADMIN

    def can_manage_department_members(
        self, principal: Principal, department_id: str, target_role: Role
    ) -> bool:
        """
        Inviting or removing members.

        - as ADMIN: owner only
        - as VIEWER: owner or an admin of the department
        """
        if principal.is_owner:
            return True
        if target_role != Role.VIEWER:
            return False
        return self.role_for_department(principal, department_id) == Role.ADMIN

    async def has_permission(
        self, principal: Principal, department_id: str, action: str, resource: str
    ) -> bool:
        if principal.is_owner:
            return True
        role = self.role_for_department(principal, department_id)
        if role is None:
            return False
        return await self._permissions.grants(action, resource, [role.value])

"""User identity and role schemas shared by the server and the client session."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, model_validator

from .common import Role


class UserResponse(BaseModel):
    """Profile of an authenticated user."""
    id: str
    email: str
    first_name: str
    last_name: str
    organization_id: str
    is_owner: bool = False
    created_at: Optional[datetime] = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class UserRoleResponse(BaseModel):
    """
    One row of the user/role pivot.

    OWNER rows are organization-wide and never carry a department;
    ADMIN and VIEWER rows are always scoped to one department.
    """
    id: str
    user_id: str
    role: Role
    department_id: Optional[str] = None

    @model_validator(mode="after")
    def _check_scope(self) -> "UserRoleResponse":
        if self.role == Role.OWNER and self.department_id is not None:
            raise ValueError("owner roles cannot be scoped to a department")
        if self.role != Role.OWNER and not self.department_id:
            raise ValueError(f"{self.role.value} roles require a department_id")
        return self


class MeResponse(BaseModel):
    """Response of the who-am-i endpoint."""
    user: UserResponse
    roles: List[UserRoleResponse]

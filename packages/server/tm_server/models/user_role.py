"""User/role pivot. OWNER rows are org-wide (no department); ADMIN and VIEWER rows are department-scoped."""

from typing import Optional
import uuid

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from taskmanager_shared.schemas.common import DEPARTMENT_ROLES, Role

from .base import UUIDMixin


class UserRole(UUIDMixin, SQLModel, table=True):
    __tablename__ = "user_roles"
    __table_args__ = (sa.UniqueConstraint("user_id", "department_id"),)

    user_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    role: str = Field(nullable=False)  # owner | admin | viewer
    department_id: Optional[uuid.UUID] = Field(
        default=None, foreign_key="departments.id", nullable=True, index=True
    )

    @classmethod
    def owner(cls, user_id: uuid.UUID) -> "UserRole":
        return cls(user_id=user_id, role=Role.OWNER.value, department_id=None)

    @classmethod
    def scoped(cls, user_id: uuid.UUID, role: Role, department_id: uuid.UUID) -> "UserRole":
        if role not in DEPARTMENT_ROLES:
            raise ValueError(f"{role.value} roles are organization-wide")
        return cls(user_id=user_id, role=role.value, department_id=department_id)

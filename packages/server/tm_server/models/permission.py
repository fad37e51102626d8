"""Permission matrix: presence of (action, resource, role) grants the action."""

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import UUIDMixin


class Permission(UUIDMixin, SQLModel, table=True):
    __tablename__ = "permissions"
    __table_args__ = (sa.UniqueConstraint("action", "resource", "role"),)

    action: str = Field(nullable=False)  # create | read | update | delete | invite
    resource: str = Field(nullable=False)  # task | department | user
    role: str = Field(nullable=False)  # admin | viewer

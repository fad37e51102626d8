"""Task model (only the columns access control reads)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Task(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "tasks"

    department_id: uuid.UUID = Field(foreign_key="departments.id", nullable=False, index=True)
    title: str = Field(nullable=False)
    created_by_id: uuid.UUID = Field(foreign_key="users.id", nullable=False, index=True)
    assigned_to_id: Optional[uuid.UUID] = Field(default=None, foreign_key="users.id", index=True)

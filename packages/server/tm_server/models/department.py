"""Department model (the scope of ADMIN / VIEWER roles)."""

from typing import Optional
import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class Department(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "departments"

    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    name: str = Field(nullable=False)
    description: Optional[str] = None

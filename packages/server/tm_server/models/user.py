"""User model."""

import uuid

from sqlmodel import Field, SQLModel

from .base import TimestampMixin, UUIDMixin


class User(UUIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"

    email: str = Field(unique=True, index=True, nullable=False)
    password_hash: str = Field(nullable=False)  # bcrypt, never serialized
    first_name: str = Field(nullable=False)
    last_name: str = Field(nullable=False)
    organization_id: uuid.UUID = Field(foreign_key="organizations.id", nullable=False, index=True)
    # Organization owner: bypasses every department-scoped check
    is_owner: bool = Field(default=False, nullable=False)

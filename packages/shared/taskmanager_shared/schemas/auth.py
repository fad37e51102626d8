"""Credential exchange schemas (login, register, refresh)."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class AuthTokens(BaseModel):
    """The credential pair. Access and refresh tokens always travel together."""
    access_token: str
    refresh_token: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    organization_name: Optional[str] = Field(default=None, max_length=200)


class RefreshRequest(BaseModel):
    refresh_token: str

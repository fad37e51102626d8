"""
Authentication for the task manager API.

Supports:
- Email/Password credentials (bcrypt)
- Access + refresh JWT pairs
- Resolving the bearer credential of a request into a ``Principal``
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskmanager_shared.schemas.auth import AuthTokens
from taskmanager_shared.schemas.common import Role
from taskmanager_shared.schemas.users import MeResponse, UserResponse, UserRoleResponse
from tm_server.core.config import get_settings
from tm_server.core.database import get_session
from tm_server.core.errors import AuthenticationRequired
from tm_server.models.user import User
from tm_server.models.user_role import UserRole

log = structlog.get_logger()
settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)

ACCESS = "access"
REFRESH = "refresh"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    """Hash a password using bcrypt with the configured cost factor."""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=settings.bcrypt_rounds)).decode()


def verify_password(password: str, hashed: str) -> bool:
    """Verify a password against a bcrypt hash."""
    return bcrypt.checkpw(password.encode(), hashed.encode())


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------

def _encode(payload: dict, lifetime: timedelta) -> str:
    now = datetime.now(timezone.utc)
    claims = {**payload, "iat": now, "exp": now + lifetime, "jti": str(uuid.uuid4())}
    return jwt.encode(claims, settings.secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(user: User, *, expires_delta: timedelta | None = None) -> str:
    return _encode(
        {"sub": str(user.id), "email": user.email, "is_owner": user.is_owner, "type": ACCESS},
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes),
    )


def create_refresh_token(user_id: uuid.UUID, *, expires_delta: timedelta | None = None) -> str:
    return _encode(
        {"sub": str(user_id), "type": REFRESH},
        expires_delta or timedelta(days=settings.refresh_token_expire_days),
    )


def create_token_pair(user: User) -> AuthTokens:
    """Build the access + refresh pair for a user."""
    return AuthTokens(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user.id),
    )


def decode_jwt(token: str) -> dict:
    """Decode and verify a JWT. Raises jwt.PyJWTError on failure."""
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])


def remaining_ttl(payload: dict) -> int:
    exp = payload.get("exp")
    if exp is None:
        return 1
    return int(exp - datetime.now(timezone.utc).timestamp())


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RoleGrant:
    """A role held by the principal; ``department_id`` is None for OWNER."""
    role: Role
    department_id: Optional[str] = None


@dataclass(frozen=True)
class Principal:
    """The authenticated caller as seen by the authorization engine."""
    user_id: str
    is_owner: bool = False
    roles: tuple[RoleGrant, ...] = field(default_factory=tuple)


def to_grant(row: UserRole) -> RoleGrant:
    return RoleGrant(
        role=Role(row.role),
        department_id=str(row.department_id) if row.department_id is not None else None,
    )


async def load_roles(session: AsyncSession, user_id: uuid.UUID) -> list[UserRole]:
    result = await session.execute(select(UserRole).where(UserRole.user_id == user_id))
    return list(result.scalars().all())


def build_principal(user: User, roles: list[UserRole]) -> Principal:
    return Principal(
        user_id=str(user.id),
        is_owner=user.is_owner,
        roles=tuple(to_grant(r) for r in roles),
    )


def build_me_response(user: User, roles: list[UserRole]) -> MeResponse:
    return MeResponse(
        user=UserResponse(
            id=str(user.id),
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            organization_id=str(user.organization_id),
            is_owner=user.is_owner,
            created_at=user.created_at,
        ),
        roles=[
            UserRoleResponse(
                id=str(r.id),
                user_id=str(r.user_id),
                role=Role(r.role),
                department_id=str(r.department_id) if r.department_id is not None else None,
            )
            for r in roles
        ],
    )


# ---------------------------------------------------------------------------
# Authentication dependencies
# ---------------------------------------------------------------------------

async def _user_from_access_token(token: str, session: AsyncSession) -> User:
    try:
        payload = decode_jwt(token)
    except jwt.PyJWTError:
        raise AuthenticationRequired("Invalid or expired token")

    if payload.get("type") != ACCESS:
        raise AuthenticationRequired("Invalid token type")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise AuthenticationRequired("Invalid or expired token")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationRequired("User not found")
    return user


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Resolve the bearer credential into a User. 401 when absent or invalid."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationRequired()
    user = await _user_from_access_token(credentials.credentials, session)
    structlog.contextvars.bind_contextvars(user_id=str(user.id))
    return user


async def get_principal(
    request: Request,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Principal:
    """Main authentication dependency: the caller plus all of their role rows."""
    roles = await load_roles(session, user.id)
    principal = build_principal(user, roles)
    request.state.principal = principal
    return principal


async def get_optional_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> Optional[Principal]:
    """Like ``get_principal`` but yields None when no bearer credential is sent."""
    if credentials is None:
        return None
    user = await get_current_user(request, credentials, session)
    return await get_principal(request, user, session)

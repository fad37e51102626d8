"""
Authentication endpoints.

- Email/Password registration & login → access/refresh token pair
- Refresh token exchange (the presented refresh token is rotated out)
- Who-am-i for the bearer credential
"""

from __future__ import annotations

import uuid

import jwt
import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from taskmanager_shared.schemas.auth import AuthTokens, LoginRequest, RefreshRequest, RegisterRequest
from taskmanager_shared.schemas.users import MeResponse
from tm_server.core.auth import (
    REFRESH,
    build_me_response,
    create_token_pair,
    decode_jwt,
    get_current_user,
    hash_password,
    load_roles,
    remaining_ttl,
    verify_password,
)
from tm_server.core.authorization import authorize
from tm_server.core.database import get_session
from tm_server.core.errors import AuthenticationRequired
from tm_server.core.redis import is_jwt_revoked, revoke_jwt
from tm_server.models.organization import Organization
from tm_server.models.user import User
from tm_server.models.user_role import UserRole

log = structlog.get_logger()
router = APIRouter()

MIN_PASSWORD_LENGTH = 8


# ---------------------------------------------------------------------------
# Email/Password Registration
# ---------------------------------------------------------------------------

@router.post("/register", response_model=AuthTokens, status_code=201)
async def register(
    body: RegisterRequest,
    session: AsyncSession = Depends(get_session),
):
    """Register a new user. Creates an organization with the user as its owner."""
    result = await session.execute(select(User).where(User.email == body.email))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=409, detail="Email already registered")

    if len(body.password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters",
        )

    org = Organization(
        id=uuid.uuid4(),
        name=body.organization_name or f"{body.first_name}'s Organization",
    )
    session.add(org)

    user = User(
        id=uuid.uuid4(),
        email=body.email,
        password_hash=hash_password(body.password),
        first_name=body.first_name,
        last_name=body.last_name,
        organization_id=org.id,
        is_owner=True,
    )
    session.add(user)
    session.add(UserRole.owner(user.id))
    await session.flush()

    log.info("user.registered", user_id=str(user.id), org_id=str(org.id))
    return create_token_pair(user)


@router.post("/login", response_model=AuthTokens, status_code=201)
async def login(
    body: LoginRequest,
    session: AsyncSession = Depends(get_session),
):
    """Authenticate with email/password and receive a token pair."""
    result = await session.execute(select(User).where(User.email == body.email))
    user = result.scalar_one_or_none()

    if not user or not verify_password(body.password, user.password_hash):
        log.warning("auth.login_failure", reason="bad_credentials")
        raise AuthenticationRequired("Invalid credentials")

    log.info("auth.login_success", user_id=str(user.id))
    return create_token_pair(user)


# ---------------------------------------------------------------------------
# Session Management
# ---------------------------------------------------------------------------

@router.post("/refresh", response_model=AuthTokens, status_code=201)
async def refresh(
    body: RefreshRequest,
    session: AsyncSession = Depends(get_session),
):
    """Exchange a refresh token for a new token pair."""
    try:
        payload = decode_jwt(body.refresh_token)
    except jwt.PyJWTError:
        raise AuthenticationRequired("Invalid or expired token")

    if payload.get("type") != REFRESH:
        raise AuthenticationRequired("Invalid token type")

    jti = payload.get("jti")
    if jti and await is_jwt_revoked(jti):
        log.warning("auth.refresh_reused", user_id=payload.get("sub"))
        raise AuthenticationRequired("Refresh token has been revoked")

    try:
        user_id = uuid.UUID(payload["sub"])
    except (KeyError, ValueError):
        raise AuthenticationRequired("Invalid or expired token")

    result = await session.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if not user:
        raise AuthenticationRequired("User not found")

    tokens = create_token_pair(user)
    if jti:
        await revoke_jwt(jti, remaining_ttl(payload))

    log.info("auth.refreshed", user_id=str(user.id))
    return tokens


@router.get("/me", response_model=MeResponse, dependencies=[Depends(authorize("auth.me"))])
async def me(
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Current user profile with every role row."""
    roles = await load_roles(session, user.id)
    return build_me_response(user, roles)

"""
Token lifecycle: expiry checks, refresh exchange, restore-from-storage,
login, registration and logout.
"""

from __future__ import annotations

import asyncio
import json
import math
import time
from typing import Callable, Optional

import structlog
from jwt.utils import base64url_decode
from pydantic import ValidationError

from taskmanager_shared.schemas.auth import AuthTokens, RegisterRequest
from taskmanager_shared.schemas.users import MeResponse

from .config import EndpointPaths
from .errors import ApiError, RefreshRejected, TokenExpired, decode_error, read_json
from .metrics import MetricsCollector
from .retry import RetryCoordinator
from .session import SessionStore
from .storage import TokenStorage

log = structlog.get_logger()

EXPIRY_MARGIN_MS = 5000
LOGIN_ROUTE = "/auth/login"

LogoutListener = Callable[[str], None]


def is_expired(token: str, *, now_ms: Optional[int] = None, margin_ms: int = EXPIRY_MARGIN_MS) -> bool:
    """
    True if ``token`` is expired, expires within ``margin_ms``, or cannot be read.

    Only the ``exp`` claim of the payload segment is consulted. The header
    and signature are the server's business.
    """
    try:
        claims = json.loads(base64url_decode(token.split(".")[1]))
        exp_ms = float(claims["exp"]) * 1000
    except (IndexError, KeyError, TypeError, ValueError, OverflowError):
        return True
    if not math.isfinite(exp_ms):
        return True
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return now_ms >= exp_ms - margin_ms


class TokenManager:
    def __init__(
        self,
        coordinator: RetryCoordinator,
        storage: TokenStorage,
        store: SessionStore,
        *,
        paths: EndpointPaths | None = None,
        margin_ms: int = EXPIRY_MARGIN_MS,
        login_route: str = LOGIN_ROUTE,
        metrics: MetricsCollector | None = None,
    ):
        self._coordinator = coordinator
        self._storage = storage
        self._store = store
        self._paths = paths or EndpointPaths()
        self._margin_ms = margin_ms
        self._login_route = login_route
        self._metrics = metrics or MetricsCollector()
        self._restore: asyncio.Task[bool] | None = None
        self._logout_listeners: list[LogoutListener] = []
        coordinator.bind(self)

    def on_logout(self, listener: LogoutListener) -> None:
        """Register a callback invoked with the login route after every logout."""
        self._logout_listeners.append(listener)

    def is_expired(self, token: str, *, now_ms: Optional[int] = None) -> bool:
        return is_expired(token, now_ms=now_ms, margin_ms=self._margin_ms)

    async def get_access_token(self) -> Optional[str]:
        return await self._storage.get_access_token()

    async def require_fresh_token(self) -> str:
        """Return the stored access token, or raise ``TokenExpired`` if it fails the expiry check."""
        token = await self._storage.get_access_token()
        if not token or self.is_expired(token):
            raise TokenExpired("Access token is missing or expired")
        return token

    async def refresh(self) -> AuthTokens:
        """
        Exchange the stored refresh token for a new pair.

        Joins the coordinator's in-flight exchange if there is one. Raises
        ``RefreshRejected`` on any rejection; it never clears state itself.
        """
        return await self._coordinator.refresh()

    async def exchange_refresh_token(self) -> AuthTokens:
        """Send the refresh request. Persists the pair and pushes it into the session store."""
        refresh_token = await self._storage.get_refresh_token()
        if not refresh_token:
            raise RefreshRejected("No refresh token stored")

        request = self._coordinator.build_request(
            "POST", self._paths.refresh, json={"refresh_token": refresh_token}
        )
        response = await self._coordinator.send(request)
        if response.is_error:
            error = decode_error(response)
            raise RefreshRejected(error.message, status=error.status, server_message=error.server_message)
        try:
            tokens = AuthTokens.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise RefreshRejected("Malformed refresh response", status=response.status_code) from exc

        await self._storage.save_tokens(tokens)
        self._store.set_tokens(tokens)
        self._metrics.inc("refresh_exchanges_total")
        return tokens

    async def current_user(self) -> MeResponse:
        response = await self._coordinator.request("GET", self._paths.me)
        return MeResponse.model_validate(read_json(response))

    async def initialize_from_storage(self) -> bool:
        """
        Restore the session from stored credentials.

        Concurrent callers share a single attempt until ``logout`` clears it.
        Failures are not surfaced: the session is logged out and False returned.
        """
        if self._restore is None:
            self._restore = asyncio.ensure_future(self._do_initialize())
        return await asyncio.shield(self._restore)

    async def _do_initialize(self) -> bool:
        try:
            access = await self._storage.get_access_token()
            refresh = await self._storage.get_refresh_token()
            if not access and not refresh:
                return False

            if not access or self.is_expired(access):
                if not refresh:
                    return False
                await self.refresh()

            me = await self.current_user()
            tokens = AuthTokens(
                access_token=await self._storage.get_access_token() or "",
                refresh_token=await self._storage.get_refresh_token() or "",
            )
            self._store.set_auth_response(me.user, me.roles, tokens)
            log.info("session.restored", user_id=me.user.id)
            return True
        except Exception as exc:
            log.info("session.restore_failed", error=type(exc).__name__, detail=str(exc))
            await self._coordinator.force_logout(exc)
            return False

    async def logout(self) -> None:
        try:
            await self._storage.clear()
        finally:
            self._store.clear_auth()
            self._restore = None
            log.info("session.logged_out")
            for listener in list(self._logout_listeners):
                listener(self._login_route)

    def reset(self) -> None:
        """Forget the memoized restore attempt."""
        self._restore = None

    async def _establish(self, path: str, payload: dict, fallback: str) -> MeResponse:
        self._store.set_loading(True)
        self._store.set_error(None)
        try:
            response = await self._coordinator.request("POST", path, json=payload)
            tokens = AuthTokens.model_validate(read_json(response))
            await self._storage.save_tokens(tokens)
            me = await self.current_user()
            self._store.set_auth_response(me.user, me.roles, tokens)
            return me
        except ApiError as exc:
            self._store.set_error(exc.server_message or fallback)
            raise
        except Exception:
            self._store.set_error(fallback)
            raise
        finally:
            self._store.set_loading(False)

    async def login(self, email: str, password: str) -> MeResponse:
        me = await self._establish(
            self._paths.login, {"email": email, "password": password}, "Login failed"
        )
        log.info("session.logged_in", user_id=me.user.id)
        return me

    async def register(self, payload: RegisterRequest) -> MeResponse:
        me = await self._establish(
            self._paths.register_path, payload.model_dump(exclude_none=True), "Registration failed"
        )
        log.info("session.registered", user_id=me.user.id)
        return me

"""
Authenticated request pipeline.

Every outbound request passes through ``RetryCoordinator.send``. Requests to
non-exempt endpoints carry the stored access token. When one of them comes
back 401, the coordinator's shared refresh exchange is started (or joined if
one is already in flight, whoever started it); parked callers resume with
the new pair from a shared ``TokenBroadcast``. Each failed request is
retried exactly once.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional, Protocol, Sequence

import httpx
import structlog

from taskmanager_shared.schemas.auth import AuthTokens

from .errors import ApiError, RefreshRejected, decode_error, network_failure
from .metrics import MetricsCollector

log = structlog.get_logger()

DEFAULT_EXEMPT_PATHS = ("/auth/login", "/auth/register", "/auth/refresh")


class SessionAuthority(Protocol):
    """What the coordinator needs from the token manager."""

    async def get_access_token(self) -> Optional[str]: ...

    async def exchange_refresh_token(self) -> AuthTokens: ...

    async def logout(self) -> None: ...


class TokenBroadcast:
    """
    Single-value slot holding the most recently refreshed token pair.

    ``next_value`` returns immediately if a pair is present; otherwise it
    waits until ``publish`` fills the slot or ``abort`` wakes every waiter
    with an error.
    """

    def __init__(self) -> None:
        self._value: Optional[AuthTokens] = None
        self._waiters: list[asyncio.Future[AuthTokens]] = []

    @property
    def value(self) -> Optional[AuthTokens]:
        return self._value

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def clear(self) -> None:
        self._value = None

    def publish(self, tokens: AuthTokens) -> None:
        self._value = tokens
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_result(tokens)

    def abort(self, exc: BaseException) -> None:
        self._value = None
        waiters, self._waiters = self._waiters, []
        for fut in waiters:
            if not fut.done():
                fut.set_exception(exc)

    async def next_value(self) -> AuthTokens:
        if self._value is not None:
            return self._value
        fut: asyncio.Future[AuthTokens] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            return await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)


def with_bearer(request: httpx.Request, token: str) -> httpx.Request:
    """Copy ``request`` with an ``Authorization: Bearer`` header."""
    headers = httpx.Headers(request.headers)
    headers["Authorization"] = f"Bearer {token}"
    return httpx.Request(
        request.method,
        request.url,
        headers=headers,
        content=request.content,
        extensions=request.extensions,
    )


class RetryCoordinator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        exempt_paths: Sequence[str] = DEFAULT_EXEMPT_PATHS,
        metrics: MetricsCollector | None = None,
    ):
        self._client = client
        self._exempt_paths = tuple(exempt_paths)
        self._metrics = metrics or MetricsCollector()
        self._authority: SessionAuthority | None = None
        self._refreshing = False
        self._broadcast = TokenBroadcast()
        self._forced_by: BaseException | None = None

    def bind(self, authority: SessionAuthority) -> None:
        self._authority = authority

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def broadcast(self) -> TokenBroadcast:
        return self._broadcast

    def reset(self) -> None:
        """Drop refresh state. Parked requests fail with ``RefreshRejected``."""
        self._refreshing = False
        self._release_parked("Session reset")

    def _release_parked(self, reason: str) -> None:
        # Parked callers fail, but the session is not logged out on their behalf
        error = RefreshRejected(reason)
        self._forced_by = error
        self._broadcast.abort(error)

    def is_exempt(self, url: httpx.URL) -> bool:
        return any(path in url.path for path in self._exempt_paths)

    async def _transmit(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._client.send(request)
        except httpx.TransportError as exc:
            log.warning("http.network_failure", path=request.url.path, error=str(exc))
            raise network_failure(exc) from exc

    async def send(self, request: httpx.Request) -> httpx.Response:
        """
        Send ``request`` and return the response.

        Non-401 responses come back untouched, whatever their status. A 401
        on a non-exempt endpoint triggers the refresh-and-retry cycle; if the
        refresh is rejected the session is logged out and the request's own
        ``AuthorizationFailure`` is raised.
        """
        if self.is_exempt(request.url) or self._authority is None:
            return await self._transmit(request)

        token = await self._authority.get_access_token()
        if token:
            request = with_bearer(request, token)

        response = await self._transmit(request)
        if response.status_code != 401:
            return response

        failure = decode_error(response)
        self._metrics.inc("auth_failures_total")
        try:
            tokens = await self.refresh()
        except ApiError as exc:
            await self.force_logout(exc)
            raise failure from exc

        self._metrics.inc("requests_retried_total")
        log.debug("http.retrying", path=request.url.path)
        return await self._transmit(with_bearer(request, tokens.access_token))

    async def refresh(self) -> AuthTokens:
        """
        Run the refresh exchange, or join the one already in flight.

        Only one exchange runs at a time no matter who asks for it: failing
        requests, session restore and explicit refreshes all share it.
        Rejections reach every caller as the same ``ApiError``.
        """
        assert self._authority, "coordinator is not bound to a token manager"
        if self._refreshing:
            return await self._broadcast.next_value()

        # The flag is set before the first suspension point so concurrent
        # callers observe it and park on the broadcast.
        self._refreshing = True
        self._broadcast.clear()
        log.info("auth.refresh_started")
        try:
            tokens = await self._authority.exchange_refresh_token()
        except ApiError as exc:
            self._refreshing = False
            self._broadcast.abort(exc)
            log.warning("auth.refresh_rejected", kind=exc.kind.value, status=exc.status)
            raise
        except BaseException:
            self._refreshing = False
            self._release_parked("Token refresh interrupted")
            raise

        self._refreshing = False
        self._broadcast.publish(tokens)
        log.info("auth.refresh_completed")
        return tokens

    async def force_logout(self, cause: BaseException) -> None:
        """Log the session out, once per failure however many callers report it."""
        assert self._authority, "coordinator is not bound to a token manager"
        if self._forced_by is not None and self._forced_by in (cause, cause.__cause__):
            return
        self._forced_by = cause
        self._metrics.inc("forced_logouts_total")
        await self._authority.logout()

    def build_request(self, method: str, url: str, **kwargs: Any) -> httpx.Request:
        return self._client.build_request(method, url, **kwargs)

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> httpx.Response:
        """Build, send and check a request. Non-success statuses raise their typed ``ApiError``."""
        req = self.build_request(method, url, json=json, params=params, headers=headers)
        response = await self.send(req)
        if response.is_error:
            raise decode_error(response)
        return response

"""
Task Manager API client.

Wires storage, session store, retry coordinator and token manager together
and manages their lifecycle.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
import structlog

from .config import ClientConfig
from .errors import read_json
from .metrics import MetricsCollector
from .retry import RetryCoordinator
from .session import SessionStore
from .storage import MemoryTokenStorage, SqliteTokenStorage, TokenStorage
from .tokens import TokenManager

log = structlog.get_logger()


class TaskManagerClient:
    """
    One authenticated session against a Task Manager server.

    Use as an async context manager, or call ``open``/``close`` explicitly.
    ``transport`` and ``storage`` may be injected for tests.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        storage: TokenStorage | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._config = config or ClientConfig()
        self._storage = storage or self._default_storage()
        self._transport = transport
        self._http: httpx.AsyncClient | None = None
        self.metrics = MetricsCollector()
        self.session = SessionStore()
        self._coordinator: RetryCoordinator | None = None
        self._tokens: TokenManager | None = None

    def _default_storage(self) -> TokenStorage:
        if self._config.storage.backend == "sqlite":
            return SqliteTokenStorage(self._config.storage.db_path)
        return MemoryTokenStorage()

    async def open(self) -> None:
        if isinstance(self._storage, SqliteTokenStorage):
            await self._storage.open()
        api = self._config.api
        self._http = httpx.AsyncClient(
            base_url=api.url,
            timeout=api.request_timeout_seconds,
            verify=api.verify_tls,
            transport=self._transport,
        )
        self._coordinator = RetryCoordinator(
            self._http, exempt_paths=api.paths.exempt, metrics=self.metrics
        )
        self._tokens = TokenManager(
            self._coordinator,
            self._storage,
            self.session,
            paths=api.paths,
            margin_ms=self._config.session.expiry_margin_ms,
            login_route=self._config.session.login_path,
            metrics=self.metrics,
        )
        log.debug("client.opened", url=api.url)

    async def close(self) -> None:
        if self._http:
            await self._http.aclose()
            self._http = None
        if isinstance(self._storage, SqliteTokenStorage):
            await self._storage.close()

    async def __aenter__(self) -> "TaskManagerClient":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def tokens(self) -> TokenManager:
        assert self._tokens, "client is not open"
        return self._tokens

    @property
    def coordinator(self) -> RetryCoordinator:
        assert self._coordinator, "client is not open"
        return self._coordinator

    @property
    def storage(self) -> TokenStorage:
        return self._storage

    def reset(self) -> None:
        """Drop in-flight refresh and restore state without touching credentials."""
        self.coordinator.reset()
        self.tokens.reset()

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return await self.coordinator.request(method, path, **kwargs)

    async def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        response = await self.request("GET", path, params=params)
        return read_json(response)

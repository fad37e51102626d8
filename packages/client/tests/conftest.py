"""
Shared fixtures for client tests.

``FakeAuthServer`` is a small FastAPI app speaking the server's auth
contract. Tests drive it through ``httpx.ASGITransport`` so every request
stays in-process and on the test's event loop.
"""

import asyncio
import time
import uuid

import httpx
import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from tm_client.client import TaskManagerClient
from tm_client.config import ClientConfig, StorageConfig

SECRET = "fake-server-secret-used-only-by-the-client-tests"
PASSWORD = "correct-horse"

USER = {
    "id": "user-1",
    "email": "ada@example.com",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "organization_id": "org-1",
    "is_owner": False,
}
ROLES = [
    {"id": "role-1", "user_id": "user-1", "role": "admin", "department_id": "dept-1"},
    {"id": "role-2", "user_id": "user-1", "role": "viewer", "department_id": "dept-2"},
]


def make_token(exp_offset: float = 900, **claims) -> str:
    payload = {"sub": "user-1", "exp": int(time.time() + exp_offset), "jti": uuid.uuid4().hex, **claims}
    return jwt.encode(payload, SECRET, algorithm="HS256")


def _error(status: int, message: str) -> JSONResponse:
    code = "AUTHENTICATION_REQUIRED" if status == 401 else "HTTP_ERROR"
    return JSONResponse(
        status_code=status, content={"error": {"code": code, "message": message, "status": status}}
    )


class FakeAuthServer:
    """Issues real JWTs and tracks which ones it still accepts."""

    def __init__(self) -> None:
        self.access_tokens: set[str] = set()
        self.refresh_tokens: set[str] = set()
        self.refresh_calls = 0
        self.reject_refresh = False
        self.refresh_delay = 0.05
        self.seen_auth: list[tuple[str, str | None]] = []
        self.app = self._build()

    def issue(self, access_exp: float = 900) -> dict:
        pair = {
            "access_token": make_token(access_exp, type="access"),
            "refresh_token": make_token(7 * 86400, type="refresh"),
        }
        self.access_tokens.add(pair["access_token"])
        self.refresh_tokens.add(pair["refresh_token"])
        return pair

    def expire_access_tokens(self) -> None:
        """Server-side expiry: every outstanding access token is now rejected."""
        self.access_tokens.clear()

    def _authorized(self, request: Request) -> bool:
        header = request.headers.get("authorization")
        self.seen_auth.append((request.url.path, header))
        if not header or not header.startswith("Bearer "):
            return False
        return header[len("Bearer "):] in self.access_tokens

    def _build(self) -> FastAPI:
        app = FastAPI()

        @app.post("/api/auth/login", status_code=201)
        async def login(request: Request):
            self.seen_auth.append((request.url.path, request.headers.get("authorization")))
            body = await request.json()
            if body.get("password") != PASSWORD:
                return _error(401, "Invalid credentials")
            return self.issue()

        @app.post("/api/auth/register", status_code=201)
        async def register(request: Request):
            body = await request.json()
            if body.get("email") == USER["email"]:
                return _error(409, "Email already registered")
            return self.issue()

        @app.post("/api/auth/refresh", status_code=201)
        async def refresh(request: Request):
            self.seen_auth.append((request.url.path, request.headers.get("authorization")))
            self.refresh_calls += 1
            body = await request.json()
            await asyncio.sleep(self.refresh_delay)
            token = body.get("refresh_token")
            if self.reject_refresh or token not in self.refresh_tokens:
                return _error(401, "Invalid or expired token")
            self.refresh_tokens.discard(token)
            return self.issue()

        @app.get("/api/auth/me")
        async def me(request: Request):
            if not self._authorized(request):
                return _error(401, "Invalid or expired token")
            return {"user": USER, "roles": ROLES}

        @app.get("/api/tasks")
        async def tasks(request: Request):
            if not self._authorized(request):
                return _error(401, "Invalid or expired token")
            return [{"id": "task-1", "title": "Write report"}]

        @app.get("/api/broken")
        async def broken(request: Request):
            if not self._authorized(request):
                return _error(401, "Invalid or expired token")
            return _error(500, "Database unavailable")

        return app


@pytest.fixture
def server():
    return FakeAuthServer()


@pytest.fixture
def config():
    return ClientConfig(storage=StorageConfig(backend="memory"))


@pytest.fixture
async def client(server, config):
    c = TaskManagerClient(config, transport=httpx.ASGITransport(app=server.app))
    await c.open()
    yield c
    await c.close()


@pytest.fixture
async def logged_in(client):
    await client.tokens.login(USER["email"], PASSWORD)
    return client


@pytest.fixture
def credentials():
    return {"email": USER["email"], "password": PASSWORD}


@pytest.fixture
def token_factory():
    return make_token

"""Tests for the refresh-and-retry request pipeline."""

import asyncio

import httpx
import pytest

from taskmanager_shared.schemas.auth import AuthTokens
from tm_client.client import TaskManagerClient
from tm_client.errors import AuthorizationFailure, HttpError, NetworkFailure, RefreshRejected
from tm_client.retry import TokenBroadcast


def _task_headers(server) -> list:
    return [header for path, header in server.seen_auth if path == "/api/tasks"]


# --- credential attachment ---


async def test_bearer_attached_when_token_stored(logged_in, server):
    await logged_in.get_json("/api/tasks")
    token = await logged_in.storage.get_access_token()
    assert _task_headers(server) == [f"Bearer {token}"]


async def test_no_bearer_without_stored_token(client, server):
    with pytest.raises(AuthorizationFailure):
        await client.get_json("/api/tasks")
    assert _task_headers(server)[0] is None


async def test_exempt_endpoints_never_carry_bearer(logged_in, server, credentials):
    server.seen_auth.clear()
    await logged_in.tokens.login(**credentials)
    await logged_in.tokens.refresh()
    exempt = [(p, h) for p, h in server.seen_auth if p in ("/api/auth/login", "/api/auth/refresh")]
    assert exempt == [("/api/auth/login", None), ("/api/auth/refresh", None)]


async def test_exempt_401_is_not_retried(client, server, credentials):
    with pytest.raises(AuthorizationFailure):
        await client.tokens.login(credentials["email"], "wrong-password")
    assert server.refresh_calls == 0


# --- refresh and retry ---


async def test_expired_session_is_refreshed_transparently(logged_in, server):
    old = await logged_in.storage.get_access_token()
    server.expire_access_tokens()

    tasks = await logged_in.get_json("/api/tasks")

    assert tasks == [{"id": "task-1", "title": "Write report"}]
    assert server.refresh_calls == 1
    new = await logged_in.storage.get_access_token()
    assert new != old
    assert _task_headers(server) == [f"Bearer {old}", f"Bearer {new}"]


async def test_concurrent_failures_share_one_refresh(logged_in, server):
    server.expire_access_tokens()

    results = await asyncio.gather(*(logged_in.get_json("/api/tasks") for _ in range(5)))

    assert all(r == [{"id": "task-1", "title": "Write report"}] for r in results)
    assert server.refresh_calls == 1
    new = await logged_in.storage.get_access_token()
    assert _task_headers(server)[-5:] == [f"Bearer {new}"] * 5
    assert logged_in.metrics.get("requests_retried_total") == 5
    assert logged_in.metrics.get("refresh_exchanges_total") == 1
    assert not logged_in.coordinator.refreshing


async def test_rejected_refresh_forces_logout(logged_in, server):
    redirects = []
    logged_in.tokens.on_logout(redirects.append)
    server.expire_access_tokens()
    server.reject_refresh = True

    with pytest.raises(AuthorizationFailure) as exc_info:
        await logged_in.get_json("/api/tasks")

    assert isinstance(exc_info.value.__cause__, RefreshRejected)
    assert not logged_in.session.is_authenticated()
    assert logged_in.storage.keys() == set()
    assert redirects == ["/auth/login"]
    assert logged_in.metrics.get("forced_logouts_total") == 1


async def test_rejected_refresh_fails_every_parked_request(logged_in, server):
    server.expire_access_tokens()
    server.reject_refresh = True

    results = await asyncio.gather(
        *(logged_in.get_json("/api/tasks") for _ in range(3)), return_exceptions=True
    )

    assert all(isinstance(r, AuthorizationFailure) for r in results)
    assert server.refresh_calls == 1
    assert not logged_in.coordinator.refreshing
    assert logged_in.coordinator.broadcast.value is None


async def test_other_errors_pass_through(logged_in, server):
    with pytest.raises(HttpError) as exc_info:
        await logged_in.get_json("/api/broken")
    assert exc_info.value.status == 500
    assert exc_info.value.message == "Database unavailable"
    assert server.refresh_calls == 0


async def test_send_returns_non_401_responses_untouched(logged_in):
    request = logged_in.coordinator.build_request("GET", "/api/broken")
    response = await logged_in.coordinator.send(request)
    assert response.status_code == 500


async def test_retry_happens_exactly_once(config):
    calls = {"tasks": 0, "refresh": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/auth/refresh":
            calls["refresh"] += 1
            return httpx.Response(201, json={"access_token": "a2", "refresh_token": "r2"})
        calls["tasks"] += 1
        return httpx.Response(401, json={"error": {"code": "AUTHENTICATION_REQUIRED", "message": "nope", "status": 401}})

    async with TaskManagerClient(config, transport=httpx.MockTransport(handler)) as client:
        await client.storage.save_tokens(AuthTokens(access_token="a1", refresh_token="r1"))
        with pytest.raises(AuthorizationFailure):
            await client.get_json("/api/tasks")

    assert calls == {"tasks": 2, "refresh": 1}


async def test_transport_errors_become_network_failures(config):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with TaskManagerClient(config, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(NetworkFailure):
            await client.get_json("/api/tasks")


# --- TokenBroadcast ---


async def test_broadcast_returns_current_value():
    broadcast = TokenBroadcast()
    broadcast.publish("t1")
    assert await broadcast.next_value() == "t1"


async def test_broadcast_wakes_waiters_on_publish():
    broadcast = TokenBroadcast()
    waiters = [asyncio.ensure_future(broadcast.next_value()) for _ in range(3)]
    await asyncio.sleep(0)
    assert broadcast.waiting == 3

    broadcast.publish("t2")
    assert await asyncio.gather(*waiters) == ["t2", "t2", "t2"]
    assert broadcast.waiting == 0


async def test_broadcast_abort_fails_waiters():
    broadcast = TokenBroadcast()
    waiter = asyncio.ensure_future(broadcast.next_value())
    await asyncio.sleep(0)

    broadcast.abort(RefreshRejected("denied"))

    with pytest.raises(RefreshRejected):
        await waiter
    assert broadcast.value is None


async def test_coordinator_reset_releases_parked_requests(logged_in):
    waiter = asyncio.ensure_future(logged_in.coordinator.broadcast.next_value())
    await asyncio.sleep(0)

    logged_in.reset()

    with pytest.raises(RefreshRejected):
        await waiter
    assert not logged_in.coordinator.refreshing


async def test_reset_fails_parked_requests_without_logout(logged_in, server):
    server.expire_access_tokens()
    server.refresh_delay = 0.2

    leader = asyncio.ensure_future(logged_in.get_json("/api/tasks"))
    while not logged_in.coordinator.refreshing:
        await asyncio.sleep(0.01)
    parked = asyncio.ensure_future(logged_in.get_json("/api/tasks"))
    while logged_in.coordinator.broadcast.waiting == 0:
        await asyncio.sleep(0.01)

    logged_in.reset()

    with pytest.raises(AuthorizationFailure):
        await parked
    assert await leader == [{"id": "task-1", "title": "Write report"}]
    assert logged_in.session.is_authenticated()
    assert logged_in.metrics.get("forced_logouts_total") == 0


async def test_non_json_success_body_is_an_http_error(config):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>captive portal</html>")

    async with TaskManagerClient(config, transport=httpx.MockTransport(handler)) as client:
        with pytest.raises(HttpError) as exc_info:
            await client.get_json("/api/tasks")
    assert exc_info.value.status == 200

"""
Typed client errors.

Every failed exchange is decoded exactly once, at the transport boundary,
into an ``ApiError`` carrying an ``ErrorKind``, the HTTP status and the
server-supplied message (if any). Call sites branch on the type, never on
the raw body.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from taskmanager_shared.errors import ErrorKind, message_or


class ApiError(Exception):
    """Base class for every failure surfaced by the client."""

    kind: ErrorKind = ErrorKind.HTTP_ERROR

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        server_message: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.server_message = server_message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value}, status={self.status}, message={self.message!r})"


class AuthorizationFailure(ApiError):
    """The server rejected the credential (HTTP 401)."""
    kind = ErrorKind.AUTHORIZATION_FAILURE


class Forbidden(ApiError):
    """The credential is valid but the role or permission check failed (HTTP 403)."""
    kind = ErrorKind.FORBIDDEN


class RefreshRejected(ApiError):
    """The refresh exchange was denied. Always escalates to logout."""
    kind = ErrorKind.REFRESH_REJECTED


class TokenExpired(ApiError):
    """The stored access token fails the local expiry check."""
    kind = ErrorKind.TOKEN_EXPIRED


class NetworkFailure(ApiError):
    """Transport error; passed through untouched."""
    kind = ErrorKind.NETWORK_FAILURE


class HttpError(ApiError):
    """Any other non-success response."""
    kind = ErrorKind.HTTP_ERROR


def _body(response: httpx.Response) -> Optional[dict]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def decode_error(response: httpx.Response) -> ApiError:
    """Decode a non-success response into its typed error."""
    status = response.status_code
    server_message = message_or(_body(response), "") or None
    message = server_message or f"HTTP {status}"

    if status == 401:
        cls: type[ApiError] = AuthorizationFailure
    elif status == 403:
        cls = Forbidden
    else:
        cls = HttpError
    return cls(message, status=status, server_message=server_message)


def read_json(response: httpx.Response) -> Any:
    """Decode a response body as JSON. A body that is not JSON raises ``HttpError``."""
    try:
        return response.json()
    except ValueError as exc:
        raise HttpError(
            f"Malformed response body (HTTP {response.status_code})", status=response.status_code
        ) from exc


def network_failure(exc: httpx.TransportError) -> NetworkFailure:
    return NetworkFailure(str(exc) or type(exc).__name__)

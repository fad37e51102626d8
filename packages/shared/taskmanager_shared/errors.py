"""
Error taxonomy shared across the wire.

The server renders failures as ``{"error": {"code", "message", "status"}}``;
the client decodes that envelope once into an ``ErrorKind``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel


class ErrorKind(str, Enum):
    AUTHENTICATION_REQUIRED = "AUTHENTICATION_REQUIRED"
    FORBIDDEN = "FORBIDDEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    REFRESH_REJECTED = "REFRESH_REJECTED"
    AUTHORIZATION_FAILURE = "AUTHORIZATION_FAILURE"
    NETWORK_FAILURE = "NETWORK_FAILURE"
    HTTP_ERROR = "HTTP_ERROR"


class ErrorBody(BaseModel):
    code: str
    message: str
    status: int


class ErrorEnvelope(BaseModel):
    error: ErrorBody

    @classmethod
    def build(cls, code: str, message: str, status: int) -> "ErrorEnvelope":
        return cls(error=ErrorBody(code=code, message=message, status=status))


def code_for_status(status: int) -> str:
    """Map an HTTP status to the error code the server emits for it."""
    if status == 401:
        return ErrorKind.AUTHENTICATION_REQUIRED.value
    if status == 403:
        return ErrorKind.FORBIDDEN.value
    return ErrorKind.HTTP_ERROR.value


def message_or(body: Optional[dict], fallback: str) -> str:
    """Extract a human-readable message from an error body, else ``fallback``."""
    if not isinstance(body, dict):
        return fallback
    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    detail = body.get("detail")
    if isinstance(detail, str):
        return detail
    return fallback

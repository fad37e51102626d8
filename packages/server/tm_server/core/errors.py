"""
Authorization error types and the JSON error envelope.

Every HTTP error leaves the server as
``{"error": {"code": ..., "message": ..., "status": ...}}``.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from taskmanager_shared.errors import ErrorEnvelope, ErrorKind, code_for_status

log = structlog.get_logger()


class AuthenticationRequired(HTTPException):
    """No (valid) principal on a protected call."""

    code = ErrorKind.AUTHENTICATION_REQUIRED.value

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class Forbidden(HTTPException):
    """Role or permission check failed. Terminal for the request."""

    code = ErrorKind.FORBIDDEN.value

    def __init__(self, detail: str):
        super().__init__(status_code=403, detail=detail)


def error_response(status: int, message: str, code: str | None = None, headers=None) -> JSONResponse:
    envelope = ErrorEnvelope.build(code or code_for_status(status), message, status)
    return JSONResponse(status_code=status, content=envelope.model_dump(), headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = getattr(exc, "code", None)
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code >= 500:
        log.error("http.error", path=request.url.path, status=exc.status_code, message=message)
    return error_response(exc.status_code, message, code, headers=getattr(exc, "headers", None))


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{location}: {first.get('msg', 'invalid')}" if location else first.get("msg", "Validation error")
    return error_response(422, message, "VALIDATION_ERROR")


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

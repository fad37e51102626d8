"""
API v1 Router

Authentication endpoints live under /auth; access checks are attached to
operations through ``tm_server.core.authorization.authorize``.
"""

from fastapi import APIRouter

from . import auth

router = APIRouter()
router.include_router(auth.router, prefix="/auth", tags=["Authentication"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/auth/register",
            "/auth/login",
            "/auth/refresh",
            "/auth/me",
        ],
    }

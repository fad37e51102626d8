"""Redis connection and the refresh token revocation list."""

from __future__ import annotations

import redis.asyncio as redis

from tm_server.core.config import get_settings

settings = get_settings()

_redis_pool: redis.Redis | None = None

REVOKED_PREFIX = "jwt:revoked:"


async def get_redis() -> redis.Redis:
    """Get or create the Redis connection."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = redis.from_url(
            settings.redis_url,
            decode_responses=True,
        )
    return _redis_pool


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis_pool
    if _redis_pool is not None:
        await _redis_pool.aclose()
        _redis_pool = None


async def revoke_jwt(jti: str, ttl_seconds: int) -> None:
    """Revoke a token id until the token would have expired anyway."""
    client = await get_redis()
    await client.setex(f"{REVOKED_PREFIX}{jti}", max(ttl_seconds, 1), "1")


async def is_jwt_revoked(jti: str) -> bool:
    client = await get_redis()
    return await client.exists(f"{REVOKED_PREFIX}{jti}") > 0

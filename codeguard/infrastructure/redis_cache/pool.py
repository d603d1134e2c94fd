from __future__ import annotations

from typing import Optional

from redis.asyncio import Redis

from codeguard.settings import get_settings

_client: Optional[Redis] = None


def get_redis() -> Redis:
    """
    Shared Redis client for the verification store, created on first use.
    Strings in, strings out (decode_responses=True); a slow server surfaces
    as a timeout instead of hanging an abuse check.
    """
    global _client
    if _client is None:
        settings = get_settings()
        _client = Redis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_timeout=settings.redis_timeout_seconds,
            socket_connect_timeout=settings.redis_timeout_seconds,
        )
    return _client


async def close_redis() -> None:
    """Close and drop the shared client (safe to call twice)."""
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None

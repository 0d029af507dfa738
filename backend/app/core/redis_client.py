from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from app.core.config import settings

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from redis.asyncio import Redis as RedisClient

_client: "RedisClient | None" = None


def get_redis() -> "RedisClient | None":
    """Return a shared Redis client when REDIS_URL is configured; used for per-customer issuance locks."""
    global _client
    url = (settings.redis_url or "").strip()
    if not url:
        return None
    if _client is None:
        from redis.asyncio import Redis

        _client = Redis.from_url(url, encoding="utf-8", decode_responses=True)
    return _client


async def close_redis() -> None:
    global _client
    client = _client
    _client = None
    if client is None:
        return
    try:
        await client.aclose()
    except Exception:
        logger.exception("Failed to close Redis client")

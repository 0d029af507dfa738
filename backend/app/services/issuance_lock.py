from __future__ import annotations

import logging
import secrets
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.core.redis_client import get_redis
from app.services.errors import IssuanceInProgress

logger = logging.getLogger(__name__)

# Delete the key only if it still holds our token, so an expired lock re-acquired by
# another request is never released from here.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_warned_unlocked = False


def _lock_key(customer_id: str) -> str:
    return f"welcome_code_lock:{customer_id}"


def _warn_unlocked_once() -> None:
    global _warned_unlocked
    if _warned_unlocked:
        return
    _warned_unlocked = True
    logger.warning("issuance_lock_unavailable", extra={"detail": "REDIS_URL not set; concurrent issuance can race"})


@asynccontextmanager
async def customer_issuance_lock(customer_id: str, *, ttl_seconds: int = 30) -> AsyncIterator[None]:
    """Hold a short-lived per-customer Redis lock for the duration of one issuance.

    Raises ``IssuanceInProgress`` when another request holds the lock. Without Redis
    configured the body runs unguarded.
    """
    client = get_redis()
    if client is None:
        _warn_unlocked_once()
        yield
        return

    key = _lock_key(customer_id)
    token = secrets.token_hex(16)
    acquired = await client.set(key, token, nx=True, px=max(1, int(ttl_seconds)) * 1000)
    if not acquired:
        logger.info("issuance_lock_busy", extra={"customer_id": customer_id})
        raise IssuanceInProgress(customer_id)
    try:
        yield
    finally:
        try:
            await client.eval(_RELEASE_SCRIPT, 1, key, token)
        except Exception as exc:
            logger.warning("issuance_lock_release_failed", extra={"customer_id": customer_id, "error": str(exc)})


def _reset_for_tests() -> None:
    global _warned_unlocked
    _warned_unlocked = False

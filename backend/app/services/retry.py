from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from app.services.errors import CatalogError

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[object]]


async def with_rate_limit_retry(
    action: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``action``, backing off only on rate-limit failures.

    Waits ``initial_delay``, then doubles it on each further rate limit, for at most
    ``max_retries`` waits. Any other failure, or a rate limit once the budget is spent,
    is re-raised unchanged.
    """
    retries_left = max(0, int(max_retries))
    delay = float(initial_delay)
    while True:
        try:
            return await action()
        except CatalogError as exc:
            if not exc.is_rate_limited or retries_left <= 0:
                raise
            logger.info(
                "rate_limited_retry",
                extra={"retries_left": retries_left, "delay_seconds": delay, "catalog_path": exc.path},
            )
            await sleep(delay)
            retries_left -= 1
            delay *= 2

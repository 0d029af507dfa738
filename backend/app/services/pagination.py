from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from app.services.catalog_client import CatalogClient, CatalogPage, DiscountCode
from app.services.retry import Sleep, with_rate_limit_retry

logger = logging.getLogger(__name__)

RetryPolicy = Callable[[Callable[[], Awaitable[CatalogPage]]], Awaitable[CatalogPage]]


async def _no_retry(action: Callable[[], Awaitable[CatalogPage]]) -> CatalogPage:
    return await action()


async def fetch_all_rows(
    client: CatalogClient,
    first_path: str,
    *,
    key: str,
    retry: RetryPolicy | None = None,
) -> list[dict[str, Any]]:
    """Follow ``Link: rel="next"`` continuations until none is returned."""
    run = retry or _no_retry
    rows: list[dict[str, Any]] = []
    path: str | None = first_path
    pages = 0
    while path:
        current = path
        page = await run(lambda: client.get_page(current, key=key))
        rows.extend(page.items)
        pages += 1
        path = page.next_path
    logger.info("pagination_complete", extra={"pages": pages, "rows": len(rows), "resource": key})
    return rows


async def fetch_all(
    client: CatalogClient,
    first_path: str,
    *,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> list[DiscountCode]:
    """Every discount code behind ``first_path``, in page order; each page read backs off on rate limits."""

    async def _retry(action: Callable[[], Awaitable[CatalogPage]]) -> CatalogPage:
        return await with_rate_limit_retry(action, max_retries=max_retries, initial_delay=initial_delay, sleep=sleep)

    rows = await fetch_all_rows(client, first_path, key="discount_codes", retry=_retry)
    return [DiscountCode.from_api(row) for row in rows]

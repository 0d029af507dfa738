from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.schemas.maintenance import CodeSample, CodeStats
from app.services.catalog_client import CatalogClient, DiscountCode, discount_codes_path
from app.services.errors import MaintenanceFailed
from app.services.pagination import fetch_all
from app.services.retry import Sleep, with_rate_limit_retry

logger = logging.getLogger(__name__)

DAYS_TO_KEEP = 8
SAMPLE_SIZE = 5

Reporter = Callable[[CodeStats, int], Awaitable[None]]


@dataclass(frozen=True)
class MaintenanceResult:
    timestamp: str
    deleted: int
    stats_before: CodeStats
    stats_after: CodeStats


def compute_stats(codes: Sequence[DiscountCode]) -> CodeStats:
    return CodeStats(
        total=len(codes),
        used=sum(1 for c in codes if c.usage_count > 0),
        unused=sum(1 for c in codes if c.usage_count == 0),
        samples=[
            CodeSample(code=c.code, usage_count=c.usage_count, created_at=c.created_at) for c in codes[:SAMPLE_SIZE]
        ],
    )


def is_stale(created_at: datetime, *, days: int, now: datetime) -> bool:
    return created_at < now - timedelta(days=days)


def select_stale(codes: Iterable[DiscountCode], *, days: int, now: datetime) -> list[DiscountCode]:
    return [c for c in codes if is_stale(c.created_at, days=days, now=now)]


async def delete_codes(
    client: CatalogClient,
    codes: Sequence[DiscountCode],
    *,
    price_rule_id: str,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
    on_deleted: Callable[[DiscountCode], None] | None = None,
) -> int:
    """Delete ``codes`` one at a time; the first unrecoverable failure propagates."""
    deleted = 0
    for code in codes:
        code_id = code.id
        await with_rate_limit_retry(
            lambda: client.delete_discount_code(price_rule_id, code_id),
            max_retries=max_retries,
            initial_delay=initial_delay,
            sleep=sleep,
        )
        deleted += 1
        if on_deleted is not None:
            on_deleted(code)
    return deleted


async def run_maintenance(
    client: CatalogClient,
    *,
    price_rule_id: str,
    days_to_keep: int = DAYS_TO_KEEP,
    max_retries: int = 3,
    initial_delay: float = 1.0,
    now: datetime | None = None,
    sleep: Sleep = asyncio.sleep,
    reporter: Reporter | None = None,
) -> MaintenanceResult:
    """Fetch every code, delete the stale ones, re-fetch, and report the outcome.

    Any failure before reporting aborts the run with ``MaintenanceFailed``, which
    carries the number of deletions that completed before the failure.
    """
    moment = now or datetime.now(timezone.utc)
    timestamp = moment.isoformat()
    first_path = discount_codes_path(price_rule_id)
    logger.info("maintenance_start", extra={"timestamp": timestamp, "days_to_keep": days_to_keep})

    deleted = 0

    def _count(_: DiscountCode) -> None:
        nonlocal deleted
        deleted += 1

    try:
        codes = await fetch_all(client, first_path, max_retries=max_retries, initial_delay=initial_delay, sleep=sleep)
        stats_before = compute_stats(codes)

        stale = select_stale(codes, days=days_to_keep, now=moment)
        if stale:
            await delete_codes(
                client,
                stale,
                price_rule_id=price_rule_id,
                max_retries=max_retries,
                initial_delay=initial_delay,
                sleep=sleep,
                on_deleted=_count,
            )
            logger.info("maintenance_cleanup", extra={"deleted": deleted, "threshold_days": days_to_keep})
        else:
            logger.info("maintenance_cleanup_noop", extra={"threshold_days": days_to_keep})

        remaining = await fetch_all(
            client, first_path, max_retries=max_retries, initial_delay=initial_delay, sleep=sleep
        )
        stats_after = compute_stats(remaining)
    except Exception as exc:
        logger.error("maintenance_failed", extra={"timestamp": timestamp, "deleted": deleted, "error": str(exc)})
        raise MaintenanceFailed(exc, deleted=deleted, timestamp=timestamp) from exc

    if reporter is not None:
        try:
            await reporter(stats_after, deleted)
        except Exception as exc:
            logger.warning("maintenance_report_failed", extra={"error": str(exc)})

    logger.info(
        "maintenance_complete",
        extra={"timestamp": timestamp, "deleted": deleted, "stats_after": stats_after.model_dump(mode="json")},
    )
    return MaintenanceResult(timestamp=timestamp, deleted=deleted, stats_before=stats_before, stats_after=stats_after)

from datetime import datetime, timedelta, timezone

import pytest

from app.schemas.maintenance import CodeStats
from app.services import maintenance
from app.services.catalog_client import DiscountCode
from app.services.errors import MaintenanceFailed

PRICE_RULE_ID = "555"
NOW = datetime(2026, 3, 20, 12, 0, tzinfo=timezone.utc)


async def _no_sleep(_: float) -> None:
    return None


def _code(code: str, *, days_old: float, usage_count: int = 0, code_id: int = 1) -> DiscountCode:
    return DiscountCode(id=code_id, code=code, usage_count=usage_count, created_at=NOW - timedelta(days=days_old))


def test_staleness_threshold_is_strictly_older_than_cutoff() -> None:
    assert maintenance.is_stale(NOW - timedelta(days=10), days=8, now=NOW) is True
    assert maintenance.is_stale(NOW - timedelta(days=7), days=8, now=NOW) is False
    assert maintenance.is_stale(NOW, days=8, now=NOW) is False
    assert maintenance.is_stale(NOW - timedelta(days=8), days=8, now=NOW) is False


def test_stats_count_used_unused_and_sample_first_five() -> None:
    codes = [_code(f"C{i}", days_old=i, usage_count=i % 2, code_id=i) for i in range(7)]
    stats = maintenance.compute_stats(codes)

    assert (stats.total, stats.used, stats.unused) == (7, 3, 4)
    assert stats.used + stats.unused == stats.total
    assert [s.code for s in stats.samples] == ["C0", "C1", "C2", "C3", "C4"]


def test_stats_of_empty_collection() -> None:
    stats = maintenance.compute_stats([])
    assert stats == CodeStats(total=0, used=0, unused=0, samples=[])


@pytest.mark.anyio
async def test_run_deletes_only_stale_codes_and_reports(fake_shop) -> None:
    fake_shop.add_code("FRESH", created_at=NOW)
    fake_shop.add_code("RECENT", created_at=NOW - timedelta(days=7), usage_count=2)
    old = fake_shop.add_code("OLD", created_at=NOW - timedelta(days=10))
    reports: list[tuple[CodeStats, int]] = []

    async def reporter(stats: CodeStats, deleted: int) -> None:
        reports.append((stats, deleted))

    async with fake_shop.client() as client:
        result = await maintenance.run_maintenance(
            client, price_rule_id=PRICE_RULE_ID, days_to_keep=8, now=NOW, sleep=_no_sleep, reporter=reporter
        )

    assert result.deleted == 1
    assert result.timestamp == NOW.isoformat()
    assert result.stats_before.total == 3
    assert (result.stats_after.total, result.stats_after.used, result.stats_after.unused) == (2, 1, 1)
    assert [row["code"] for row in fake_shop.codes] == ["FRESH", "RECENT"]
    assert ("DELETE", f"/price_rules/{PRICE_RULE_ID}/discount_codes/{old['id']}.json") in fake_shop.requests
    assert reports == [(result.stats_after, 1)]


@pytest.mark.anyio
async def test_run_with_nothing_stale_deletes_nothing(fake_shop) -> None:
    fake_shop.add_code("FRESH", created_at=NOW - timedelta(days=1))

    async with fake_shop.client() as client:
        result = await maintenance.run_maintenance(client, price_rule_id=PRICE_RULE_ID, now=NOW, sleep=_no_sleep)

    assert result.deleted == 0
    assert result.stats_before == result.stats_after
    assert not any(method == "DELETE" for method, _ in fake_shop.requests)


@pytest.mark.anyio
async def test_partial_deletion_failure_reports_completed_count(fake_shop) -> None:
    rows = [fake_shop.add_code(f"OLD-{i}", created_at=NOW - timedelta(days=20 + i)) for i in range(5)]
    fake_shop.fail("DELETE", f"/price_rules/{PRICE_RULE_ID}/discount_codes/{rows[1]['id']}.json", 500)
    reports: list[int] = []

    async def reporter(stats: CodeStats, deleted: int) -> None:
        reports.append(deleted)

    async with fake_shop.client() as client:
        with pytest.raises(MaintenanceFailed) as exc_info:
            await maintenance.run_maintenance(
                client, price_rule_id=PRICE_RULE_ID, now=NOW, sleep=_no_sleep, reporter=reporter
            )

    assert exc_info.value.deleted == 1
    assert exc_info.value.timestamp == NOW.isoformat()
    assert len(fake_shop.codes) == 4
    assert reports == []


@pytest.mark.anyio
async def test_rate_limited_delete_is_retried(fake_shop) -> None:
    row = fake_shop.add_code("OLD", created_at=NOW - timedelta(days=30))
    delete_path = f"/price_rules/{PRICE_RULE_ID}/discount_codes/{row['id']}.json"
    fake_shop.fail("DELETE", delete_path, 429, 429)
    delays: list[float] = []

    async def sleep(delay: float) -> None:
        delays.append(delay)

    async with fake_shop.client() as client:
        result = await maintenance.run_maintenance(
            client, price_rule_id=PRICE_RULE_ID, now=NOW, initial_delay=1.0, sleep=sleep
        )

    assert result.deleted == 1
    assert delays == [1.0, 2.0]
    assert fake_shop.requests.count(("DELETE", delete_path)) == 3


@pytest.mark.anyio
async def test_initial_fetch_failure_aborts_with_zero_deleted(fake_shop) -> None:
    fake_shop.fail("GET", f"/price_rules/{PRICE_RULE_ID}/discount_codes.json", 401)

    async with fake_shop.client() as client:
        with pytest.raises(MaintenanceFailed) as exc_info:
            await maintenance.run_maintenance(client, price_rule_id=PRICE_RULE_ID, now=NOW, sleep=_no_sleep)

    assert exc_info.value.deleted == 0
    assert "401" in str(exc_info.value)


@pytest.mark.anyio
async def test_reporter_failure_does_not_fail_the_run(fake_shop) -> None:
    fake_shop.add_code("OLD", created_at=NOW - timedelta(days=30))

    async def reporter(stats: CodeStats, deleted: int) -> None:
        raise RuntimeError("slack down")

    async with fake_shop.client() as client:
        result = await maintenance.run_maintenance(
            client, price_rule_id=PRICE_RULE_ID, now=NOW, sleep=_no_sleep, reporter=reporter
        )

    assert result.deleted == 1

from __future__ import annotations

import logging

import httpx

from app.core.config import settings
from app.schemas.maintenance import CodeStats

logger = logging.getLogger(__name__)


def format_summary(stats: CodeStats, deleted: int, *, days_to_keep: int) -> str:
    lines = [
        "🧹 *Mish Mush Maintenance Summary*",
        "",
        f"• Total Codes: {stats.total}",
        f"• Used: {stats.used}",
        f"• Unused: {stats.unused}",
        f"• Deleted (>{days_to_keep}d): {deleted}",
        "",
        "Top 5 Codes:",
    ]
    for sample in stats.samples:
        lines.append(
            f"• {sample.code} ({sample.usage_count} uses, created {sample.created_at.date().isoformat()})"
        )
    return "\n".join(lines)


async def send_slack_summary(text: str, *, webhook_url: str | None = None) -> bool:
    """Post ``text`` to the Slack webhook. Never raises; returns whether it was delivered."""
    url = (webhook_url if webhook_url is not None else settings.slack_webhook_url) or ""
    if not url.strip():
        return False
    try:
        async with httpx.AsyncClient(timeout=10) as client:
            resp = await client.post(url, json={"text": text})
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.warning("slack_summary_failed", extra={"error": str(exc)})
        return False
    if resp.is_error:
        logger.warning("slack_summary_failed", extra={"status_code": resp.status_code, "error": resp.text[:500]})
        return False
    return True


async def report_maintenance(stats: CodeStats, deleted: int, *, days_to_keep: int) -> None:
    await send_slack_summary(format_summary(stats, deleted, days_to_keep=days_to_keep))

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress
from functools import partial

from fastapi import FastAPI

from app.core.config import missing_catalog_settings, settings
from app.services import maintenance, reporting
from app.services.catalog_client import CatalogClient

logger = logging.getLogger(__name__)


async def run_once() -> maintenance.MaintenanceResult:
    async with CatalogClient.from_settings(settings) as client:
        return await maintenance.run_maintenance(
            client,
            price_rule_id=str(settings.price_rule_id),
            days_to_keep=settings.days_to_keep,
            max_retries=settings.retry_max_retries,
            initial_delay=settings.retry_initial_delay_seconds,
            reporter=partial(reporting.report_maintenance, days_to_keep=settings.days_to_keep),
        )


async def _loop(stop: asyncio.Event) -> None:
    interval = max(60, int(settings.maintenance_interval_seconds))
    while not stop.is_set():
        try:
            await run_once()
        except asyncio.CancelledError:
            break
        except Exception as exc:
            logger.warning("maintenance_scheduler_failed", extra={"error": str(exc)})

        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=interval)


def start(app: FastAPI) -> None:
    if not settings.maintenance_scheduler_enabled:
        return
    missing = missing_catalog_settings(settings)
    if missing:
        logger.warning("maintenance_scheduler_disabled", extra={"missing": missing})
        return
    if getattr(app.state, "maintenance_scheduler_task", None) is not None:
        return

    stop_event = asyncio.Event()
    task = asyncio.create_task(_loop(stop_event))
    app.state.maintenance_scheduler_stop = stop_event
    app.state.maintenance_scheduler_task = task


async def stop(app: FastAPI) -> None:
    stop_event = getattr(app.state, "maintenance_scheduler_stop", None)
    task = getattr(app.state, "maintenance_scheduler_task", None)
    if stop_event:
        stop_event.set()
    if task:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task
    if getattr(app.state, "maintenance_scheduler_stop", None) is not None:
        delattr(app.state, "maintenance_scheduler_stop")
    if getattr(app.state, "maintenance_scheduler_task", None) is not None:
        delattr(app.state, "maintenance_scheduler_task")

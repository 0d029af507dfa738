from __future__ import annotations

import logging
from typing import Any

from app.core.config import settings
from app.core.logging_config import redact_field

_SCRUBBED_HEADERS = {"authorization", "x-shopify-access-token", "x-flow-signature", "x-shopify-hmac-sha256"}


def scrub_event(event: dict[str, Any], hint: dict[str, Any] | None = None) -> dict[str, Any]:
    """Mask customer emails, codes and Shopify credentials before an event leaves the process."""
    request = event.get("request") or {}
    headers = request.get("headers")
    if isinstance(headers, dict):
        request["headers"] = {k: ("***" if k.lower() in _SCRUBBED_HEADERS else v) for k, v in headers.items()}
    extra = event.get("extra")
    if isinstance(extra, dict):
        event["extra"] = {k: redact_field(k, v) for k, v in extra.items()}
    for crumb in (event.get("breadcrumbs") or {}).get("values") or []:
        data = crumb.get("data")
        if isinstance(data, dict):
            crumb["data"] = {k: redact_field(k, v) for k, v in data.items()}
    return event


def init_sentry() -> None:
    if not settings.sentry_dsn:
        return

    import sentry_sdk
    from sentry_sdk.integrations import Integration
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.httpx import HttpxIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration

    integrations: list[Integration] = [FastApiIntegration(), HttpxIntegration()]
    if settings.sentry_enable_logs:
        event_level = getattr(logging, str(settings.sentry_log_level or "error").strip().upper(), logging.ERROR)
        integrations.append(LoggingIntegration(level=event_level, event_level=event_level))

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=settings.app_version,
        traces_sample_rate=settings.sentry_traces_sample_rate,
        integrations=integrations,
        before_send=scrub_event,
        send_default_pii=False,
    )
    if settings.shop:
        sentry_sdk.set_tag("shop", settings.shop)

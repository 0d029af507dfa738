import json
import os
import re
from collections.abc import Generator
from datetime import datetime, timezone
from typing import Any

import httpx
import pytest

# Keep pytest output high-signal by disabling outbound Sentry capture in tests.
os.environ["SENTRY_DSN"] = ""

from app.core.config import settings
from app.services import issuance_lock
from app.services.catalog_client import CatalogClient

SHOP = "test-shop.myshopify.com"
API_VERSION = "2025-10"
PRICE_RULE_ID = "555"

_DISCOUNT_CODES_RE = re.compile(r"^/price_rules/(\d+)/discount_codes\.json$")
_DISCOUNT_CODE_RE = re.compile(r"^/price_rules/(\d+)/discount_codes/(\d+)\.json$")
_METAFIELDS_RE = re.compile(r"^/customers/(\d+)/metafields\.json$")


class FakeShop:
    """In-memory stand-in for the Shopify Admin API, served through ``httpx.MockTransport``."""

    base_url = f"https://{SHOP}/admin/api/{API_VERSION}"

    def __init__(self) -> None:
        self.codes: list[dict[str, Any]] = []
        self.metafields: dict[str, list[dict[str, Any]]] = {}
        self.variants: dict[str, dict[str, Any]] = {}
        self.missing_customers: set[str] = set()
        self.create_conflicts = 0
        self.failures: dict[tuple[str, str], list[int]] = {}
        self.requests: list[tuple[str, str]] = []
        self.graphql_calls: list[dict[str, Any]] = []
        self._next_id = 1000

    def add_code(self, code: str, *, created_at: datetime, usage_count: int = 0) -> dict[str, Any]:
        self._next_id += 1
        row = {"id": self._next_id, "code": code, "usage_count": usage_count, "created_at": created_at.isoformat()}
        self.codes.append(row)
        return row

    def fail(self, method: str, path: str, *statuses: int) -> None:
        self.failures.setdefault((method, path), []).extend(statuses)

    def client(self) -> CatalogClient:
        return CatalogClient(shop=SHOP, admin_token="shpat_test", api_version=API_VERSION, transport=httpx.MockTransport(self.handler))

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(f"/admin/api/{API_VERSION}")
        query = request.url.query.decode("ascii") if isinstance(request.url.query, bytes) else str(request.url.query)
        full = f"{path}?{query}" if query else path
        self.requests.append((request.method, full))

        for key in ((request.method, full), (request.method, path)):
            queued = self.failures.get(key)
            if queued:
                status_code = queued.pop(0)
                return httpx.Response(status_code, json={"errors": f"simulated {status_code}"})

        if request.method == "GET" and _DISCOUNT_CODES_RE.match(path):
            return self._list_codes(request, path)
        if request.method == "POST" and _DISCOUNT_CODES_RE.match(path):
            return self._create_code(request)
        match = _DISCOUNT_CODE_RE.match(path)
        if request.method == "DELETE" and match:
            code_id = int(match.group(2))
            before = len(self.codes)
            self.codes = [row for row in self.codes if row["id"] != code_id]
            return httpx.Response(204 if len(self.codes) < before else 404)
        match = _METAFIELDS_RE.match(path)
        if request.method == "GET" and match:
            customer_id = match.group(1)
            if customer_id in self.missing_customers:
                return httpx.Response(404, json={"errors": "Not Found"})
            return httpx.Response(200, json={"metafields": self.metafields.get(customer_id, [])})
        if request.method == "POST" and path == "/graphql.json":
            return self._graphql(json.loads(request.content))
        return httpx.Response(404, json={"errors": "Not Found"})

    def _list_codes(self, request: httpx.Request, path: str) -> httpx.Response:
        limit = int(request.url.params.get("limit", "250"))
        offset = int(request.url.params.get("page_info", "0"))
        rows = self.codes[offset : offset + limit]
        headers = {}
        if offset + limit < len(self.codes):
            headers["link"] = f'<{self.base_url}{path}?limit={limit}&page_info={offset + limit}>; rel="next"'
        return httpx.Response(200, json={"discount_codes": rows}, headers=headers)

    def _create_code(self, request: httpx.Request) -> httpx.Response:
        code = json.loads(request.content)["discount_code"]["code"]
        if self.create_conflicts > 0:
            self.create_conflicts -= 1
            return httpx.Response(422, json={"errors": {"code": ["must be unique"]}})
        row = self.add_code(code, created_at=datetime.now(timezone.utc))
        return httpx.Response(201, json={"discount_code": row})

    def _graphql(self, body: dict[str, Any]) -> httpx.Response:
        self.graphql_calls.append(body)
        query = body.get("query") or ""
        variables = body.get("variables") or {}
        if "metafieldsSet" in query:
            written = []
            for mf in variables.get("metafields") or []:
                customer_id = str(mf["ownerId"]).rsplit("/", 1)[-1]
                rows = self.metafields.setdefault(customer_id, [])
                rows[:] = [r for r in rows if not (r["namespace"] == mf["namespace"] and r["key"] == mf["key"])]
                row = {"id": len(rows) + 1, **{k: mf[k] for k in ("namespace", "key", "type", "value")}}
                rows.append(row)
                written.append(row)
            return httpx.Response(200, json={"data": {"metafieldsSet": {"metafields": written, "userErrors": []}}})
        if "productVariant" in query:
            variant = self.variants.get(variables.get("id"))
            return httpx.Response(200, json={"data": {"productVariant": variant}})
        return httpx.Response(200, json={"errors": [{"message": "unknown query"}]})


@pytest.fixture(scope="module")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def fake_shop() -> FakeShop:
    return FakeShop()


@pytest.fixture(autouse=True)
def shop_settings(monkeypatch) -> Generator[Any, None, None]:
    monkeypatch.setattr(settings, "shop", SHOP)
    monkeypatch.setattr(settings, "admin_token", "shpat_test")
    monkeypatch.setattr(settings, "price_rule_id", PRICE_RULE_ID)
    monkeypatch.setattr(settings, "shopify_api_version", API_VERSION)
    monkeypatch.setattr(settings, "flow_shared_secret", None)
    monkeypatch.setattr(settings, "cron_secret", None)
    monkeypatch.setattr(settings, "slack_webhook_url", None)
    monkeypatch.setattr(settings, "resend_api_key", "re_test")
    monkeypatch.setattr(settings, "redis_url", None)
    monkeypatch.setattr(settings, "retry_initial_delay_seconds", 0.0)
    monkeypatch.setattr(settings, "maintenance_scheduler_enabled", False)
    issuance_lock._reset_for_tests()
    yield settings

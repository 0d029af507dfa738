from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Final

import httpx

from app.core.config import Settings
from app.services.errors import CatalogError

logger = logging.getLogger(__name__)

WELCOME_NAMESPACE: Final[str] = "custom"
WELCOME_CODE_KEY: Final[str] = "welcome_discount_code"
WELCOME_USED_KEY: Final[str] = "welcome_discount_used"
WELCOME_EMAIL_SENT_KEY: Final[str] = "welcome_email_sent"

DISCOUNT_CODES_PAGE_LIMIT: Final[int] = 250

_SET_METAFIELDS_MUTATION = """
mutation SetWelcomeMetafields($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id namespace key type value }
    userErrors { field message code }
  }
}
"""

_PRODUCT_VARIANT_QUERY = """
query ProductVariant($id: ID!) {
  productVariant(id: $id) {
    id
    title
    image { url altText }
    product {
      title
      handle
      onlineStoreUrl
      featuredImage { url altText }
    }
  }
}
"""


def _parse_timestamp(raw: object) -> datetime:
    value = str(raw or "").strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class DiscountCode:
    id: int
    code: str
    usage_count: int
    created_at: datetime

    @classmethod
    def from_api(cls, row: dict[str, Any]) -> "DiscountCode":
        return cls(
            id=int(row["id"]),
            code=str(row.get("code") or ""),
            usage_count=int(row.get("usage_count") or 0),
            created_at=_parse_timestamp(row.get("created_at")),
        )


@dataclass(frozen=True)
class WelcomeCodeRecord:
    code: str
    metafield_id: int | None = None


@dataclass
class CatalogPage:
    items: list[dict[str, Any]] = field(default_factory=list)
    next_path: str | None = None


class CatalogClient:
    """Async wrapper around the Shopify Admin REST and GraphQL endpoints.

    Every non-2xx response and transport failure surfaces as a ``CatalogError`` whose
    ``kind`` is derived from the status code, so callers never inspect message text.
    """

    def __init__(
        self,
        *,
        shop: str,
        admin_token: str,
        api_version: str = "2025-10",
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = f"https://{shop}/admin/api/{api_version}"
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "X-Shopify-Access-Token": admin_token},
        )

    @classmethod
    def from_settings(cls, current: Settings, *, transport: httpx.AsyncBaseTransport | None = None) -> "CatalogClient":
        return cls(
            shop=str(current.shop or ""),
            admin_token=str(current.admin_token or ""),
            api_version=current.shopify_api_version,
            timeout=current.catalog_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "CatalogClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def relative_path(self, url: str) -> str:
        if url.startswith(self.base_url):
            return url[len(self.base_url) :] or "/"
        return url

    async def _send(self, method: str, path: str, *, json: Any = None) -> httpx.Response:
        started = time.monotonic()
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.HTTPError as exc:
            logger.warning("shopify_transport_failed", extra={"path": path, "method": method, "error": str(exc)})
            raise CatalogError(f"Shopify API request failed: {exc}", path=path) from exc
        logger.info(
            "shopify_response",
            extra={
                "path": path,
                "method": method,
                "status_code": resp.status_code,
                "duration_ms": int((time.monotonic() - started) * 1000),
            },
        )
        if resp.is_error:
            raise CatalogError.from_status(resp.status_code, resp.reason_phrase, path=path, body=resp.text)
        return resp

    async def request(self, method: str, path: str, *, json: Any = None) -> dict[str, Any]:
        resp = await self._send(method, path, json=json)
        if not resp.content:
            return {}
        parsed = resp.json()
        return parsed if isinstance(parsed, dict) else {}

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        payload: dict[str, Any] = {"query": query}
        if variables is not None:
            payload["variables"] = variables
        return await self.request("POST", "/graphql.json", json=payload)

    async def get_page(self, path: str, *, key: str) -> CatalogPage:
        resp = await self._send("GET", path)
        data = resp.json() if resp.content else {}
        rows = data.get(key) if isinstance(data, dict) else None
        next_url = (resp.links.get("next") or {}).get("url")
        return CatalogPage(
            items=list(rows or []),
            next_path=self.relative_path(next_url) if next_url else None,
        )

    async def get_welcome_code(self, numeric_id: str) -> WelcomeCodeRecord | None:
        data = await self.request(
            "GET",
            f"/customers/{numeric_id}/metafields.json?namespace={WELCOME_NAMESPACE}&key={WELCOME_CODE_KEY}",
        )
        # The endpoint may return every metafield on the customer, so match namespace/key here.
        for row in data.get("metafields") or []:
            if row.get("namespace") == WELCOME_NAMESPACE and row.get("key") == WELCOME_CODE_KEY:
                metafield_id = row.get("id")
                return WelcomeCodeRecord(
                    code=str(row.get("value") or ""),
                    metafield_id=int(metafield_id) if metafield_id is not None else None,
                )
        return None

    async def set_welcome_metafields(self, customer_gid: str, code: str) -> dict[str, Any] | None:
        metafields = [
            {
                "ownerId": customer_gid,
                "namespace": WELCOME_NAMESPACE,
                "key": WELCOME_CODE_KEY,
                "type": "single_line_text_field",
                "value": code,
            },
            {
                "ownerId": customer_gid,
                "namespace": WELCOME_NAMESPACE,
                "key": WELCOME_USED_KEY,
                "type": "boolean",
                "value": "false",
            },
            {
                "ownerId": customer_gid,
                "namespace": WELCOME_NAMESPACE,
                "key": WELCOME_EMAIL_SENT_KEY,
                "type": "boolean",
                "value": "false",
            },
        ]
        data = await self.graphql(_SET_METAFIELDS_MUTATION, {"metafields": metafields})
        errors = data.get("errors") or []
        if errors:
            raise CatalogError(
                "GraphQL errors: " + " | ".join(str(e.get("message") if isinstance(e, dict) else e) for e in errors),
                path="/graphql.json",
            )
        result = (data.get("data") or {}).get("metafieldsSet") or {}
        user_errors = result.get("userErrors") or []
        if user_errors:
            raise CatalogError(
                "metafieldsSet userErrors: " + " | ".join(str(e.get("message") or e) for e in user_errors),
                path="/graphql.json",
            )
        written = result.get("metafields") or []
        return written[0] if written else None

    async def create_discount_code(self, price_rule_id: str, code: str) -> DiscountCode:
        data = await self.request(
            "POST",
            f"/price_rules/{price_rule_id}/discount_codes.json",
            json={"discount_code": {"code": code}},
        )
        row = data.get("discount_code")
        if not isinstance(row, dict) or row.get("id") is None:
            raise CatalogError("Shopify API returned no discount_code", path=f"/price_rules/{price_rule_id}/discount_codes.json")
        return DiscountCode.from_api(row)

    async def delete_discount_code(self, price_rule_id: str, code_id: int) -> None:
        await self._send("DELETE", f"/price_rules/{price_rule_id}/discount_codes/{code_id}.json")

    async def get_product_variant(self, variant_gid: str) -> dict[str, Any] | None:
        data = await self.graphql(_PRODUCT_VARIANT_QUERY, {"id": variant_gid})
        errors = data.get("errors") or []
        if errors:
            logger.warning(
                "variant_query_errors",
                extra={"variant_gid": variant_gid, "errors": [e.get("message") if isinstance(e, dict) else e for e in errors]},
            )
        variant = (data.get("data") or {}).get("productVariant")
        return variant if isinstance(variant, dict) else None


def discount_codes_path(price_rule_id: str) -> str:
    return f"/price_rules/{price_rule_id}/discount_codes.json?limit={DISCOUNT_CODES_PAGE_LIMIT}"

import json
import re

import pytest
from fastapi.testclient import TestClient

from app.core.config import settings
from app.core.dependencies import get_catalog_client
from app.core.security import flow_signature
from app.main import app
from app.services import issuance_lock

URL = "/api/v1/discounts/welcome"


@pytest.fixture
def client(fake_shop) -> TestClient:
    async def override_get_catalog_client():
        async with fake_shop.client() as catalog:
            yield catalog

    app.dependency_overrides[get_catalog_client] = override_get_catalog_client
    test_client = TestClient(app)
    yield test_client
    test_client.close()
    app.dependency_overrides.clear()


def test_issues_code_for_flow_payload(client: TestClient, fake_shop) -> None:
    res = client.post(URL, json={"customer": {"id": "gid://shopify/Customer/321", "email": "a@example.com"}})

    assert res.status_code == 200, res.text
    body = res.json()
    assert body["success"] is True
    assert body["reused"] is False
    assert re.fullmatch(r"MISHMUSH-[A-Z0-9]{6}", body["code"])
    assert fake_shop.metafields["321"][0]["value"] == body["code"]


def test_bare_customer_webhook_body_reuses_existing_code(client: TestClient) -> None:
    first = client.post(URL, json={"id": 321, "email": "a@example.com"}).json()
    second = client.post(URL, json={"customer": {"id": "321"}}).json()

    assert second == {"success": True, "code": first["code"], "reused": True}


@pytest.mark.parametrize("body", [b"", b"not json", b"[]", b"{}", b'{"customer": null}'])
def test_missing_customer_payload_is_rejected(client: TestClient, body: bytes) -> None:
    res = client.post(URL, content=body, headers={"Content-Type": "application/json"})
    assert res.status_code == 400
    assert res.json()["detail"].startswith("Missing customer payload")


def test_missing_customer_id_is_rejected(client: TestClient, fake_shop) -> None:
    res = client.post(URL, json={"customer": {"email": "a@example.com"}})
    assert res.status_code == 400
    assert res.json() == {"detail": "Missing customer id", "code": None}
    assert fake_shop.requests == []


def test_malformed_customer_id_is_rejected(client: TestClient) -> None:
    res = client.post(URL, json={"customer": {"id": "gid://shopify/Customer/abc"}})
    assert res.status_code == 400
    assert "Invalid customer id" in res.json()["detail"]


def test_signature_is_required_when_secret_is_configured(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(settings, "flow_shared_secret", "flow-secret")
    raw = json.dumps({"customer": {"id": 9}}).encode("utf-8")

    unsigned = client.post(URL, content=raw, headers={"Content-Type": "application/json"})
    wrong = client.post(URL, content=raw, headers={"Content-Type": "application/json", "X-Flow-Signature": "nope"})
    signed = client.post(
        URL,
        content=raw,
        headers={"Content-Type": "application/json", "X-Flow-Signature": flow_signature("flow-secret", raw)},
    )
    shopify_header = client.post(
        URL,
        content=raw,
        headers={"Content-Type": "application/json", "X-Shopify-Hmac-Sha256": flow_signature("flow-secret", raw)},
    )

    assert unsigned.status_code == 401
    assert wrong.json()["detail"] == "Invalid signature"
    assert signed.status_code == 200
    assert shopify_header.json()["reused"] is True


def test_missing_configuration_is_a_server_error(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(settings, "admin_token", None)
    monkeypatch.setattr(settings, "price_rule_id", "")

    res = client.post(URL, json={"customer": {"id": 1}})

    assert res.status_code == 500
    assert res.json()["detail"] == "Missing required env vars: ADMIN_TOKEN, PRICE_RULE_ID"


def test_exhausted_collisions_return_500(client: TestClient, fake_shop) -> None:
    fake_shop.create_conflicts = 3
    res = client.post(URL, json={"customer": {"id": 1}})

    assert res.status_code == 500
    assert "after 3 attempts" in res.json()["detail"]
    assert "1" not in fake_shop.metafields


def test_upstream_failure_maps_to_bad_gateway(client: TestClient, fake_shop) -> None:
    fake_shop.fail("GET", "/customers/1/metafields.json", 503)
    res = client.post(URL, json={"customer": {"id": 1}})
    assert res.status_code == 502


class _HeldLock:
    async def set(self, *args, **kwargs):
        return False


def test_concurrent_issuance_returns_conflict(client: TestClient, monkeypatch) -> None:
    monkeypatch.setattr(issuance_lock, "get_redis", lambda: _HeldLock())
    res = client.post(URL, json={"customer": {"id": 1}})
    assert res.status_code == 409

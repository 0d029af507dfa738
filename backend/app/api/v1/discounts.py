import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from app.core.config import Settings
from app.core.dependencies import get_catalog_client, require_catalog_settings
from app.core.security import verify_flow_signature
from app.schemas.discounts import WelcomeCodeRequest, WelcomeCodeResponse
from app.services import welcome_codes
from app.services.catalog_client import CatalogClient
from app.services.errors import CatalogError, CodeGenerationExhausted, InvalidCustomerId, IssuanceInProgress

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discounts", tags=["discounts"])

SIGNATURE_HEADERS = ("x-flow-signature", "x-shopify-hmac-sha256")


def _parse_payload(raw: bytes) -> WelcomeCodeRequest | None:
    try:
        payload = json.loads(raw or b"null")
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return WelcomeCodeRequest.model_validate(payload)
    except ValidationError:
        return None


@router.post("/welcome", response_model=WelcomeCodeResponse)
async def generate_welcome_code(
    request: Request,
    current: Settings = Depends(require_catalog_settings),
    client: CatalogClient = Depends(get_catalog_client),
) -> WelcomeCodeResponse:
    raw = await request.body()
    sent = next((request.headers.get(name) for name in SIGNATURE_HEADERS if request.headers.get(name)), None)
    if not verify_flow_signature(raw, sent, current.flow_shared_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    parsed = _parse_payload(raw)
    customer = parsed.customer_ref() if parsed else None
    if customer is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing customer payload. Expected { customer: { id, ... } } or { id, ... }",
        )
    if customer.id is None or str(customer.id).strip() == "":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing customer id")

    try:
        result = await welcome_codes.issue_welcome_code(
            client,
            customer.id,
            price_rule_id=str(current.price_rule_id),
            prefix=current.welcome_code_prefix,
            length=current.welcome_code_length,
            max_attempts=current.welcome_code_max_attempts,
            lock_ttl_seconds=current.issuance_lock_ttl_seconds,
        )
    except InvalidCustomerId as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except IssuanceInProgress as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except CodeGenerationExhausted as exc:
        logger.error("generate_discount_failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except CatalogError as exc:
        logger.error(
            "generate_discount_failed",
            extra={"error": str(exc), "catalog_kind": exc.kind.value, "catalog_path": exc.path},
        )
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return WelcomeCodeResponse(code=result.code, reused=result.reused)

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from app.core.dependencies import get_storefront_client, require_allowed_origin
from app.schemas.notify import NotifyInterestRequest, NotifyInterestResponse
from app.services import interest
from app.services.catalog_client import CatalogClient
from app.services.errors import CatalogError, VariantNotFound

logger = logging.getLogger(__name__)

router = APIRouter(tags=["notifications"])

MISSING_FIELDS_DETAIL = "Missing required fields: variantId, email"


def _parse_payload(raw: bytes) -> NotifyInterestRequest | None:
    try:
        payload = json.loads(raw or b"null")
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    try:
        return NotifyInterestRequest.model_validate(payload)
    except ValidationError:
        return None


@router.post(
    "/notify-interest",
    response_model=NotifyInterestResponse,
    dependencies=[Depends(require_allowed_origin)],
)
async def notify_interest(
    request: Request,
    client: CatalogClient = Depends(get_storefront_client),
) -> NotifyInterestResponse:
    payload = _parse_payload(await request.body())
    if payload is None or not payload.variant_id or not (payload.email or "").strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=MISSING_FIELDS_DETAIL)

    try:
        await interest.send_interest_confirmation(client, variant_id=payload.variant_id, email=payload.email.strip())
    except VariantNotFound as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Variant not found") from exc
    except CatalogError as exc:
        logger.error("notify_interest_failed", extra={"error": str(exc), "catalog_kind": exc.kind.value})
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return NotifyInterestResponse()

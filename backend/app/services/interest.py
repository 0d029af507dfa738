from __future__ import annotations

import logging

from app.core.config import settings
from app.services import email as email_service
from app.services.catalog_client import CatalogClient
from app.services.errors import VariantNotFound

logger = logging.getLogger(__name__)

VARIANT_GID_PREFIX = "gid://shopify/ProductVariant/"


def normalize_variant_gid(raw_variant_id: object) -> str:
    value = str(raw_variant_id).strip()
    return value if value.startswith("gid://") else f"{VARIANT_GID_PREFIX}{value}"


def greeting_name(email: str) -> str:
    if "@" in email:
        local = email.split("@", 1)[0].strip()
        if local:
            return local
    return "there"


async def send_interest_confirmation(client: CatalogClient, *, variant_id: object, email: str) -> bool:
    """Confirm a back-in-stock subscription by email.

    Raises ``VariantNotFound`` when the variant does not exist. A delivery failure is
    logged and reported through the return value only.
    """
    variant_gid = normalize_variant_gid(variant_id)
    logger.info("interest_variant_lookup", extra={"variant_gid": variant_gid})
    variant = await client.get_product_variant(variant_gid)
    if variant is None:
        raise VariantNotFound(variant_gid)

    sent = await email_service.send_confirm_subscription(
        email,
        first_name=greeting_name(email),
        product=variant.get("product") or {},
        variant=variant,
        shop_domain=settings.shop_domain,
    )
    if sent:
        logger.info("interest_confirmation_sent", extra={"variant_gid": variant_gid})
    else:
        logger.error("interest_confirmation_failed", extra={"variant_gid": variant_gid})
    return sent

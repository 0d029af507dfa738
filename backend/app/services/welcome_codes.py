from __future__ import annotations

import logging
import re
import secrets
import string
from dataclasses import dataclass

from app.services.catalog_client import CatalogClient, DiscountCode
from app.services.errors import CatalogError, CatalogErrorKind, CodeGenerationExhausted, InvalidCustomerId
from app.services.issuance_lock import customer_issuance_lock

logger = logging.getLogger(__name__)

WELCOME_CODE_PREFIX = "MISHMUSH"
WELCOME_CODE_LENGTH = 6
WELCOME_CODE_MAX_ATTEMPTS = 3

CUSTOMER_GID_PREFIX = "gid://shopify/Customer/"

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CUSTOMER_GID_RE = re.compile(r"gid://shopify/Customer/(\d+)")


@dataclass(frozen=True)
class CustomerIds:
    numeric_id: str
    gid: str


@dataclass(frozen=True)
class WelcomeCodeResult:
    code: str
    reused: bool


def normalize_customer_ids(raw_customer_id: object) -> CustomerIds:
    """Map a numeric id or a ``gid://shopify/Customer/<n>`` id to both canonical forms."""
    value = str(raw_customer_id if raw_customer_id is not None else "").strip()
    match = _CUSTOMER_GID_RE.search(value)
    numeric_id = match.group(1) if match else value
    if not numeric_id.isdigit():
        raise InvalidCustomerId(f"Invalid customer id: {value!r}")
    return CustomerIds(numeric_id=numeric_id, gid=f"{CUSTOMER_GID_PREFIX}{numeric_id}")


def generate_code(*, prefix: str = WELCOME_CODE_PREFIX, length: int = WELCOME_CODE_LENGTH) -> str:
    suffix = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(max(1, int(length))))
    prefix_clean = (prefix or "").strip().upper()
    return f"{prefix_clean}-{suffix}" if prefix_clean else suffix


async def get_existing_welcome_code(client: CatalogClient, ids: CustomerIds) -> str | None:
    try:
        record = await client.get_welcome_code(ids.numeric_id)
    except CatalogError as exc:
        # Only a missing customer resource means "no code yet"; anything else is unknown state.
        if exc.kind is CatalogErrorKind.not_found:
            return None
        raise
    if record is None or not record.code:
        return None
    return record.code


async def create_unique_code(
    client: CatalogClient,
    *,
    price_rule_id: str,
    prefix: str = WELCOME_CODE_PREFIX,
    length: int = WELCOME_CODE_LENGTH,
    max_attempts: int = WELCOME_CODE_MAX_ATTEMPTS,
) -> DiscountCode:
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        candidate = generate_code(prefix=prefix, length=length)
        try:
            return await client.create_discount_code(price_rule_id, candidate)
        except CatalogError as exc:
            if exc.kind is not CatalogErrorKind.conflict:
                raise
            logger.info("discount_code_collision", extra={"attempt": attempt, "candidate": candidate})
    raise CodeGenerationExhausted(attempts)


async def issue_welcome_code(
    client: CatalogClient,
    customer_id: object,
    *,
    price_rule_id: str,
    prefix: str = WELCOME_CODE_PREFIX,
    length: int = WELCOME_CODE_LENGTH,
    max_attempts: int = WELCOME_CODE_MAX_ATTEMPTS,
    lock_ttl_seconds: int = 30,
) -> WelcomeCodeResult:
    ids = normalize_customer_ids(customer_id)
    async with customer_issuance_lock(ids.numeric_id, ttl_seconds=lock_ttl_seconds):
        existing = await get_existing_welcome_code(client, ids)
        if existing:
            logger.info("welcome_code_reused", extra={"customer_id": ids.numeric_id})
            return WelcomeCodeResult(code=existing, reused=True)

        created = await create_unique_code(
            client,
            price_rule_id=price_rule_id,
            prefix=prefix,
            length=length,
            max_attempts=max_attempts,
        )
        await client.set_welcome_metafields(ids.gid, created.code)
        logger.info("welcome_code_issued", extra={"customer_id": ids.numeric_id, "code_id": created.id})
        return WelcomeCodeResult(code=created.code, reused=False)

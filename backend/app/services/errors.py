from __future__ import annotations

import enum


class CatalogErrorKind(str, enum.Enum):
    not_found = "not_found"
    conflict = "conflict"
    rate_limited = "rate_limited"
    generic = "generic"


_STATUS_KINDS = {
    404: CatalogErrorKind.not_found,
    422: CatalogErrorKind.conflict,
    429: CatalogErrorKind.rate_limited,
}


def kind_for_status(status_code: int | None) -> CatalogErrorKind:
    if status_code is None:
        return CatalogErrorKind.generic
    return _STATUS_KINDS.get(int(status_code), CatalogErrorKind.generic)


class CatalogError(Exception):
    """A failed call to the Shopify Admin API, classified by status code."""

    def __init__(
        self,
        message: str,
        *,
        kind: CatalogErrorKind = CatalogErrorKind.generic,
        status_code: int | None = None,
        path: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code
        self.path = path
        self.body = body

    @classmethod
    def from_status(cls, status_code: int, reason: str, *, path: str, body: str = "") -> "CatalogError":
        excerpt = (body or "")[:500]
        return cls(
            f"Shopify API {status_code} {reason}: {excerpt}".rstrip(": "),
            kind=kind_for_status(status_code),
            status_code=status_code,
            path=path,
            body=excerpt,
        )

    @property
    def is_rate_limited(self) -> bool:
        return self.kind is CatalogErrorKind.rate_limited


class InvalidCustomerId(ValueError):
    pass


class CodeGenerationExhausted(RuntimeError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Unable to create a unique discount code after {attempts} attempts.")
        self.attempts = attempts


class IssuanceInProgress(RuntimeError):
    def __init__(self, customer_id: str) -> None:
        super().__init__(f"Welcome code issuance already in progress for customer {customer_id}")
        self.customer_id = customer_id


class MaintenanceFailed(RuntimeError):
    """Maintenance aborted; ``deleted`` counts the deletions that did complete."""

    def __init__(self, cause: Exception, *, deleted: int, timestamp: str) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.deleted = deleted
        self.timestamp = timestamp


class VariantNotFound(LookupError):
    def __init__(self, variant_gid: str) -> None:
        super().__init__(f"Variant not found: {variant_gid}")
        self.variant_gid = variant_gid

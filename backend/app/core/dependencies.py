from collections.abc import AsyncIterator

from fastapi import Depends, Header, HTTPException, Request, status

from app.core.config import Settings, missing_catalog_settings, missing_email_settings, settings
from app.core.security import verify_bearer
from app.services.catalog_client import CatalogClient


def _missing_env_error(missing: list[str]) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Missing required env vars: {', '.join(missing)}",
    )


def require_catalog_settings() -> Settings:
    missing = missing_catalog_settings(settings)
    if missing:
        raise _missing_env_error(missing)
    return settings


def require_email_settings() -> Settings:
    missing = missing_email_settings(settings)
    if missing:
        raise _missing_env_error(missing)
    return settings


async def require_cron_secret(authorization: str | None = Header(default=None)) -> None:
    if not verify_bearer(authorization, settings.cron_secret):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


async def require_allowed_origin(request: Request) -> None:
    origin = request.headers.get("origin")
    if origin and origin not in set(settings.cors_origins):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="CORS origin not allowed")


async def get_catalog_client(current: Settings = Depends(require_catalog_settings)) -> AsyncIterator[CatalogClient]:
    async with CatalogClient.from_settings(current) as client:
        yield client


async def get_storefront_client(current: Settings = Depends(require_email_settings)) -> AsyncIterator[CatalogClient]:
    async with CatalogClient.from_settings(current) as client:
        yield client

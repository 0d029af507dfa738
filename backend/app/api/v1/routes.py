from fastapi import APIRouter

from app.api.v1 import discounts
from app.api.v1 import email_preview
from app.api.v1 import maintenance
from app.api.v1 import notify

api_router = APIRouter()

api_router.include_router(discounts.router)
api_router.include_router(maintenance.router)
api_router.include_router(notify.router)
api_router.include_router(email_preview.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/health/ready", tags=["health"])
def readiness() -> dict[str, str]:
    return {"status": "ready"}

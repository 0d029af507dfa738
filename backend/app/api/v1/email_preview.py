from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from app.core.dependencies import require_cron_secret
from app.services import email as email_service

router = APIRouter(prefix="/email-preview", tags=["email"], dependencies=[Depends(require_cron_secret)])


@router.get("", response_model=dict[str, str])
async def preview_confirm_subscription() -> dict[str, str]:
    return email_service.sample_confirm_subscription()


@router.get("/html", response_class=HTMLResponse)
async def preview_confirm_subscription_html() -> HTMLResponse:
    return HTMLResponse(email_service.sample_confirm_subscription()["html"])

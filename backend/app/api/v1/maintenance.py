from functools import partial

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from app.core.config import Settings
from app.core.dependencies import get_catalog_client, require_catalog_settings, require_cron_secret
from app.schemas.maintenance import MaintenanceErrorResponse, MaintenanceReport
from app.services import maintenance as maintenance_service
from app.services import reporting
from app.services.catalog_client import CatalogClient
from app.services.errors import MaintenanceFailed

router = APIRouter(tags=["maintenance"])


@router.get(
    "/maintenance",
    response_model=MaintenanceReport,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": MaintenanceErrorResponse}},
    dependencies=[Depends(require_cron_secret)],
)
async def run_maintenance(
    current: Settings = Depends(require_catalog_settings),
    client: CatalogClient = Depends(get_catalog_client),
):
    try:
        result = await maintenance_service.run_maintenance(
            client,
            price_rule_id=str(current.price_rule_id),
            days_to_keep=current.days_to_keep,
            max_retries=current.retry_max_retries,
            initial_delay=current.retry_initial_delay_seconds,
            reporter=partial(reporting.report_maintenance, days_to_keep=current.days_to_keep),
        )
    except MaintenanceFailed as exc:
        payload = MaintenanceErrorResponse(
            detail=str(exc),
            code="maintenance_failed",
            timestamp=exc.timestamp,
            deleted=exc.deleted,
        )
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=payload.model_dump())

    return MaintenanceReport(
        timestamp=result.timestamp,
        deleted=result.deleted,
        stats_before=result.stats_before,
        stats_after=result.stats_after,
        message=(
            f"Maintenance completed successfully — deleted {result.deleted} codes "
            f"older than {current.days_to_keep} days."
        ),
    )

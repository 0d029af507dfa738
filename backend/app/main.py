from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.routes import api_router
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.core.redis_client import close_redis
from app.core.sentry import init_sentry
from app.middleware.request_log import RequestLoggingMiddleware
from app.schemas.error import ErrorResponse
from app.services import maintenance_scheduler


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    maintenance_scheduler.start(app)
    try:
        yield
    finally:
        await maintenance_scheduler.stop(app)
        await close_redis()


def get_application() -> FastAPI:
    configure_logging(settings.log_json)
    init_sentry()
    tags_metadata = [
        {"name": "discounts", "description": "Welcome discount code issuance"},
        {"name": "maintenance", "description": "Scheduled discount code cleanup"},
        {"name": "notifications", "description": "Back-in-stock interest confirmations"},
        {"name": "email", "description": "Email template previews"},
    ]
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        openapi_tags=tags_metadata,
        lifespan=lifespan,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "X-Shopify-Topic",
            "X-Shopify-Hmac-Sha256",
            "X-Shopify-Shop-Domain",
            "Authorization",
        ],
        max_age=600,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        payload = ErrorResponse(detail=exc.detail, code=None)
        return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(payload.model_dump()))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        errors = jsonable_encoder(exc.errors())
        payload = ErrorResponse(detail=errors, code="validation_error")
        return JSONResponse(status_code=422, content=payload.model_dump())

    return app


app = get_application()

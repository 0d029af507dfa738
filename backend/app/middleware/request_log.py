import logging
import re
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.logging_config import request_id_ctx_var

logger = logging.getLogger("app.request")

_INBOUND_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{8,128}$")


def _request_id_for(request: Request) -> str:
    inbound = (request.headers.get("x-request-id") or "").strip()
    if _INBOUND_ID_RE.fullmatch(inbound):
        return inbound
    return str(uuid.uuid4())


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        request_id = _request_id_for(request)
        token = request_id_ctx_var.set(request_id)
        start = time.monotonic()
        request.state.request_id = request_id
        response: Response | None = None
        try:
            response = await call_next(request)
            return response
        finally:
            duration_ms = int((time.monotonic() - start) * 1000)
            status_code = response.status_code if response is not None else 500
            if response is not None:
                response.headers["X-Request-ID"] = request_id
            logger.info(
                "request",
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": status_code,
                    "duration_ms": duration_ms,
                },
            )
            request_id_ctx_var.reset(token)

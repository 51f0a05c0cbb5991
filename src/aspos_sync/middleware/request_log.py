"""Request logging middleware for the admin API."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger()


def _trigger_path(path: str) -> bool:
    return path.startswith("/api/v1/sync")


class RequestLogMiddleware(BaseHTTPMiddleware):
    """
    Binds a request id into the log context and logs every sync trigger call.

    Log lines emitted while a trigger runs carry the same request_id, so the
    debug log can be read back per trigger.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-Id") or uuid.uuid4().hex[:12]
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")
        duration_ms = round((time.perf_counter() - start) * 1000, 2)

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)

        if _trigger_path(request.url.path):
            logger.info(
                "Sync trigger handled",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=duration_ms,
            )
        return response

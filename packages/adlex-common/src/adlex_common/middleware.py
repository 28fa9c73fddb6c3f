"""
Request logging middleware for AdLex HTTP services.

Binds a request id into the structlog context for the lifetime of the
request, echoes it back as ``X-Request-ID`` and logs one
``http_request`` event per call. Health and metrics probes are logged
at debug level.
"""

from __future__ import annotations

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_QUIET_PATHS = ("/health", "/metrics")


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request with its id, route, status and latency."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        path = request.url.path
        started = time.perf_counter()
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
            except Exception:
                logger.exception("http_request_failed", method=request.method, path=path)
                raise
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            log = logger.debug if path.startswith(_QUIET_PATHS) else logger.info
            log(
                "http_request",
                method=request.method,
                path=path,
                status=response.status_code,
                duration_ms=elapsed_ms,
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

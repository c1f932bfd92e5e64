"""
Request correlation and timing.

Every request gets a request ID (taken from ``X-Request-ID`` when the client
sends one) that is exposed through a context variable, stamped on log records
by ``CorrelationLogFilter`` and echoed back in the response headers together
with the processing time.

Usage:
    from app.middleware.correlation import get_request_id

    trace_id = get_request_id()
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")


def generate_id() -> str:
    """Generate a short unique ID suitable for logging."""
    return str(uuid.uuid4())[:12]


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Sets the request ID for the duration of a request.

    Adds ``X-Request-ID`` and ``X-Response-Time`` to every response and logs
    one line per request at DEBUG, or WARNING when it took longer than
    ``slow_request_ms``.
    """

    def __init__(self, app, slow_request_ms: float = 1000):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get("X-Request-ID") or generate_id()
        token = request_id_ctx.set(request_id)
        request.state.request_id = request_id
        start = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms:.1f}ms"

        level = logging.WARNING if elapsed_ms > self.slow_request_ms else logging.DEBUG
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
            extra={"request_id": request_id},
        )
        return response


def get_request_id() -> str:
    """Get the current request ID from context."""
    return request_id_ctx.get() or "unknown"


class CorrelationLogFilter(logging.Filter):
    """Logging filter that injects the request ID into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True

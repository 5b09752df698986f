"""
Request context middleware for observability.

Injects request_id, correlation_id into every request for:
- Log correlation (find all logs for a request)
- Error tracking (tag Sentry events with the request)

Headers:
- X-Request-ID: Unique ID for this request (generated if not provided)
- X-Correlation-ID: ID spanning multiple services (passed through)
"""

import re
import time
from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from valorwell.core.context import (
    clear_context,
    generate_request_id,
    set_correlation_id,
    set_request_id,
)

logger = structlog.get_logger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000.0

# Request ID validation to prevent log injection attacks
MAX_ID_LENGTH = 64
SAFE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_\-]+$")


def _validate_id(value: Optional[str]) -> Optional[str]:
    """Returns None for missing, overlong or unsafe IDs (a generated ID is used instead)."""
    if not value:
        return None
    if len(value) > MAX_ID_LENGTH:
        return None
    if not SAFE_ID_PATTERN.match(value):
        return None
    return value


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Binds request_id / correlation_id to structlog and the context module,
    echoes them on the response and clears them afterwards.

    Order: Should be early in middleware chain (after CORS, before auth)
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _validate_id(request.headers.get("X-Request-ID")) or generate_request_id()
        set_request_id(request_id)
        request.state.request_id = request_id

        correlation_id = _validate_id(request.headers.get("X-Correlation-ID"))
        if correlation_id:
            set_correlation_id(correlation_id)

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            correlation_id=correlation_id,
            path=request.url.path,
            method=request.method,
        )

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code

            response.headers["X-Request-ID"] = request_id
            if correlation_id:
                response.headers["X-Correlation-ID"] = correlation_id

            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            if not request.url.path.endswith("/health") and (
                duration_ms >= SLOW_REQUEST_THRESHOLD_MS or status_code >= 500
            ):
                logger.warning(
                    "Slow or failed request",
                    status_code=status_code,
                    duration_ms=round(duration_ms, 1),
                )

            clear_context()

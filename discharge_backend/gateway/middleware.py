"""
Discharge Portal - Security Middleware

Request/response middleware for:
- Request ID propagation for tracing
- One structured log entry per request
- Security headers

Authentication itself is not done here; it runs per route through
discharge_backend.auth.dependencies.
"""

import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from discharge_backend.logging import bind_request_context, clear_request_context


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class SecurityMiddleware(BaseHTTPMiddleware):
    """
    Security-focused middleware for all incoming requests.

    Responsibilities:
    1. Reuse or assign X-Request-ID and bind it to the log context
    2. Log method, path, status and duration of every request
    3. Add security headers to the response
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id

        clear_request_context()
        bind_request_context(request_id=request_id)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Cache-Control"] = "no-store"
        return response

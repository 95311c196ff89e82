"""
StackIt Backend — Access Log Middleware
=========================================

What:  One log line per HTTP request on the `stackit.access` logger.
How:   Timed with perf_counter around call_next; level follows the status
       class so 5xx can be alerted on separately from 4xx.

    GET /api/questions 200 12.3ms [a1b2c3d4] from 10.0.0.7

Logged: method, path, status, duration, client IP, request id.
Never logged: bodies, query strings, Authorization headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from stackit.middleware.request_id import request_id_var

logger = logging.getLogger("stackit.access")

# Probes that would drown everything else
QUIET_PATHS = {"/health"}


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log with duration and correlation id."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - start_time) * 1000

        status = response.status_code
        if status >= 500:
            log_level = logging.ERROR
        elif status >= 400:
            log_level = logging.WARNING
        else:
            log_level = logging.INFO

        rid = request_id_var.get("")
        ip = client_ip(request)
        logger.log(
            log_level,
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            status,
            duration_ms,
            rid,
            ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": status,
                "duration_ms": round(duration_ms, 2),
                "client_ip": ip,
            },
        )
        return response

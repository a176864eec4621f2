"""
Omnivore API - Request Logging Middleware
=========================================

What:  One access-log line per request on the "omnivore.access" logger.
How:   Level follows the status class. Probe paths are skipped. The fields
       are also passed as `extra` so a JSON formatter can pick them up.

Never logged: request bodies, query strings (signed URLs carry signatures),
Authorization headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from omnivore_api.middleware.request_id import request_id_var

logger = logging.getLogger("omnivore.access")

UNLOGGED_PATHS = frozenset({"/health"})


def level_for_status(status: int) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in UNLOGGED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        fields = {
            "request_id": request_id_var.get(""),
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": elapsed_ms,
            "client_ip": request.client.host if request.client else "unknown",
            "response_bytes": response.headers.get("content-length", "-"),
        }
        logger.log(
            level_for_status(response.status_code),
            "%(method)s %(path)s %(status)d %(duration_ms).1fms %(response_bytes)sB [%(request_id)s] from %(client_ip)s",
            fields,
            extra=fields,
        )
        return response

"""
Omnivore API - Rate Limiting Middleware
=======================================

What:  Sliding window limiter, RATE_LIMIT_REQUESTS per RATE_LIMIT_WINDOW seconds.
How:   Keeps the request timestamps of each caller in memory, drops those
       older than the window, and answers 429 with Retry-After once the
       remaining count reaches the limit. Allowed responses carry
       X-RateLimit-Remaining.

Caller identity:
    - A request with a valid token is counted against its user ("user:<uid>").
      The mobile apps reach the API through carrier NAT, where many users
      share one address.
    - Anything else (signed file PUT/GET, anonymous calls) is counted against
      the client IP ("ip:<addr>").

Single-process only: each uvicorn worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from omnivore_api.auth import decode_token, token_from_request
from omnivore_api.config import settings
from omnivore_api.exceptions import RateLimitExceededError
from omnivore_api.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

CLEANUP_EVERY = 1000


def caller_key(request: Request) -> str:
    claims = decode_token(token_from_request(request))
    if claims is not None:
        return f"user:{claims.uid}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


class RateLimitMiddleware(BaseHTTPMiddleware):
    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._seen = 0

    def _too_many(self, key: str, timestamps: List[float], now: float) -> Response:
        retry_after = int(timestamps[0] + settings.rate_limit_window - now) + 1
        logger.warning(
            "Rate limit exceeded for %s: %d requests in %ds window",
            key,
            len(timestamps),
            settings.rate_limit_window,
        )
        # Raising here would bypass the app's exception handlers.
        exc = RateLimitExceededError(retry_after=retry_after)
        return JSONResponse(
            status_code=429,
            content={
                "error": "rate_limit_exceeded",
                "message": exc.message,
                "details": exc.context,
                "request_id": request_id_var.get(""),
            },
            headers={"Retry-After": str(retry_after)},
        )

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        key = caller_key(request)
        now = time.time()
        window_start = now - settings.rate_limit_window

        timestamps = [ts for ts in self._requests[key] if ts > window_start]
        self._requests[key] = timestamps

        if len(timestamps) >= settings.rate_limit_requests:
            return self._too_many(key, timestamps, now)

        timestamps.append(now)

        self._seen += 1
        if self._seen % CLEANUP_EVERY == 0:
            self._cleanup_inactive_callers(window_start)

        response = await call_next(request)
        response.headers["X-RateLimit-Remaining"] = str(settings.rate_limit_requests - len(timestamps))
        return response

    def _cleanup_inactive_callers(self, window_start: float) -> None:
        inactive = [
            key for key, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] < window_start
        ]
        for key in inactive:
            del self._requests[key]

        if inactive:
            logger.debug("Dropped rate limit state for %d inactive callers", len(inactive))

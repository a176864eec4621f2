"""
Omnivore API - Middleware
=========================

Request → [Rate Limit] → [Request ID] → [Logging] → [GZip] → [CORS] → route

    - rate_limit.py: per-IP sliding window, 429 + Retry-After
    - request_id.py: X-Request-ID, request_id_var ContextVar
    - logging.py:    access log line per request ("omnivore.access")
"""

"""
Omnivore API - Custom Exception Hierarchy
=========================================

What:  Application-specific exceptions for the HTTP surface and services.
How:   Each exception carries a user-safe message and an optional context
       dict. Global handlers registered in main.py turn them into structured
       JSON responses with the right status code; context is logged, never
       returned.

The upload-file-request operation is the exception to the rule: it reports
failures as typed error codes (see schemas/upload.py) and never lets these
exceptions cross its boundary.

Exception Hierarchy:
    OmnivoreError (base)
    ├── ValidationError          → 400 Bad Request
    │   └── InvalidUrlError      → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── SignatureError           → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── AnalyticsServiceError    → never reaches a client
    └── CircuitBreakerOpenError  → never reaches a client
"""

from typing import Any, Dict, Optional


class OmnivoreError(Exception):
    """
    Base exception for all Omnivore API errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)

    Subclasses that only need their own wording override `default_message`.
    """

    default_message = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or self.default_message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(OmnivoreError):
    """
    Bad client input. HTTP 400, and `context` is returned as `details`:

        {"error": "validation_error", "message": "URL must use http or https",
         "details": {"field": "url"}}
    """

    default_message = "Validation failed"

    def __init__(
        self,
        message: Optional[str] = None,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, dict(context or {}, **({"field": field} if field else {})))
        self.field = field


class InvalidUrlError(ValidationError):
    """The URL cannot be parsed at all."""

    def __init__(self, url: str = "", reason: str = "URL could not be parsed"):
        super().__init__(f"Invalid URL: {reason}", field="url", context={"reason": reason})
        self.url = url


class AuthenticationError(OmnivoreError):
    default_message = "Authentication is required"


class SignatureError(OmnivoreError):
    """A signed upload URL was tampered with, expired, or used with another content type."""

    default_message = "The upload URL is invalid or has expired"


class NotFoundError(OmnivoreError):
    """Missing resource, or one owned by another user. HTTP 404."""

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = dict(context or {}, resource=resource)
        if resource_id:
            ctx["resource_id"] = resource_id
            message = f"{resource} with ID '{resource_id}' was not found"
        else:
            message = f"The requested {resource} was not found"
        super().__init__(message, ctx)


class FileStorageError(OmnivoreError):
    # Paths and OS errors belong in context; the message reaches the client.
    default_message = "File storage operation failed"


class DatabaseError(OmnivoreError):
    default_message = "A database error occurred. Please try again later."


class AnalyticsServiceError(OmnivoreError):
    default_message = "Analytics event delivery failed"


class CircuitBreakerOpenError(OmnivoreError):
    """
    The analytics circuit breaker is OPEN.

        CLOSED → (N consecutive failures) → OPEN
        OPEN → (recovery_time elapsed) → HALF_OPEN
        HALF_OPEN → success → CLOSED, failure → OPEN
    """

    def __init__(self, recovery_time: int = 60, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Analytics is paused after repeated failures; retrying in about {recovery_time}s.",
            dict(context or {}, recovery_time=recovery_time),
        )
        self.recovery_time = recovery_time


class RateLimitExceededError(OmnivoreError):
    """Per-IP limit hit. HTTP 429 with Retry-After."""

    def __init__(self, retry_after: int = 60, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Too many requests. Try again in {retry_after} seconds.",
            dict(context or {}, retry_after=retry_after),
        )
        self.retry_after = retry_after

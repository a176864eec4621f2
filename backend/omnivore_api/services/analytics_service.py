"""
Omnivore API - Product Analytics Client
=======================================

What:  Sends product events (e.g. "file_upload_request") to a PostHog-compatible
       capture endpoint.
How:   httpx POST to {analytics_host}/capture/, wrapped in tenacity retries and
       a circuit breaker. capture_nowait() schedules delivery in the background.
Who:   UploadService; the app lifespan drains pending events on shutdown.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter for transport errors
    2. Circuit breaker so a dead analytics host costs one check per event
    3. Fire-and-forget delivery: callers never wait on, or fail because of,
       analytics
"""

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Set

import httpx
from tenacity import before_sleep_log, retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from omnivore_api.config import settings
from omnivore_api.exceptions import AnalyticsServiceError, CircuitBreakerOpenError, OmnivoreError

logger = logging.getLogger(__name__)

FILE_UPLOAD_REQUEST_EVENT = "file_upload_request"


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding the analytics endpoint.

    State Machine:
        CLOSED    → failure_threshold consecutive failed deliveries → OPEN
        OPEN      → every capture raises CircuitBreakerOpenError until
                    recovery_timeout seconds pass → HALF_OPEN
        HALF_OPEN → exactly one trial delivery; success → CLOSED,
                    failure → OPEN (timer restarts)

    Analytics events are fire-and-forget. Each upload request schedules its
    own capture task, so when the endpoint recovers many tasks reach
    can_execute() at once. Only the first becomes the trial; the rest are
    rejected as if the circuit were still OPEN.

    Events rejected while OPEN are counted in `dropped`, not replayed. The
    count is logged when the circuit closes again, so a gap in the event
    stream can be matched to an outage.

    Not thread-safe. The event loop runs in a single thread per worker.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60, name: str = "analytics"):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self.dropped = 0
        self._trial_in_flight = False

    @property
    def status(self) -> str:
        """Health-report label: "available" or "circuit_open"."""
        return "available" if self.state == self.CLOSED else "circuit_open"

    def _reject(self, remaining: int) -> None:
        self.dropped += 1
        raise CircuitBreakerOpenError(recovery_time=max(remaining, 1))

    def can_execute(self) -> bool:
        """
        Raises:
            CircuitBreakerOpenError: OPEN and the recovery timeout has not
                elapsed, or HALF_OPEN with the trial delivery still running.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed < self.recovery_timeout:
                self._reject(int(self.recovery_timeout - elapsed))
            logger.info("%s circuit HALF_OPEN after %.1fs, sending one trial event", self.name, elapsed)
            self.state = self.HALF_OPEN

        if self._trial_in_flight:
            self._reject(1)
        self._trial_in_flight = True
        return True

    def record_success(self) -> None:
        if self.state != self.CLOSED:
            logger.info(
                "%s circuit CLOSED, endpoint recovered (%d events dropped while open)",
                self.name,
                self.dropped,
            )
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
        self.dropped = 0
        self._trial_in_flight = False

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        self._trial_in_flight = False

        if self.state == self.HALF_OPEN:
            logger.warning("%s circuit back to OPEN, trial event failed", self.name)
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "%s circuit OPEN after %d consecutive failed deliveries; events are dropped for %ds",
                self.name,
                self.failure_count,
                self.recovery_timeout,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Analytics Service
# ══════════════════════════════════════════════════════════════════════════

class AnalyticsService:
    """
    Event capture client.

    With no ANALYTICS_API_KEY configured every call is a logged no-op, which
    is the default for development and tests.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        host: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = settings.analytics_api_key if api_key is None else api_key
        self.host = (host or settings.analytics_host).rstrip("/")
        self.timeout = timeout or settings.analytics_timeout
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def capture(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Deliver one event. Returns False when analytics is disabled.

        Raises:
            CircuitBreakerOpenError: recent deliveries kept failing.
            AnalyticsServiceError: delivery failed after all retries.
        """
        if not self.enabled:
            logger.debug("Analytics disabled, dropping event %s", event)
            return False

        self.circuit_breaker.can_execute()

        payload = {
            "api_key": self.api_key,
            "event": event,
            "distinct_id": distinct_id,
            "properties": properties or {},
        }
        try:
            await self._send_with_retry(payload)
        except httpx.HTTPError as e:
            self.circuit_breaker.record_failure()
            logger.error("Analytics event %s not delivered: %s", event, e)
            raise AnalyticsServiceError(
                context={"event": event, "error_type": type(e).__name__},
            ) from e
        except Exception:
            # Release a HALF_OPEN trial slot before the error propagates.
            self.circuit_breaker.record_failure()
            raise

        self.circuit_breaker.record_success()
        return True

    def capture_nowait(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]] = None,
    ) -> Optional[asyncio.Task]:
        """
        Schedule capture() on the running loop and return immediately.

        Never raises; delivery errors are logged by the background task.
        """
        if not self.enabled:
            return None
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, dropping analytics event %s", event)
            return None

        task = loop.create_task(self._capture_quietly(distinct_id, event, properties))
        # The loop only keeps weak references to tasks.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _capture_quietly(
        self,
        distinct_id: str,
        event: str,
        properties: Optional[Dict[str, Any]],
    ) -> None:
        try:
            await self.capture(distinct_id, event, properties)
        except OmnivoreError as e:
            logger.warning("Analytics event %s dropped: %s", event, e.message)

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _send_with_retry(self, payload: Dict[str, Any]) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(f"{self.host}/capture/", json=payload)
            response.raise_for_status()

    async def flush(self) -> None:
        """Wait for every scheduled event. Called on shutdown."""
        if self._pending:
            logger.info("Flushing %d pending analytics events", len(self._pending))
            await asyncio.gather(*list(self._pending), return_exceptions=True)


analytics_service = AnalyticsService()

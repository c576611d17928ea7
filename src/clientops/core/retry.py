"""Retry Gate -- bounded exponential backoff around a single external call.

Built on tenacity. Failures are classified before any retry:

- transport errors, timeouts, HTTP 5xx and 408 -> retryable
- HTTP 429 -> retryable, waiting for the service's Retry-After when present
- any other 4xx, and unknown exceptions -> terminal, surfaced immediately

Exhausted or terminal calls raise ExternalServiceFailure with the last
underlying error attached. Nothing is swallowed here.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, TypeVar

import httpx
import structlog
from googleapiclient.errors import HttpError
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from src.clientops.core.errors import ExternalServiceFailure
from src.clientops.core.monitoring import external_call_retries_total, external_calls_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_STATUS = 429
REQUEST_TIMEOUT_STATUS = 408
MAX_RETRY_AFTER_SECONDS = 120.0


# ── Classification ───────────────────────────────────────────────────────────


def status_code_of(exc: BaseException) -> int | None:
    """Extract an HTTP status code from known client exception types."""
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code
    if isinstance(exc, HttpError):
        try:
            return int(exc.resp.status)
        except (TypeError, ValueError):
            return None
    code = getattr(exc, "status_code", None)
    if isinstance(code, int):
        return code
    return None


def is_retryable(exc: BaseException) -> bool:
    """Return True if the failure is worth another attempt."""
    status = status_code_of(exc)
    if status is not None:
        if status == RATE_LIMIT_STATUS or status == REQUEST_TIMEOUT_STATUS:
            return True
        return status >= 500
    return isinstance(
        exc,
        (httpx.TransportError, TimeoutError, ConnectionError, asyncio.TimeoutError),
    )


def retry_after_seconds(exc: BaseException) -> float | None:
    """Return the service-indicated wait for a rate-limited call, if any."""
    if status_code_of(exc) != RATE_LIMIT_STATUS:
        return None

    raw: str | None = None
    if isinstance(exc, httpx.HTTPStatusError):
        raw = exc.response.headers.get("Retry-After")
    elif isinstance(exc, HttpError):
        raw = exc.resp.get("retry-after")
    else:
        headers = getattr(getattr(exc, "response", None), "headers", None)
        if headers is not None:
            raw = headers.get("Retry-After")

    if not raw:
        return None
    try:
        return max(0.0, float(raw))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


# ── Gate ─────────────────────────────────────────────────────────────────────


class RetryGate:
    """Wraps external calls with bounded retries and failure classification.

    Args:
        max_attempts: Total attempts including the first (small fixed bound).
        base_delay: Initial backoff in seconds.
        max_delay: Upper bound for a single backoff wait.
        sleep: Awaitable sleep used between attempts (injectable for tests).
    """

    def __init__(
        self,
        max_attempts: int = 4,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._max_attempts = max_attempts
        self._max_delay = max_delay
        self._backoff = wait_exponential(multiplier=base_delay, max=max_delay) + wait_random(0, base_delay)
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def _wait(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if exc is not None:
            indicated = retry_after_seconds(exc)
            if indicated is not None:
                return min(indicated, MAX_RETRY_AFTER_SECONDS)
        return min(self._backoff(retry_state), self._max_delay)

    def _before_sleep(self, operation: str) -> Callable[[RetryCallState], None]:
        def _log(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            external_call_retries_total.labels(operation=operation).inc()
            logger.warning(
                "retry_gate.retrying",
                operation=operation,
                attempt=retry_state.attempt_number,
                error=repr(exc),
            )

        return _log

    async def call(
        self,
        operation: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Invoke ``fn`` with retries.

        Args:
            operation: Stable name of the call for logs and metrics.
            fn: Async callable performing the external request.

        Returns:
            Whatever ``fn`` returns.

        Raises:
            ExternalServiceFailure: On a terminal error or after the last attempt.
        """
        attempts = 0
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=self._before_sleep(operation),
            sleep=self._sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    attempts = attempt.retry_state.attempt_number
                    result = await fn(*args, **kwargs)
        except Exception as exc:
            retryable = is_retryable(exc)
            external_calls_total.labels(operation=operation, outcome="failure").inc()
            logger.error(
                "retry_gate.failed",
                operation=operation,
                attempts=attempts,
                retryable=retryable,
                error=repr(exc),
            )
            raise ExternalServiceFailure(
                operation=operation,
                cause=exc,
                attempts=attempts,
                retryable=retryable,
            ) from exc

        external_calls_total.labels(operation=operation, outcome="success").inc()
        return result

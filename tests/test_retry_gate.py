"""Tests for RetryGate classification, backoff, and Retry-After handling."""

from __future__ import annotations

import warnings
from unittest.mock import AsyncMock

import httpx
import pytest

from src.clientops.core.errors import ExternalServiceFailure
from src.clientops.core.retry import RetryGate, is_retryable, retry_after_seconds, status_code_of
from tests.doubles import FakeHTTPError


def _http_status_error(status: int, headers: dict | None = None) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example.com/x")
    response = httpx.Response(status, headers=headers or {}, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class RecordingSleep:
    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


class TestClassification:
    @pytest.mark.parametrize("status", [500, 502, 503, 408, 429])
    def test_retryable_statuses(self, status):
        assert is_retryable(_http_status_error(status))

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_terminal_statuses(self, status):
        assert not is_retryable(_http_status_error(status))

    def test_transport_errors_and_timeouts_are_retryable(self):
        assert is_retryable(httpx.ConnectError("refused"))
        assert is_retryable(httpx.ReadTimeout("slow"))
        assert is_retryable(TimeoutError())

    def test_unknown_exceptions_are_terminal(self):
        assert not is_retryable(ValueError("bad"))

    def test_status_code_attribute_is_read(self):
        assert status_code_of(FakeHTTPError(503)) == 503

    def test_retry_after_numeric(self):
        assert retry_after_seconds(_http_status_error(429, {"Retry-After": "7"})) == 7.0

    def test_retry_after_ignored_for_other_statuses(self):
        assert retry_after_seconds(_http_status_error(503, {"Retry-After": "7"})) is None


class TestRetryGate:
    @pytest.mark.asyncio
    async def test_success_first_try(self):
        gate = RetryGate(max_attempts=3, sleep=RecordingSleep())
        fn = AsyncMock(return_value="ok")

        assert await gate.call("op", fn, 1, key="v") == "ok"
        fn.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        sleep = RecordingSleep()
        gate = RetryGate(max_attempts=4, base_delay=0.5, max_delay=5.0, sleep=sleep)
        fn = AsyncMock(side_effect=[FakeHTTPError(503), FakeHTTPError(502), "done"])

        assert await gate.call("op", fn) == "done"
        assert fn.await_count == 3
        assert len(sleep.waits) == 2
        assert all(0 <= w <= 5.0 for w in sleep.waits)

    @pytest.mark.asyncio
    async def test_terminal_error_is_not_retried(self):
        sleep = RecordingSleep()
        gate = RetryGate(max_attempts=4, sleep=sleep)
        cause = FakeHTTPError(404)
        fn = AsyncMock(side_effect=cause)

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await gate.call("tasks.create_task", fn)

        assert fn.await_count == 1
        assert sleep.waits == []
        failure = exc_info.value
        assert failure.retryable is False
        assert failure.cause is cause
        assert failure.__cause__ is cause
        assert failure.operation == "tasks.create_task"

    @pytest.mark.asyncio
    async def test_exhaustion_attaches_last_error(self):
        gate = RetryGate(max_attempts=3, sleep=RecordingSleep())
        errors = [FakeHTTPError(503, "first"), FakeHTTPError(503, "second"), FakeHTTPError(503, "last")]
        fn = AsyncMock(side_effect=errors)

        with pytest.raises(ExternalServiceFailure) as exc_info:
            await gate.call("op", fn)

        assert fn.await_count == 3
        assert exc_info.value.attempts == 3
        assert exc_info.value.retryable is True
        assert exc_info.value.cause is errors[-1]

    @pytest.mark.asyncio
    async def test_rate_limit_honours_retry_after(self):
        sleep = RecordingSleep()
        gate = RetryGate(max_attempts=3, base_delay=0.01, max_delay=0.05, sleep=sleep)
        fn = AsyncMock(side_effect=[_http_status_error(429, {"Retry-After": "3"}), "ok"])

        assert await gate.call("op", fn) == "ok"
        assert sleep.waits == [3.0]

    @pytest.mark.asyncio
    async def test_backoff_doubles_from_base_and_is_capped(self):
        sleep = RecordingSleep()
        gate = RetryGate(max_attempts=5, base_delay=1.0, max_delay=2.0, sleep=sleep)
        fn = AsyncMock(side_effect=[FakeHTTPError(503)] * 4 + ["ok"])

        assert await gate.call("op", fn) == "ok"
        assert 1.0 <= sleep.waits[0] <= 2.0
        assert sleep.waits[1:] == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_gate_emits_no_warnings(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            gate = RetryGate(max_attempts=2, base_delay=0.01, max_delay=0.05, sleep=RecordingSleep())
            fn = AsyncMock(side_effect=[FakeHTTPError(503), "ok"])

            assert await gate.call("op", fn) == "ok"

    def test_max_attempts_must_be_positive(self):
        with pytest.raises(ValueError):
            RetryGate(max_attempts=0)

"""Tests for metrics, Sentry wiring, and request logging middleware."""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from src.clientops.core.monitoring import (
    agenda_generated_total,
    external_call_retries_total,
    external_calls_total,
    init_sentry,
    meeting_transitions_total,
)
from src.clientops.core.retry import RetryGate
from src.clientops.main import create_app
from src.clientops.meetings.schemas import MeetingEvent, ProcessingState, WebhookParticipant, WebhookPayload
from tests.doubles import FakeHTTPError, no_sleep


class TestWorkflowMetrics:
    @pytest.mark.asyncio
    async def test_retry_gate_counts_retries_and_outcome(self):
        labels = {"operation": "metrics.check"}
        retries_before = external_call_retries_total.labels(**labels)._value.get()
        success_before = external_calls_total.labels(outcome="success", **labels)._value.get()

        gate = RetryGate(max_attempts=3, sleep=no_sleep)
        await gate.call("metrics.check", AsyncMock(side_effect=[FakeHTTPError(503), "ok"]))

        assert external_call_retries_total.labels(**labels)._value.get() == retries_before + 1
        assert external_calls_total.labels(outcome="success", **labels)._value.get() == success_before + 1

    @pytest.mark.asyncio
    async def test_transition_counter(self, repository, now):
        payload = WebhookPayload(
            meeting_id="rec-metrics",
            title="Sync",
            timestamp=now,
            participants=[WebhookParticipant(email="a@acme.com")],
        )
        event = MeetingEvent.from_payload(payload, "C-0001", ProcessingState.RECEIVED)
        await repository.create(event)
        counter = meeting_transitions_total.labels(from_state="received", to_state="drafted")
        before = counter._value.get()

        await repository.transition(event, ProcessingState.DRAFTED)

        assert counter._value.get() == before + 1

    def test_agenda_outcome_labels(self):
        for outcome in ("generated", "duplicate", "already_generated", "unmatched", "error"):
            agenda_generated_total.labels(outcome=outcome)


class TestSentry:
    def test_init_sentry_samples_less_in_production(self):
        with patch("sentry_sdk.init") as mock_init:
            init_sentry(dsn="https://key@sentry.example/1", environment="production")

        kwargs = mock_init.call_args.kwargs
        assert kwargs["traces_sample_rate"] == 0.1
        assert kwargs["environment"] == "production"


class TestHTTPMiddleware:
    @pytest.mark.asyncio
    async def test_request_id_echoed_and_metrics_exposed(self):
        app = create_app()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            health = await client.get("/api/v1/health", headers={"X-Request-ID": "req-123"})
            metrics = await client.get("/metrics")

        assert health.headers["X-Request-ID"] == "req-123"
        assert metrics.status_code == 200
        assert "http_requests_total" in metrics.text
        assert "meeting_transitions_total" in metrics.text

    @pytest.mark.asyncio
    async def test_request_id_generated_when_absent(self):
        app = create_app()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.get("/api/v1/health")

        assert len(response.headers["X-Request-ID"]) == 36

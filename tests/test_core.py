"""Tests for templating, webhook signatures, and business-hours gating."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from src.clientops.config import BusinessHours
from src.clientops.core.errors import TemplateError, ValidationFailure
from src.clientops.core.schedule import within_business_hours
from src.clientops.core.security import compute_signature, verify_webhook_signature
from src.clientops.core.templating import placeholders, render


# ── Templating ───────────────────────────────────────────────────────────────


class TestRender:
    def test_substitutes_all_placeholders(self):
        assert render("Hi {{ name }}, re {{topic}}", {"name": "Ana", "topic": "Q3"}) == "Hi Ana, re Q3"

    def test_missing_variable_raises(self):
        with pytest.raises(TemplateError) as exc_info:
            render("{{a}} {{b}} {{c}}", {"a": "x"})
        assert exc_info.value.missing == ["b", "c"]

    def test_none_counts_as_missing(self):
        with pytest.raises(TemplateError):
            render("{{a}}", {"a": None})

    def test_template_error_is_validation_failure(self):
        assert issubclass(TemplateError, ValidationFailure)

    def test_values_are_not_rescanned(self):
        assert render("{{a}}", {"a": "{{b}}"}) == "{{b}}"

    def test_placeholders_in_first_appearance_order(self):
        assert placeholders("{{b}} {{a}} {{b}}") == ["b", "a"]

    def test_empty_string_is_a_value(self):
        assert render("[{{a}}]", {"a": ""}) == "[]"


# ── Signatures ───────────────────────────────────────────────────────────────


class TestWebhookSignature:
    body = b'{"title": "Sync"}'

    def test_valid_signature_passes(self):
        verify_webhook_signature(self.body, compute_signature(self.body, "s3cret"), "s3cret")

    def test_prefixed_signature_passes(self):
        header = "sha256=" + compute_signature(self.body, "s3cret")
        verify_webhook_signature(self.body, header, "s3cret")

    def test_mismatch_rejected(self):
        with pytest.raises(ValidationFailure, match="mismatch"):
            verify_webhook_signature(self.body, compute_signature(self.body, "other"), "s3cret")

    def test_missing_header_rejected_when_secret_set(self):
        with pytest.raises(ValidationFailure, match="missing"):
            verify_webhook_signature(self.body, None, "s3cret")

    def test_no_secret_skips_verification(self):
        verify_webhook_signature(self.body, None, "")
        verify_webhook_signature(self.body, "garbage", "")


# ── Business Hours ───────────────────────────────────────────────────────────


class TestBusinessHours:
    hours = BusinessHours(start_hour=8, end_hour=18)

    def test_inside_window(self):
        assert within_business_hours(datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc), self.hours)

    def test_end_hour_is_exclusive(self):
        assert not within_business_hours(datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc), self.hours)

    def test_weekend_excluded(self):
        assert not within_business_hours(datetime(2026, 10, 18, 10, 0, tzinfo=timezone.utc), self.hours)

    def test_naive_treated_as_utc(self):
        assert within_business_hours(datetime(2026, 10, 19, 8, 0), self.hours)

    def test_time_zone_applied(self):
        hours = BusinessHours(start_hour=8, end_hour=18, timezone="America/New_York")
        # 13:00 UTC is 09:00 in New York (EDT)
        assert within_business_hours(datetime(2026, 10, 19, 13, 0, tzinfo=timezone.utc), hours)
        # 11:00 UTC is 07:00 in New York
        assert not within_business_hours(datetime(2026, 10, 19, 11, 0, tzinfo=timezone.utc), hours)

"""Tests for the meeting lifecycle: ingestion, drafting, sent detection, completion.

Uses the in-memory store and fakes from conftest; no external services.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from src.clientops.core.errors import InvalidTransition, PersistenceFailure
from src.clientops.ledger import ActionType, AuditStatus
from src.clientops.meetings.notes import parse_marker
from src.clientops.meetings.schemas import (
    MeetingEvent,
    ProcessingState,
    WebhookActionItem,
    WebhookParticipant,
    WebhookPayload,
)
from src.clientops.storage.rowstore import MEETINGS_TABLE, UNMATCHED_TABLE
from tests.doubles import FakeHTTPError, YieldingRowStore, make_thread


def _payload(
    *emails: str,
    meeting_id: str | None = "rec-001",
    action_items: list[WebhookActionItem] | None = None,
) -> WebhookPayload:
    return WebhookPayload(
        meeting_id=meeting_id,
        title="Quarterly review",
        timestamp=datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
        participants=[WebhookParticipant(name=e.split("@")[0], email=e) for e in emails],
        summary="We reviewed Q3 delivery.",
        action_items=action_items
        if action_items is not None
        else [WebhookActionItem(description="Send revised SOW", assignee="Dana", due_date="Friday")],
    )


async def _actions(ledger) -> list[tuple[ActionType, AuditStatus]]:
    return [(a.action, a.status) for a in await ledger.list_audit()]


# ── Webhook Ingestion ────────────────────────────────────────────────────────


class TestIngestWebhook:
    @pytest.mark.asyncio
    async def test_domain_match_drafts_follow_up(self, orchestrator, repository, gmail, ledger):
        event = await orchestrator.ingest_webhook(_payload("a@acme.com"))

        assert event.client_id == "C-0001"
        assert event.state == ProcessingState.DRAFTED
        stored = await repository.get("rec-001")
        assert stored.state == ProcessingState.DRAFTED

        assert len(gmail.drafts) == 1
        draft = gmail.drafts[0]
        assert draft.to == ["a@acme.com"]
        assert draft.subject == "Follow-up: Quarterly review (2026-10-19)"
        assert "- Send revised SOW (Dana, due Friday)" in draft.body_text
        marker = parse_marker(draft.body_text)
        assert (marker.client_id, marker.meeting_date, marker.event_id) == (
            "C-0001",
            "2026-10-19",
            "rec-001",
        )
        assert gmail.labels["t1"] == {"ClientOps/Follow-up"}
        assert (ActionType.DRAFT_CREATED, AuditStatus.SUCCESS) in await _actions(ledger)

    @pytest.mark.asyncio
    async def test_replay_is_a_no_op(self, orchestrator, gmail, seeded_store):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        again = await orchestrator.ingest_webhook(_payload("a@acme.com"))

        assert again.state == ProcessingState.DRAFTED
        assert len(gmail.drafts) == 1
        assert len(seeded_store.rows(MEETINGS_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_hash_id_when_provider_sends_none(self, orchestrator):
        first = await orchestrator.ingest_webhook(_payload("a@acme.com", meeting_id=None))
        second = await orchestrator.ingest_webhook(_payload("a@acme.com", meeting_id=None))

        assert first.event_id.startswith("rec_")
        assert first.event_id == second.event_id

    @pytest.mark.asyncio
    async def test_unmatched_participants(self, orchestrator, gmail, ledger, seeded_store):
        event = await orchestrator.ingest_webhook(_payload("x@unknown.org"))

        assert event.state == ProcessingState.UNMATCHED
        assert event.client_id is None
        assert gmail.drafts == []
        items = await ledger.list_unmatched()
        assert [i.reference for i in items] == ["rec-001"]
        assert items[0].participant_addresses == ["x@unknown.org"]
        assert (ActionType.MATCH_FAILURE, AuditStatus.WARNING) in await _actions(ledger)

    @pytest.mark.asyncio
    async def test_unmatched_audit_names_the_addresses(self, orchestrator, ledger):
        await orchestrator.ingest_webhook(_payload("x@unknown.org", "ops@ourfirm.com"))

        failures = [a for a in await ledger.list_audit() if a.action == ActionType.MATCH_FAILURE]
        assert [a.details for a in failures] == [
            "rec-001: No client matched addresses: x@unknown.org"
        ]

    @pytest.mark.asyncio
    async def test_unmatched_replay_does_not_requeue(self, orchestrator, seeded_store):
        await orchestrator.ingest_webhook(_payload("x@unknown.org"))
        await orchestrator.ingest_webhook(_payload("x@unknown.org"))

        assert len(seeded_store.rows(UNMATCHED_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_internal_only_client_ignores_operator_address(self, orchestrator):
        event = await orchestrator.ingest_webhook(
            _payload("ops@ourfirm.com", "alice@ourfirm.com")
        )
        assert event.client_id == "C-0002"

    @pytest.mark.asyncio
    async def test_terminal_draft_error_fails_event(self, orchestrator, gmail, ledger):
        gmail.draft_errors = [FakeHTTPError(400)]

        event = await orchestrator.ingest_webhook(_payload("a@acme.com"))

        assert event.state == ProcessingState.FAILED
        assert (ActionType.DRAFT_CREATED, AuditStatus.ERROR) in await _actions(ledger)

    @pytest.mark.asyncio
    async def test_exhausted_retries_leave_received_then_retry_sweep_drafts(
        self, orchestrator, gmail, repository
    ):
        gmail.draft_errors = [FakeHTTPError(503)] * 3

        event = await orchestrator.ingest_webhook(_payload("a@acme.com"))
        assert event.state == ProcessingState.RECEIVED
        assert gmail.drafts == []

        report = await orchestrator.retry_pending_drafts()

        assert report.scanned == 1
        assert report.advanced == 1
        assert (await repository.get("rec-001")).state == ProcessingState.DRAFTED
        assert len(gmail.drafts) == 1

    @pytest.mark.asyncio
    async def test_retry_reuses_existing_draft(self, orchestrator, gmail, repository):
        gmail.draft_errors = [FakeHTTPError(503)] * 3
        event = await orchestrator.ingest_webhook(_payload("a@acme.com"))
        # A draft from an interrupted attempt already exists in Gmail
        gmail.search_results = [
            make_thread("t-old", "body [ref:C-0001|2026-10-19|rec-001]", event.start, labels=("DRAFT",))
        ]

        await orchestrator.retry_pending_drafts()

        assert gmail.drafts == []
        assert gmail.labels["t-old"] == {"ClientOps/Follow-up"}
        assert (await repository.get("rec-001")).state == ProcessingState.DRAFTED


# ── Repository Transitions ───────────────────────────────────────────────────


class TestTransitions:
    @pytest.mark.asyncio
    async def test_terminal_states_are_immutable(self, repository):
        event = MeetingEvent.from_payload(_payload("a@acme.com"), "C-0001", ProcessingState.RECEIVED)
        await repository.create(event)
        failed = await repository.transition(event, ProcessingState.FAILED)

        with pytest.raises(InvalidTransition):
            await repository.transition(failed, ProcessingState.DRAFTED)

    @pytest.mark.asyncio
    async def test_stale_copy_cannot_skip_ahead(self, repository):
        event = MeetingEvent.from_payload(_payload("a@acme.com"), "C-0001", ProcessingState.RECEIVED)
        await repository.create(event)
        await repository.transition(event, ProcessingState.DRAFTED)

        # ``event`` still says Received; the stored row says Drafted
        with pytest.raises(InvalidTransition):
            await repository.transition(event, ProcessingState.UNMATCHED)

    @pytest.mark.asyncio
    async def test_round_trips_payload_through_row(self, repository):
        event = MeetingEvent.from_payload(_payload("a@acme.com"), "C-0001", ProcessingState.RECEIVED)
        await repository.create(event)

        stored = await repository.get(event.event_id)

        assert stored.payload == event.payload
        assert stored.participants == ["a@acme.com"]

    @pytest.mark.asyncio
    async def test_create_returns_stored_event_for_known_id(self, repository, seeded_store):
        event = MeetingEvent.from_payload(_payload("a@acme.com"), "C-0001", ProcessingState.RECEIVED)

        assert await repository.create(event) == (event, True)
        stored, created = await repository.create(event.model_copy(update={"title": "Renamed"}))

        assert created is False
        assert stored.title == "Quarterly review"
        assert len(seeded_store.rows(MEETINGS_TABLE)) == 1

    @pytest.mark.asyncio
    async def test_racing_create_loses_to_earlier_row(self, repository, seeded_store):
        """Another delivery's row landed between our check and our append."""
        event = MeetingEvent.from_payload(_payload("a@acme.com"), "C-0001", ProcessingState.RECEIVED)
        original_append = seeded_store.append

        async def racing_append(table, row):
            if table == MEETINGS_TABLE and row.get("claim_token") != "other":
                await original_append(table, {**event.to_row(), "claim_token": "other"})
            await original_append(table, row)

        seeded_store.append = racing_append

        stored, created = await repository.create(event)

        assert created is False
        assert stored.event_id == event.event_id
        assert seeded_store.rows(MEETINGS_TABLE)[0]["claim_token"] == "other"
        assert len(await repository.list_all()) == 1


# ── Sent Detection & Completion ──────────────────────────────────────────────


class TestSweepSent:
    @pytest.mark.asyncio
    async def test_sent_follow_up_completes_meeting(
        self, orchestrator, gmail, docs, tasks, repository, ledger, now
    ):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        gmail.labelled_threads = [make_thread("t1", gmail.drafts[0].body_text, now)]

        report = await orchestrator.sweep_sent(now)

        assert report.advanced == 1
        assert (await repository.get("rec-001")).state == ProcessingState.COMPLETED

        assert [t.content for t in tasks.created] == ["Send revised SOW"]
        assert tasks.created[0].assignee_id == "u-42"
        assert tasks.created[0].description == "ref:rec-001#1"

        assert len(docs.appends) == 1
        document = docs.documents["doc-acme"]
        assert "=== Meeting Notes | 2026-10-19 | Quarterly review ===" in document
        assert "Ref: rec-001" in document
        assert "[ref:" not in document
        assert "=== End Meeting Notes ===" in document

        assert "ClientOps/Processed" in gmail.labels["t1"]
        actions = await _actions(ledger)
        assert (ActionType.SENT_DETECTED, AuditStatus.INFO) in actions
        assert (ActionType.MEETING_COMPLETED, AuditStatus.SUCCESS) in actions

    @pytest.mark.asyncio
    async def test_tasks_follow_the_edited_sent_body(self, orchestrator, gmail, tasks, now):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        edited = gmail.drafts[0].body_text.replace(
            "- Send revised SOW (Dana, due Friday)",
            "- Send final SOW (Dana)\n- Book offsite venue",
        )
        gmail.labelled_threads = [make_thread("t1", edited, now)]

        await orchestrator.sweep_sent(now)

        assert [t.content for t in tasks.created] == ["Send final SOW", "Book offsite venue"]

    @pytest.mark.asyncio
    async def test_partial_failure_replay_creates_one_task_and_one_append(
        self, orchestrator, gmail, docs, tasks, repository, ledger, now
    ):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        gmail.labelled_threads = [make_thread("t1", gmail.drafts[0].body_text, now)]
        docs.append_errors = [FakeHTTPError(400)]

        first = await orchestrator.sweep_sent(now)

        assert first.pending == 1
        assert (await repository.get("rec-001")).state == ProcessingState.SENT
        assert len(tasks.created) == 1
        assert docs.appends == []
        assert (ActionType.NOTES_APPENDED, AuditStatus.ERROR) in await _actions(ledger)

        second = await orchestrator.sweep_sent(now)
        third = await orchestrator.sweep_sent(now)

        assert second.advanced == 1
        assert third.skipped == 1
        assert (await repository.get("rec-001")).state == ProcessingState.COMPLETED
        assert len(tasks.created) == 1
        assert len(docs.appends) == 1

    @pytest.mark.asyncio
    async def test_notes_already_filed_are_not_appended_again(
        self, orchestrator, gmail, docs, tasks, now
    ):
        """Notes landed but the task service failed: the retry only adds the task."""
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        gmail.labelled_threads = [make_thread("t1", gmail.drafts[0].body_text, now)]
        tasks.list_errors = [FakeHTTPError(400)]

        await orchestrator.sweep_sent(now)
        assert len(docs.appends) == 1
        assert tasks.created == []

        await orchestrator.sweep_sent(now)
        assert len(docs.appends) == 1
        assert len(tasks.created) == 1

    @pytest.mark.asyncio
    async def test_interleaved_events_file_notes_once_each(
        self, orchestrator, gmail, docs, tasks, repository, now
    ):
        """A's retry runs after B's notes were appended below A's in the same document."""
        await orchestrator.ingest_webhook(_payload("a@acme.com", meeting_id="rec-A"))
        await orchestrator.ingest_webhook(_payload("b@acme.com", meeting_id="rec-B"))
        thread_a = make_thread("t1", gmail.drafts[0].body_text, now)
        thread_b = make_thread("t2", gmail.drafts[1].body_text, now)

        tasks.list_errors = [FakeHTTPError(400)]
        gmail.labelled_threads = [thread_a]
        await orchestrator.sweep_sent(now)
        assert (await repository.get("rec-A")).state == ProcessingState.SENT

        gmail.labelled_threads = [thread_b]
        await orchestrator.sweep_sent(now)

        gmail.labelled_threads = [thread_a, thread_b]
        await orchestrator.sweep_sent(now)

        document = docs.documents["doc-acme"]
        assert document.count("Ref: rec-A") == 1
        assert document.count("Ref: rec-B") == 1
        assert len(docs.appends) == 2
        assert (await repository.get("rec-A")).state == ProcessingState.COMPLETED
        assert (await repository.get("rec-B")).state == ProcessingState.COMPLETED

    @pytest.mark.asyncio
    async def test_unsent_draft_and_unmarked_threads_are_skipped(
        self, orchestrator, gmail, repository, now
    ):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        gmail.labelled_threads = [
            make_thread("t1", gmail.drafts[0].body_text, now, labels=("DRAFT",)),
            make_thread("t9", "no marker here", now),
        ]

        report = await orchestrator.sweep_sent(now)

        assert report.skipped == 2
        assert (await repository.get("rec-001")).state == ProcessingState.DRAFTED

    @pytest.mark.asyncio
    async def test_only_first_message_of_thread_counts(self, orchestrator, gmail, repository, now):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        thread = make_thread("t1", gmail.drafts[0].body_text, now, labels=("DRAFT",))
        reply = thread.messages[0].model_copy(
            update={"message_id": "t1-2", "label_ids": ["SENT"], "body_text": "Re: thanks"}
        )
        thread.messages.append(reply)
        gmail.labelled_threads = [thread]

        await orchestrator.sweep_sent(now)

        assert (await repository.get("rec-001")).state == ProcessingState.DRAFTED

    @pytest.mark.asyncio
    async def test_inactive_client_fails_event(
        self, orchestrator, gmail, registry, repository, ledger, now
    ):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        await registry.deactivate("C-0001")
        gmail.labelled_threads = [make_thread("t1", gmail.drafts[0].body_text, now)]

        await orchestrator.sweep_sent(now)

        assert (await repository.get("rec-001")).state == ProcessingState.FAILED
        assert (ActionType.TRANSITION_ERROR, AuditStatus.ERROR) in await _actions(ledger)

    @pytest.mark.asyncio
    async def test_one_broken_item_does_not_stop_the_batch(
        self, orchestrator, gmail, repository, seeded_store, ledger, now
    ):
        await orchestrator.ingest_webhook(_payload("a@acme.com", meeting_id="rec-A"))
        await orchestrator.ingest_webhook(_payload("b@acme.com", meeting_id="rec-B"))
        gmail.labelled_threads = [
            make_thread("t1", gmail.drafts[0].body_text, now),
            make_thread("t2", gmail.drafts[1].body_text, now),
        ]

        original_update = seeded_store.update

        async def flaky_update(table, key_field, key, changes):
            if table == MEETINGS_TABLE and key == "rec-A":
                raise PersistenceFailure(table, "update")
            await original_update(table, key_field, key, changes)

        seeded_store.update = flaky_update

        report = await orchestrator.sweep_sent(now)

        assert report.errors == 1
        assert report.advanced == 1
        assert (await repository.get("rec-A")).state == ProcessingState.DRAFTED
        assert (await repository.get("rec-B")).state == ProcessingState.COMPLETED
        assert (ActionType.TRANSITION_ERROR, AuditStatus.ERROR) in await _actions(ledger)


# ── Overlapping Invocations ──────────────────────────────────────────────────


class TestOverlappingInvocations:
    """Two invocations interleaved at every store call, as on a shared sheet."""

    @pytest.fixture
    def store(self) -> YieldingRowStore:
        return YieldingRowStore()

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_draft_once(self, orchestrator, repository, gmail, ledger):
        first, second = await asyncio.gather(
            orchestrator.ingest_webhook(_payload("a@acme.com")),
            orchestrator.ingest_webhook(_payload("a@acme.com")),
        )

        assert first.event_id == second.event_id == "rec-001"
        assert len(gmail.drafts) == 1
        events = await repository.list_all()
        assert [e.event_id for e in events] == ["rec-001"]
        assert events[0].state == ProcessingState.DRAFTED
        received = [a for a in await ledger.list_audit() if a.action == ActionType.WEBHOOK_RECEIVED]
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_losing_row_is_never_redriven(self, orchestrator, gmail):
        await asyncio.gather(
            orchestrator.ingest_webhook(_payload("a@acme.com")),
            orchestrator.ingest_webhook(_payload("a@acme.com")),
        )

        report = await orchestrator.retry_pending_drafts()

        assert report.scanned == 0
        assert len(gmail.drafts) == 1

    @pytest.mark.asyncio
    async def test_overlapping_sent_sweeps_complete_once(
        self, orchestrator, gmail, docs, tasks, repository, now
    ):
        await orchestrator.ingest_webhook(_payload("a@acme.com"))
        gmail.labelled_threads = [make_thread("t1", gmail.drafts[0].body_text, now)]
        tasks.list_errors = [FakeHTTPError(400)]
        docs.append_errors = [FakeHTTPError(400)]
        await orchestrator.sweep_sent(now)
        assert (await repository.get("rec-001")).state == ProcessingState.SENT

        # Reads that yield leave room for the other sweep to act on stale state
        list_tasks, read_all_text = tasks.list_tasks, docs.read_all_text

        async def slow_list_tasks(project_id, due_filter=None):
            result = await list_tasks(project_id, due_filter)
            await asyncio.sleep(0)
            return result

        async def slow_read_all_text(document_id):
            text = await read_all_text(document_id)
            await asyncio.sleep(0)
            return text

        tasks.list_tasks = slow_list_tasks
        docs.read_all_text = slow_read_all_text

        reports = await asyncio.gather(orchestrator.sweep_sent(now), orchestrator.sweep_sent(now))

        assert len(tasks.created) == 1
        assert len(docs.appends) == 1
        assert (await repository.get("rec-001")).state == ProcessingState.COMPLETED
        assert sorted(r.advanced for r in reports) == [0, 1]
        assert sum(r.errors for r in reports) == 0

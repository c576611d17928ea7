"""MeetingLifecycleOrchestrator -- drives meetings from recording to filed notes.

Lifecycle::

    Received -> Drafted -> Sent -> Completed
        |                    |
        +-> Unmatched        +-> Failed
        +-> Failed

Each public method is one short-lived invocation. All cross-invocation state
lives in the row store (meeting events, ledger), so every step re-reads what
it needs and is safe to re-run after a partial failure:

- Task creation skips items whose ``ref:<event_id>#<n>`` marker already
  appears on a task in the client's project.
- Notes filing skips when any block in the document already belongs to the
  event.
- Event creation and completion are compare-and-insert claims, so
  overlapping invocations on one event leave a single winner.
- Agenda generation claims the dedup ledger before notifying, so a crash
  between the two can lose a notification but never duplicate one.

Unexpected errors on one item are audited and the batch moves on; the item
stays in its last persisted state for the next sweep.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog

from src.clientops.config import WorkflowConfig
from src.clientops.context.aggregator import ContextAggregator
from src.clientops.context.schemas import AgendaContext
from src.clientops.core.errors import ExternalServiceFailure, MatchFailure, TemplateError
from src.clientops.core.monitoring import agenda_generated_total
from src.clientops.core.retry import RetryGate
from src.clientops.core.templating import render
from src.clientops.ledger import (
    ActionType,
    AuditStatus,
    DedupEntry,
    ItemType,
    Ledger,
    UnmatchedItem,
)
from src.clientops.matching.matcher import ClientMatcher, exclude_operator
from src.clientops.meetings.notes import (
    CorrelationMarker,
    format_action_items,
    format_notes_block,
    notes_already_filed,
    parse_action_items,
    parse_marker,
    strip_marker,
)
from src.clientops.meetings.prompts import AGENDA_SYSTEM_PROMPT
from src.clientops.meetings.repository import MeetingEventRepository
from src.clientops.meetings.schemas import (
    MeetingEvent,
    ProcessingState,
    SweepReport,
    WebhookPayload,
)
from src.clientops.registry.repository import ClientRegistry
from src.clientops.registry.schemas import ClientRecord
from src.clientops.services.gsuite.calendar import GoogleCalendarService
from src.clientops.services.gsuite.docs import DocsService
from src.clientops.services.gsuite.gmail import GmailService
from src.clientops.services.gsuite.models import CalendarEvent, EmailMessage
from src.clientops.services.llm import LLMService
from src.clientops.services.tasks import TodoistClient

logger = structlog.get_logger(__name__)


def task_marker(event_id: str, index: int) -> str:
    """Idempotency marker stored in a created task's description."""
    return f"ref:{event_id}#{index}"


def agenda_prompt_variables(context: AgendaContext, meeting_title: str) -> dict[str, str]:
    """Flatten an AgendaContext into template variables for the prompt."""
    tasks = "\n".join(
        f"- {t.content}" + (f" (due {t.due_date.isoformat()})" if t.due_date else "")
        for t in context.outstanding_tasks
    )
    threads = "\n\n".join(
        f"Subject: {c.subject}\nFrom: {c.sender}\nDate: {c.date.isoformat()}\n{c.excerpt}"
        for c in context.correspondence
    )
    carried = "\n".join(f"- {item}" for item in context.carried_over)
    return {
        "meeting_title": meeting_title,
        "client_name": context.client_name,
        "meeting_date": context.meeting_date.isoformat(),
        "outstanding_tasks": tasks or "(none)",
        "correspondence": threads or "(none)",
        "prior_notes": context.prior_notes or "(none)",
        "carried_over": carried or "(none)",
    }


class MeetingLifecycleOrchestrator:
    """Coordinates the meeting lifecycle and the agenda sub-flow.

    Args:
        config: Immutable workflow configuration.
        registry: ClientRegistry (read for matching and handles).
        repository: MeetingEventRepository for event rows.
        ledger: Ledger for audit, dedup, claim, and unmatched records.
        retry_gate: RetryGate wrapping every external call.
        gmail: GmailService for drafts, labels, and notifications.
        docs: DocsService for the client's running document.
        tasks: TodoistClient for action-item tasks.
        llm: LLMService for agenda synthesis.
        calendar: GoogleCalendarService listing upcoming meetings.
        aggregator: ContextAggregator for agenda context.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        registry: ClientRegistry,
        repository: MeetingEventRepository,
        ledger: Ledger,
        retry_gate: RetryGate,
        gmail: GmailService,
        docs: DocsService,
        tasks: TodoistClient,
        llm: LLMService,
        calendar: GoogleCalendarService,
        aggregator: ContextAggregator,
    ) -> None:
        self._config = config
        self._registry = registry
        self._events = repository
        self._ledger = ledger
        self._retry = retry_gate
        self._gmail = gmail
        self._docs = docs
        self._tasks = tasks
        self._llm = llm
        self._calendar = calendar
        self._aggregator = aggregator

    def _matchable(self, addresses: list[str]) -> set[str]:
        return exclude_operator(addresses, self._config.operator_email)

    # ── Webhook Ingestion ────────────────────────────────────────────────

    async def ingest_webhook(self, payload: WebhookPayload) -> MeetingEvent:
        """Create the event for a recorded meeting and draft its follow-up.

        A payload whose external id already exists is a no-op and returns the
        stored event unchanged. Overlapping deliveries of the same payload
        race on the event insert; only the winner drafts.
        """
        event_id = payload.external_id()
        existing = await self._events.get(event_id)
        if existing is not None:
            logger.info("webhook_replay_ignored", event_id=event_id, state=existing.state.value)
            return existing

        matcher = ClientMatcher(await self._registry.list_records())
        client: ClientRecord | None = None
        no_match: MatchFailure | None = None
        try:
            client = matcher.resolve_or_raise(self._matchable(payload.participant_emails()))
        except MatchFailure as exc:
            no_match = exc

        event, created = await self._events.create(
            MeetingEvent.from_payload(
                payload,
                client.client_id if client else None,
                ProcessingState.RECEIVED,
            )
        )
        if not created:
            logger.info("webhook_replay_ignored", event_id=event_id, state=event.state.value)
            return event

        await self._ledger.audit(
            ActionType.WEBHOOK_RECEIVED,
            AuditStatus.INFO,
            f"{event_id}: {payload.title}",
        )

        if no_match is not None:
            return await self._mark_unmatched(event, no_match)
        return await self._draft(event, client)

    async def _mark_unmatched(self, event: MeetingEvent, failure: MatchFailure) -> MeetingEvent:
        await self._ledger.record_unmatched(
            UnmatchedItem(
                item_type=ItemType.MEETING,
                reference=event.event_id,
                details=f"{event.title} ({event.meeting_date})",
                participant_addresses=event.participants,
            )
        )
        await self._ledger.audit(
            ActionType.MATCH_FAILURE,
            AuditStatus.WARNING,
            f"{event.event_id}: {failure}",
        )
        return await self._events.transition(event, ProcessingState.UNMATCHED)

    async def _draft(
        self,
        event: MeetingEvent,
        client: ClientRecord,
        existing_thread_id: str | None = None,
    ) -> MeetingEvent:
        """Create the follow-up draft and move Received -> Drafted.

        A terminal drafting error moves the event to Failed; exhausted
        retries leave it Received for ``retry_pending_drafts``.
        """
        payload = event.payload
        if payload is None:
            await self._ledger.audit(
                ActionType.TRANSITION_ERROR,
                AuditStatus.ERROR,
                f"{event.event_id}: no stored payload to draft from",
                client_id=client.client_id,
            )
            return await self._events.transition(event, ProcessingState.FAILED)

        marker = CorrelationMarker(
            client_id=client.client_id,
            meeting_date=event.meeting_date,
            event_id=event.event_id,
        )
        try:
            subject = render(
                self._config.followup_subject_template,
                {"meeting_title": event.title, "meeting_date": event.meeting_date},
            )
            body = render(
                self._config.followup_body_template,
                {
                    "client_name": client.name,
                    "summary": payload.summary,
                    "action_items": format_action_items(
                        [(a.description, a.assignee, a.due_date) for a in payload.action_items]
                    ),
                    "marker": marker.render(),
                },
            )
        except TemplateError as exc:
            await self._ledger.audit(
                ActionType.DRAFT_CREATED,
                AuditStatus.ERROR,
                f"{event.event_id}: {exc}",
                client_id=client.client_id,
            )
            return await self._events.transition(event, ProcessingState.FAILED)

        recipients = sorted(self._matchable(event.participants))
        try:
            thread_id = existing_thread_id
            if thread_id is None:
                draft = await self._retry.call(
                    "gmail.create_draft",
                    self._gmail.create_draft,
                    EmailMessage(to=recipients, subject=subject, body_text=body),
                )
                thread_id = draft.thread_id
            await self._retry.call(
                "gmail.apply_label",
                self._gmail.apply_label,
                thread_id,
                self._config.followup_label,
            )
        except ExternalServiceFailure as exc:
            await self._ledger.audit(
                ActionType.DRAFT_CREATED,
                AuditStatus.ERROR,
                f"{event.event_id}: {exc}",
                client_id=client.client_id,
            )
            if not exc.retryable:
                return await self._events.transition(event, ProcessingState.FAILED)
            return event

        drafted = await self._events.transition(event, ProcessingState.DRAFTED)
        await self._ledger.audit(
            ActionType.DRAFT_CREATED,
            AuditStatus.SUCCESS,
            f"{event.event_id}: draft in thread {thread_id}",
            client_id=client.client_id,
        )
        return drafted

    async def _existing_draft_thread(self, event: MeetingEvent) -> str | None:
        """Thread of a draft created by an earlier, interrupted attempt."""
        threads = await self._retry.call(
            "gmail.search_threads",
            self._gmail.search_threads,
            f'in:drafts "{event.event_id}"',
            5,
        )
        for thread in threads:
            first = thread.first_message
            if first is None:
                continue
            marker = parse_marker(first.body_text)
            if marker is not None and marker.event_id == event.event_id:
                return thread.thread_id
        return None

    async def retry_pending_drafts(self) -> SweepReport:
        """Re-attempt drafting for events left in Received."""
        report = SweepReport(sweep="drafts")
        for event in await self._events.list_by_state(ProcessingState.RECEIVED):
            report.scanned += 1
            try:
                if event.client_id is None:
                    await self._mark_unmatched(event, MatchFailure(event.participants))
                    report.advanced += 1
                    continue
                client = await self._registry.get(event.client_id)
                if client is None or not client.active:
                    await self._ledger.audit(
                        ActionType.TRANSITION_ERROR,
                        AuditStatus.ERROR,
                        f"{event.event_id}: client {event.client_id} missing or inactive",
                        client_id=event.client_id,
                    )
                    await self._events.transition(event, ProcessingState.FAILED)
                    report.advanced += 1
                    continue
                thread_id = await self._existing_draft_thread(event)
                result = await self._draft(event, client, existing_thread_id=thread_id)
                if result.state == ProcessingState.RECEIVED:
                    report.pending += 1
                else:
                    report.advanced += 1
            except Exception as exc:
                report.errors += 1
                await self._item_failed(event.event_id, event.client_id, exc)

        logger.info("draft_retry_sweep_completed", **report.model_dump())
        return report

    # ── Sent Detection & Completion ──────────────────────────────────────

    async def sweep_sent(self, now: datetime) -> SweepReport:
        """Reconcile labelled follow-up threads sent within the trailing window.

        Only each thread's first message is a candidate, and only once it
        carries the SENT label; replies never trigger completion.
        """
        report = SweepReport(sweep="sent")
        since = now - timedelta(hours=self._config.sent_window_hours)
        threads = await self._retry.call(
            "gmail.list_labelled_threads",
            self._gmail.list_labelled_threads,
            self._config.followup_label,
            since,
        )

        for thread in threads:
            report.scanned += 1
            first = thread.first_message
            if first is None or not first.is_sent:
                report.skipped += 1
                continue
            marker = parse_marker(first.body_text)
            if marker is None:
                logger.warning("sent_thread_without_marker", thread_id=thread.thread_id)
                report.skipped += 1
                continue

            try:
                claim = await self._ledger.claim_work(
                    f"complete:{marker.event_id}",
                    timedelta(seconds=self._config.completion_lease_seconds),
                )
                if claim is None:
                    logger.info("completion_claimed_elsewhere", event_id=marker.event_id)
                    report.skipped += 1
                    continue
                try:
                    event = await self._reconcile_sent(marker.event_id, first.body_text, thread.thread_id)
                finally:
                    await self._ledger.release_work(claim)

                if event is None:
                    report.skipped += 1
                elif event.state == ProcessingState.SENT:
                    report.pending += 1
                else:
                    report.advanced += 1
            except Exception as exc:
                report.errors += 1
                await self._item_failed(marker.event_id, marker.client_id, exc)

        logger.info("sent_sweep_completed", **report.model_dump())
        return report

    async def _reconcile_sent(
        self,
        event_id: str,
        sent_body: str,
        thread_id: str,
    ) -> MeetingEvent | None:
        """Advance one sent follow-up; the caller holds the completion claim."""
        event = await self._events.get(event_id)
        if event is None or event.state not in (
            ProcessingState.DRAFTED,
            ProcessingState.SENT,
        ):
            return None
        if event.state == ProcessingState.DRAFTED:
            event = await self._events.transition(event, ProcessingState.SENT)
            await self._ledger.audit(
                ActionType.SENT_DETECTED,
                AuditStatus.INFO,
                f"{event.event_id}: follow-up sent in thread {thread_id}",
                client_id=event.client_id,
            )
        return await self.complete(event, sent_body, thread_id)

    async def complete(
        self,
        event: MeetingEvent,
        sent_body: str,
        thread_id: str | None = None,
    ) -> MeetingEvent:
        """Run both completion side effects and move Sent -> Completed.

        Tasks come from the body as sent, which may differ from the draft.
        If either side effect fails the event stays Sent and the next sweep
        retries it; both side effects skip work already done.
        """
        client = await self._registry.get(event.client_id) if event.client_id else None
        if client is None or not client.active:
            await self._ledger.audit(
                ActionType.TRANSITION_ERROR,
                AuditStatus.ERROR,
                f"{event.event_id}: client {event.client_id} missing or inactive",
                client_id=event.client_id,
            )
            return await self._events.transition(event, ProcessingState.FAILED)

        body = strip_marker(sent_body)
        tasks_ok = await self._create_tasks(event, client, body)
        notes_ok = await self._file_notes(event, client, body)
        if not (tasks_ok and notes_ok):
            logger.info(
                "completion_pending",
                event_id=event.event_id,
                tasks_ok=tasks_ok,
                notes_ok=notes_ok,
            )
            return event

        completed = await self._events.transition(event, ProcessingState.COMPLETED)
        await self._ledger.audit(
            ActionType.MEETING_COMPLETED,
            AuditStatus.SUCCESS,
            f"{event.event_id}: tasks created and notes filed",
            client_id=client.client_id,
        )

        if thread_id:
            try:
                await self._retry.call(
                    "gmail.apply_label",
                    self._gmail.apply_label,
                    thread_id,
                    self._config.processed_label,
                )
            except ExternalServiceFailure as exc:
                await self._ledger.audit(
                    ActionType.MEETING_COMPLETED,
                    AuditStatus.WARNING,
                    f"{event.event_id}: processed label not applied: {exc}",
                    client_id=client.client_id,
                )
        return completed

    async def _create_tasks(self, event: MeetingEvent, client: ClientRecord, body: str) -> bool:
        items = parse_action_items(body)
        if not items:
            return True
        if not client.task_project_id:
            await self._ledger.audit(
                ActionType.TASKS_CREATED,
                AuditStatus.ERROR,
                f"{event.event_id}: client has no task project",
                client_id=client.client_id,
            )
            return False

        created = 0
        try:
            existing = await self._retry.call(
                "tasks.list_tasks",
                self._tasks.list_tasks,
                client.task_project_id,
            )
            descriptions = [t.description for t in existing]

            for index, item in enumerate(items, start=1):
                marker = task_marker(event.event_id, index)
                if any(marker in d.split() for d in descriptions):
                    continue
                assignee = None
                if item.assignee:
                    assignee = self._config.assignee_map.get(item.assignee.strip().lower())
                await self._retry.call(
                    "tasks.create_task",
                    self._tasks.create_task,
                    client.task_project_id,
                    item.description,
                    due=item.due,
                    assignee=assignee,
                    description=marker,
                )
                created += 1
        except ExternalServiceFailure as exc:
            await self._ledger.audit(
                ActionType.TASKS_CREATED,
                AuditStatus.ERROR,
                f"{event.event_id}: {exc} ({created} created before failure)",
                client_id=client.client_id,
            )
            return False

        if created:
            await self._ledger.audit(
                ActionType.TASKS_CREATED,
                AuditStatus.SUCCESS,
                f"{event.event_id}: {created} task(s) created",
                client_id=client.client_id,
            )
        return True

    async def _file_notes(self, event: MeetingEvent, client: ClientRecord, body: str) -> bool:
        if not client.document_id:
            await self._ledger.audit(
                ActionType.NOTES_APPENDED,
                AuditStatus.ERROR,
                f"{event.event_id}: client has no notes document",
                client_id=client.client_id,
            )
            return False

        try:
            text = await self._retry.call(
                "docs.read_all_text",
                self._docs.read_all_text,
                client.document_id,
            )
            if notes_already_filed(text, event.event_id, event.meeting_date):
                logger.info("notes_already_filed", event_id=event.event_id)
                return True
            await self._retry.call(
                "docs.append_paragraph",
                self._docs.append_paragraph,
                client.document_id,
                format_notes_block(event.meeting_date, event.title, event.event_id, body),
            )
        except ExternalServiceFailure as exc:
            await self._ledger.audit(
                ActionType.NOTES_APPENDED,
                AuditStatus.ERROR,
                f"{event.event_id}: {exc}",
                client_id=client.client_id,
            )
            return False

        await self._ledger.audit(
            ActionType.NOTES_APPENDED,
            AuditStatus.SUCCESS,
            f"{event.event_id}: notes filed",
            client_id=client.client_id,
        )
        return True

    # ── Agenda Sub-flow ──────────────────────────────────────────────────

    async def run_agenda_sweep(self, now: datetime) -> SweepReport:
        """Generate one agenda per upcoming meeting in the lookahead window.

        Business-hours gating happens at the trigger; this method always runs
        when called.
        """
        report = SweepReport(sweep="agenda")
        window_end = now + timedelta(hours=self._config.agenda_lookahead_hours)
        upcoming = await self._retry.call(
            "calendar.list_events",
            self._calendar.list_events,
            now,
            window_end,
        )
        matcher = ClientMatcher(await self._registry.list_records())

        for meeting in upcoming:
            report.scanned += 1
            try:
                outcome = await self._agenda_for(meeting, matcher, now)
            except Exception as exc:
                report.errors += 1
                agenda_generated_total.labels(outcome="error").inc()
                await self._item_failed(meeting.event_id, None, exc)
                continue

            agenda_generated_total.labels(outcome=outcome).inc()
            if outcome == "generated":
                report.advanced += 1
            else:
                report.skipped += 1

        logger.info("agenda_sweep_completed", **report.model_dump())
        return report

    async def _agenda_for(
        self,
        meeting: CalendarEvent,
        matcher: ClientMatcher,
        now: datetime,
    ) -> str:
        if await self._ledger.has_agenda(meeting.event_id):
            return "already_generated"
        if not meeting.attendees:
            return "no_attendees"

        try:
            client = matcher.resolve_or_raise(self._matchable(meeting.attendees))
        except MatchFailure as exc:
            if not await self._ledger.has_open_unmatched(meeting.event_id):
                await self._ledger.record_unmatched(
                    UnmatchedItem(
                        item_type=ItemType.MEETING,
                        reference=meeting.event_id,
                        details=f"{meeting.title} ({meeting.start.date().isoformat()})",
                        participant_addresses=meeting.attendees,
                    )
                )
                await self._ledger.audit(
                    ActionType.MATCH_FAILURE,
                    AuditStatus.WARNING,
                    f"upcoming {meeting.event_id} ({meeting.title}): {exc}",
                )
            return "unmatched"

        context = await self._aggregator.gather(client, meeting.start.date(), now=now)
        prompt = render(
            self._config.agenda_prompt_template,
            agenda_prompt_variables(context, meeting.title),
        )
        agenda = await self._retry.call(
            "llm.complete",
            self._llm.complete,
            prompt,
            system=AGENDA_SYSTEM_PROMPT,
            tier=self._config.agenda_model_tier,
            max_tokens=self._config.agenda_max_tokens,
        )

        claimed = await self._ledger.claim_agenda(
            DedupEntry(event_id=meeting.event_id, client_id=client.client_id)
        )
        if not claimed:
            return "duplicate"

        await self._notify_agenda(meeting, client, agenda)
        await self._ledger.audit(
            ActionType.AGENDA_GENERATED,
            AuditStatus.SUCCESS,
            f"{meeting.event_id}: agenda for {meeting.title}",
            client_id=client.client_id,
        )
        return "generated"

    async def _notify_agenda(self, meeting: CalendarEvent, client: ClientRecord, agenda: str) -> None:
        """Email the agenda to the operator, then file it in the document.

        Runs only after the dedup claim, so neither step is retried by a
        later sweep; failures are audited.
        """
        variables = {
            "client_name": client.name,
            "meeting_title": meeting.title,
            "meeting_date": meeting.start.date().isoformat(),
            "meeting_start": meeting.start.isoformat(),
            "agenda": agenda.strip(),
        }
        subject = render(self._config.agenda_subject_template, variables)
        body = render(self._config.agenda_body_template, variables)

        if self._config.operator_email:
            try:
                await self._retry.call(
                    "gmail.send_email",
                    self._gmail.send_email,
                    EmailMessage(
                        to=[self._config.operator_email],
                        subject=subject,
                        body_text=body,
                    ),
                )
            except ExternalServiceFailure as exc:
                await self._ledger.audit(
                    ActionType.AGENDA_GENERATED,
                    AuditStatus.ERROR,
                    f"{meeting.event_id}: notification failed: {exc}",
                    client_id=client.client_id,
                )

        if client.document_id:
            try:
                await self._retry.call(
                    "docs.append_paragraph",
                    self._docs.append_paragraph,
                    client.document_id,
                    f"=== Agenda | {variables['meeting_date']} | {meeting.title} ===\n"
                    f"{agenda.strip()}\n",
                )
            except ExternalServiceFailure as exc:
                await self._ledger.audit(
                    ActionType.AGENDA_GENERATED,
                    AuditStatus.ERROR,
                    f"{meeting.event_id}: document append failed: {exc}",
                    client_id=client.client_id,
                )

    # ── Helpers ──────────────────────────────────────────────────────────

    async def _item_failed(self, reference: str, client_id: str | None, exc: Exception) -> None:
        logger.error(
            "workflow_item_failed",
            reference=reference,
            client_id=client_id,
            error=str(exc),
            exc_info=True,
        )
        await self._ledger.audit(
            ActionType.TRANSITION_ERROR,
            AuditStatus.ERROR,
            f"{reference}: {type(exc).__name__}: {exc}",
            client_id=client_id,
        )

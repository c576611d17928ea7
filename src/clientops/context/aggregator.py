"""ContextAggregator -- assembles bounded pre-meeting context for one client.

Four sources are gathered independently:

1. Outstanding tasks in the client's task project, due today or earlier.
2. Recent correspondence with the client's addresses and domains, capped
   in count and with each body truncated.
3. The single most recent notes block from the client's running document.
4. Action items from that block with no similar outstanding task.

A failing source yields an empty result plus a warning audit record; it
never aborts the gather. The aggregator does no formatting beyond
truncation. Turning the bundle into prompt text is the caller's job.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import structlog

from src.clientops.config import WorkflowConfig
from src.clientops.context.schemas import AgendaContext, CorrespondenceItem, TaskSummary
from src.clientops.context.similarity import matches_any
from src.clientops.core.retry import RetryGate
from src.clientops.ledger import ActionType, AuditStatus, Ledger
from src.clientops.meetings.notes import latest_notes_block, parse_action_items
from src.clientops.registry.schemas import ClientRecord
from src.clientops.services.gsuite.docs import DocsService
from src.clientops.services.gsuite.gmail import GmailService
from src.clientops.services.tasks import DUE_TODAY_OR_OVERDUE, TodoistClient

logger = structlog.get_logger(__name__)


def correspondence_query(client: ClientRecord, since: datetime) -> str | None:
    """Gmail search for mail from or to any of the client's addresses."""
    targets = list(client.contact_emails) + list(client.domains)
    if not targets:
        return None
    clauses = " OR ".join(f"from:{t} OR to:{t}" for t in targets)
    return f"({clauses}) after:{int(since.timestamp())}"


class ContextAggregator:
    """Gathers the four agenda context sources for a client.

    Args:
        config: Workflow configuration (correspondence window and caps).
        gmail: GmailService for correspondence search.
        docs: DocsService for the running notes document.
        tasks: TodoistClient for outstanding tasks.
        retry_gate: RetryGate wrapping each external call.
        ledger: Ledger receiving warning records for failed sources.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        gmail: GmailService,
        docs: DocsService,
        tasks: TodoistClient,
        retry_gate: RetryGate,
        ledger: Ledger,
    ) -> None:
        self._config = config
        self._gmail = gmail
        self._docs = docs
        self._tasks = tasks
        self._retry = retry_gate
        self._ledger = ledger

    async def gather(
        self,
        client: ClientRecord,
        meeting_date: date,
        now: datetime | None = None,
    ) -> AgendaContext:
        """Assemble the agenda context for one upcoming meeting.

        Args:
            client: The resolved client.
            meeting_date: Date of the upcoming meeting.
            now: Reference time for "due today" and the correspondence
                window. Defaults to the current UTC time.

        Returns:
            AgendaContext with every source populated or empty.
        """
        now = now or datetime.now(timezone.utc)
        failed: list[str] = []

        try:
            tasks = await self._outstanding_tasks(client, now.date())
        except Exception as exc:
            tasks = []
            failed.append("tasks")
            await self._source_failed("tasks", client, exc)

        try:
            correspondence = await self._recent_correspondence(client, now)
        except Exception as exc:
            correspondence = []
            failed.append("correspondence")
            await self._source_failed("correspondence", client, exc)

        try:
            prior_notes = await self._prior_notes(client)
        except Exception as exc:
            prior_notes = ""
            failed.append("prior_notes")
            await self._source_failed("prior_notes", client, exc)

        carried_over = self._carried_over(prior_notes, tasks)

        logger.info(
            "agenda_context_gathered",
            client_id=client.client_id,
            meeting_date=meeting_date.isoformat(),
            tasks=len(tasks),
            threads=len(correspondence),
            has_prior_notes=bool(prior_notes),
            carried_over=len(carried_over),
            failed_sources=failed,
        )

        return AgendaContext(
            client_id=client.client_id,
            client_name=client.name,
            meeting_date=meeting_date,
            outstanding_tasks=tasks,
            correspondence=correspondence,
            prior_notes=prior_notes,
            carried_over=carried_over,
            failed_sources=failed,
        )

    # ── Sources ──────────────────────────────────────────────────────────

    async def _outstanding_tasks(self, client: ClientRecord, today: date) -> list[TaskSummary]:
        if not client.task_project_id:
            return []
        tasks = await self._retry.call(
            "tasks.list_tasks",
            self._tasks.list_tasks,
            client.task_project_id,
            DUE_TODAY_OR_OVERDUE,
        )
        # Undated tasks pass: the service's overdue filter already admitted them.
        return [
            TaskSummary(task_id=t.task_id, content=t.content, due_date=t.due_date)
            for t in tasks
            if t.due_date is None or t.due_date <= today
        ]

    async def _recent_correspondence(
        self,
        client: ClientRecord,
        now: datetime,
    ) -> list[CorrespondenceItem]:
        since = now - timedelta(days=self._config.correspondence_window_days)
        query = correspondence_query(client, since)
        if query is None:
            return []

        cap = self._config.correspondence_max_threads
        threads = await self._retry.call(
            "gmail.search_threads",
            self._gmail.search_threads,
            query,
            cap,
        )

        dated = [t for t in threads if t.last_activity is not None]
        dated.sort(key=lambda t: t.last_activity, reverse=True)

        items: list[CorrespondenceItem] = []
        limit = self._config.body_excerpt_chars
        for thread in dated[:cap]:
            latest = thread.messages[-1]
            items.append(
                CorrespondenceItem(
                    thread_id=thread.thread_id,
                    subject=thread.subject or latest.subject,
                    sender=latest.sender,
                    date=latest.date,
                    excerpt=latest.body_text[:limit],
                )
            )
        return items

    async def _prior_notes(self, client: ClientRecord) -> str:
        if not client.document_id:
            return ""
        text = await self._retry.call(
            "docs.read_all_text",
            self._docs.read_all_text,
            client.document_id,
        )
        block = latest_notes_block(text)
        return block.body if block else ""

    @staticmethod
    def _carried_over(prior_notes: str, tasks: list[TaskSummary]) -> list[str]:
        task_texts = [t.content for t in tasks]
        return [
            item.description
            for item in parse_action_items(prior_notes)
            if not matches_any(item.description, task_texts)
        ]

    async def _source_failed(self, source: str, client: ClientRecord, exc: Exception) -> None:
        logger.warning(
            "agenda_context_source_failed",
            source=source,
            client_id=client.client_id,
            error=str(exc),
        )
        await self._ledger.audit(
            ActionType.CONTEXT_SOURCE_FAILED,
            AuditStatus.WARNING,
            f"{source}: {exc}",
            client_id=client.client_id,
        )

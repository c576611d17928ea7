"""OutlookComposer -- weekly per-client meeting outlook for the operator.

Groups upcoming calendar events by matched client, flags overlapping
meetings, attaches aggregated context, and emails one plain-text report.
Unmatched meetings are counted but not reported per client.
"""

from __future__ import annotations

from datetime import datetime

import structlog
from pydantic import BaseModel, Field

from src.clientops.config import WorkflowConfig
from src.clientops.context.aggregator import ContextAggregator
from src.clientops.context.schemas import AgendaContext
from src.clientops.core.errors import MatchFailure
from src.clientops.core.retry import RetryGate
from src.clientops.core.templating import render
from src.clientops.ledger import ActionType, AuditStatus, Ledger
from src.clientops.matching.matcher import ClientMatcher, exclude_operator
from src.clientops.meetings.schemas import SweepReport
from src.clientops.outlook.conflicts import Interval, detect_conflicts
from src.clientops.registry.repository import ClientRegistry
from src.clientops.services.gsuite.calendar import GoogleCalendarService
from src.clientops.services.gsuite.gmail import GmailService
from src.clientops.services.gsuite.models import CalendarEvent, EmailMessage

logger = structlog.get_logger(__name__)


class ClientOutlook(BaseModel):
    client_id: str
    client_name: str
    meetings: list[CalendarEvent] = Field(default_factory=list)
    conflicts: list[tuple[str, str]] = Field(default_factory=list)
    context: AgendaContext | None = None


def render_section(outlook: ClientOutlook) -> str:
    titles = {m.event_id: m.title for m in outlook.meetings}
    lines = [f"## {outlook.client_name}"]
    for meeting in outlook.meetings:
        lines.append(f"- {meeting.start.isoformat()} to {meeting.end.isoformat()}: {meeting.title}")
    for a, b in outlook.conflicts:
        lines.append(f"! Conflict: {titles.get(a, a)} overlaps {titles.get(b, b)}")
    if outlook.context is not None:
        lines.append(f"Outstanding tasks: {len(outlook.context.outstanding_tasks)}")
        lines.append(f"Recent threads: {len(outlook.context.correspondence)}")
        for item in outlook.context.carried_over:
            lines.append(f"  * carried over: {item}")
    return "\n".join(lines)


class OutlookComposer:
    """Builds and sends the operator's client outlook.

    Args:
        config: Workflow configuration (operator address, templates).
        registry: ClientRegistry for matching.
        calendar: GoogleCalendarService for upcoming meetings.
        aggregator: ContextAggregator for per-client context.
        gmail: GmailService for sending the report.
        retry_gate: RetryGate wrapping each external call.
        ledger: Ledger for the outlook audit record.
    """

    def __init__(
        self,
        config: WorkflowConfig,
        registry: ClientRegistry,
        calendar: GoogleCalendarService,
        aggregator: ContextAggregator,
        gmail: GmailService,
        retry_gate: RetryGate,
        ledger: Ledger,
    ) -> None:
        self._config = config
        self._registry = registry
        self._calendar = calendar
        self._aggregator = aggregator
        self._gmail = gmail
        self._retry = retry_gate
        self._ledger = ledger

    async def compose(self, window_start: datetime, window_end: datetime) -> list[ClientOutlook]:
        """Group meetings in the window by client, in registry order."""
        events = await self._retry.call(
            "calendar.list_events",
            self._calendar.list_events,
            window_start,
            window_end,
        )
        records = await self._registry.list_records()
        matcher = ClientMatcher(records)

        grouped: dict[str, list[CalendarEvent]] = {}
        unmatched = 0
        for event in events:
            if not event.attendees:
                unmatched += 1
                continue
            try:
                client = matcher.resolve_or_raise(
                    exclude_operator(event.attendees, self._config.operator_email)
                )
            except MatchFailure:
                unmatched += 1
                continue
            grouped.setdefault(client.client_id, []).append(event)

        outlooks: list[ClientOutlook] = []
        for record in records:
            meetings = grouped.get(record.client_id)
            if not meetings:
                continue
            meetings.sort(key=lambda m: m.start)
            conflicts = detect_conflicts(
                Interval(m.event_id, m.start, m.end) for m in meetings
            )
            context = await self._aggregator.gather(
                record, meetings[0].start.date(), now=window_start
            )
            outlooks.append(
                ClientOutlook(
                    client_id=record.client_id,
                    client_name=record.name,
                    meetings=meetings,
                    conflicts=sorted(conflicts),
                    context=context,
                )
            )

        logger.info(
            "outlook_composed",
            clients=len(outlooks),
            meetings=len(events),
            unmatched=unmatched,
        )
        return outlooks

    async def send_outlook(self, window_start: datetime, window_end: datetime) -> SweepReport:
        """Compose the outlook and email it to the operator."""
        outlooks = await self.compose(window_start, window_end)
        report = SweepReport(
            sweep="outlook",
            scanned=sum(len(o.meetings) for o in outlooks),
        )

        variables = {
            "window_start": window_start.date().isoformat(),
            "window_end": window_end.date().isoformat(),
            "sections": "\n\n".join(render_section(o) for o in outlooks)
            or "No client meetings scheduled.",
        }
        subject = render(self._config.outlook_subject_template, variables)
        body = render(self._config.outlook_body_template, variables)

        if not self._config.operator_email:
            logger.warning("outlook_no_operator_email")
            report.skipped = len(outlooks)
            return report

        await self._retry.call(
            "gmail.send_email",
            self._gmail.send_email,
            EmailMessage(to=[self._config.operator_email], subject=subject, body_text=body),
        )
        await self._ledger.audit(
            ActionType.OUTLOOK_SENT,
            AuditStatus.SUCCESS,
            f"outlook for {variables['window_start']}..{variables['window_end']}: "
            f"{len(outlooks)} client(s)",
        )
        report.advanced = len(outlooks)
        return report

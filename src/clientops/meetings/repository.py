"""MeetingEventRepository -- meeting events over the row store.

Events are addressed by their external id. ``create`` is a compare-and-insert,
so overlapping deliveries of one webhook store a single event.
``transition`` is the only write after creation: a single-row update of the
state column, checked against the lifecycle before it is persisted.
"""

from __future__ import annotations

import uuid

import structlog

from src.clientops.core.errors import InvalidTransition, PersistenceFailure
from src.clientops.core.monitoring import meeting_transitions_total
from src.clientops.meetings.schemas import MeetingEvent, ProcessingState, can_transition
from src.clientops.storage.rowstore import MEETINGS_TABLE, RowStore

logger = structlog.get_logger(__name__)


class MeetingEventRepository:
    """Create, read, and transition meeting events.

    Args:
        store: RowStore holding the ``Meetings`` table.
    """

    def __init__(self, store: RowStore) -> None:
        self._store = store

    async def list_all(self) -> list[MeetingEvent]:
        """Every event, one per id; a racing duplicate row never shadows the first."""
        events: list[MeetingEvent] = []
        seen: set[str] = set()
        for row in await self._store.read_all(MEETINGS_TABLE):
            event_id = row.get("event_id")
            if not event_id or event_id in seen:
                continue
            seen.add(event_id)
            events.append(MeetingEvent.from_row(row))
        return events

    async def get(self, event_id: str) -> MeetingEvent | None:
        for event in await self.list_all():
            if event.event_id == event_id:
                return event
        return None

    async def list_by_state(self, state: ProcessingState) -> list[MeetingEvent]:
        return [e for e in await self.list_all() if e.state == state]

    async def create(self, event: MeetingEvent) -> tuple[MeetingEvent, bool]:
        """Insert ``event`` unless its id is already stored.

        Compare-and-insert: the row is appended with a claim token, then the
        table is re-read and the earliest row for the id wins.

        Returns:
            ``(event, True)`` if this call's row won, otherwise the stored
            event and False.

        Raises:
            PersistenceFailure: If the appended row cannot be read back.
        """
        existing = await self.get(event.event_id)
        if existing is not None:
            return existing, False

        claim_token = uuid.uuid4().hex
        row = event.to_row()
        row["claim_token"] = claim_token
        await self._store.append(MEETINGS_TABLE, row)

        rows = [
            r for r in await self._store.read_all(MEETINGS_TABLE)
            if r.get("event_id") == event.event_id
        ]
        if not rows:
            raise PersistenceFailure(MEETINGS_TABLE, f"create {event.event_id} (row not found)")
        if rows[0].get("claim_token") != claim_token:
            logger.warning(
                "meeting_event_claim_lost",
                event_id=event.event_id,
                claim_token=claim_token,
            )
            return MeetingEvent.from_row(rows[0]), False

        logger.info(
            "meeting_event_created",
            event_id=event.event_id,
            state=event.state.value,
            client_id=event.client_id,
        )
        return event, True

    async def transition(
        self,
        event: MeetingEvent,
        to_state: ProcessingState,
    ) -> MeetingEvent:
        """Persist ``event.state -> to_state``.

        The stored row is re-read first so a stale in-memory copy cannot
        move an event another invocation already advanced.

        Raises:
            InvalidTransition: If the stored state does not allow the move.
        """
        current = await self.get(event.event_id)
        from_state = current.state if current else event.state
        if current is None or not can_transition(from_state, to_state):
            raise InvalidTransition(event.event_id, from_state.value, to_state.value)

        await self._store.update(
            MEETINGS_TABLE,
            "event_id",
            event.event_id,
            {"state": to_state.value},
        )
        meeting_transitions_total.labels(
            from_state=from_state.value,
            to_state=to_state.value,
        ).inc()
        logger.info(
            "meeting_event_transitioned",
            event_id=event.event_id,
            from_state=from_state.value,
            to_state=to_state.value,
        )
        return current.model_copy(update={"state": to_state})

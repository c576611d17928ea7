"""Pydantic schemas for meeting events and the recording webhook.

Defines the processing-state machine, the MeetingEvent record with its row
serialization, and the inbound webhook contract.
"""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from src.clientops.storage.rowstore import Row, join_list, split_list


# ── State Machine ────────────────────────────────────────────────────────────


class ProcessingState(str, Enum):
    """Lifecycle of a recorded meeting from ingestion to filed notes."""

    RECEIVED = "received"
    DRAFTED = "drafted"
    SENT = "sent"
    COMPLETED = "completed"
    UNMATCHED = "unmatched"
    FAILED = "failed"


TERMINAL_STATES: frozenset[ProcessingState] = frozenset({
    ProcessingState.COMPLETED,
    ProcessingState.UNMATCHED,
    ProcessingState.FAILED,
})

ALLOWED_TRANSITIONS: dict[ProcessingState, frozenset[ProcessingState]] = {
    ProcessingState.RECEIVED: frozenset({
        ProcessingState.DRAFTED,
        ProcessingState.UNMATCHED,
        ProcessingState.FAILED,
    }),
    ProcessingState.DRAFTED: frozenset({ProcessingState.SENT}),
    ProcessingState.SENT: frozenset({ProcessingState.COMPLETED, ProcessingState.FAILED}),
    ProcessingState.COMPLETED: frozenset(),
    ProcessingState.UNMATCHED: frozenset(),
    ProcessingState.FAILED: frozenset(),
}


def can_transition(from_state: ProcessingState, to_state: ProcessingState) -> bool:
    return to_state in ALLOWED_TRANSITIONS[from_state]


# ── Webhook Contract ─────────────────────────────────────────────────────────


class WebhookParticipant(BaseModel):
    name: str = ""
    email: str

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        value = value.strip().lower()
        if "@" not in value:
            raise ValueError(f"not an email address: {value!r}")
        return value


class WebhookActionItem(BaseModel):
    description: str
    assignee: str | None = None
    due_date: str | None = None


class WebhookPayload(BaseModel):
    """Body posted by the meeting-recording provider."""

    meeting_id: str | None = None
    title: str = Field(min_length=1)
    timestamp: datetime
    end_timestamp: datetime | None = None
    participants: list[WebhookParticipant] = Field(min_length=1)
    summary: str = ""
    action_items: list[WebhookActionItem] = Field(default_factory=list)

    @field_validator("timestamp", "end_timestamp")
    @classmethod
    def _aware(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def external_id(self) -> str:
        """Stable event identifier: provider id, else hash of title + start."""
        if self.meeting_id:
            return self.meeting_id
        digest = hashlib.sha256(
            f"{self.title.strip()}|{self.timestamp.isoformat()}".encode()
        ).hexdigest()
        return f"rec_{digest[:16]}"

    def participant_emails(self) -> list[str]:
        return [p.email for p in self.participants]


# ── Meeting Event ────────────────────────────────────────────────────────────


class MeetingEvent(BaseModel):
    """A recorded meeting moving through the lifecycle.

    Only ``state`` changes after creation. The original webhook payload is
    kept so a failed draft can be retried by a later sweep.
    """

    event_id: str
    title: str
    start: datetime
    end: datetime
    client_id: str | None = None
    state: ProcessingState = ProcessingState.RECEIVED
    participants: list[str] = Field(default_factory=list)
    payload: WebhookPayload | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def meeting_date(self) -> str:
        return self.start.date().isoformat()

    def to_row(self) -> Row:
        return {
            "event_id": self.event_id,
            "title": self.title,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "client_id": self.client_id or "",
            "state": self.state.value,
            "participants": join_list(self.participants),
            "payload": self.payload.model_dump_json() if self.payload else "",
        }

    @classmethod
    def from_row(cls, row: Row) -> MeetingEvent:
        payload_raw = row.get("payload", "")
        return cls(
            event_id=row["event_id"],
            title=row.get("title", ""),
            start=datetime.fromisoformat(row["start"]),
            end=datetime.fromisoformat(row.get("end") or row["start"]),
            client_id=row.get("client_id") or None,
            state=ProcessingState(row.get("state", "received")),
            participants=split_list(row.get("participants")),
            payload=WebhookPayload.model_validate(json.loads(payload_raw)) if payload_raw else None,
        )

    @classmethod
    def from_payload(
        cls,
        payload: WebhookPayload,
        client_id: str | None,
        state: ProcessingState,
    ) -> MeetingEvent:
        return cls(
            event_id=payload.external_id(),
            title=payload.title,
            start=payload.timestamp,
            end=payload.end_timestamp or payload.timestamp,
            client_id=client_id,
            state=state,
            participants=payload.participant_emails(),
            payload=payload,
        )


# ── Sweep Report ─────────────────────────────────────────────────────────────


class SweepReport(BaseModel):
    """Per-invocation counts returned by every sweep."""

    sweep: str
    scanned: int = 0
    advanced: int = 0
    skipped: int = 0
    pending: int = 0
    errors: int = 0

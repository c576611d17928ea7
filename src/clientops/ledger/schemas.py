"""Ledger schemas -- audit records, agenda dedup entries, work claims, unmatched items."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, Field

from src.clientops.storage.rowstore import Row, from_bool, join_list, split_list, to_bool


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime:
    if not value:
        return datetime.min.replace(tzinfo=timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ── Enums ────────────────────────────────────────────────────────────────────


class ActionType(str, Enum):
    """Kinds of action recorded in the audit log."""

    WEBHOOK_RECEIVED = "webhook_received"
    VALIDATION_FAILURE = "validation_failure"
    MATCH_FAILURE = "match_failure"
    DRAFT_CREATED = "draft_created"
    SENT_DETECTED = "sent_detected"
    TASKS_CREATED = "tasks_created"
    NOTES_APPENDED = "notes_appended"
    MEETING_COMPLETED = "meeting_completed"
    TRANSITION_ERROR = "transition_error"
    CONTEXT_SOURCE_FAILED = "context_source_failed"
    AGENDA_GENERATED = "agenda_generated"
    AGENDA_DUPLICATE = "agenda_duplicate"
    OUTLOOK_SENT = "outlook_sent"
    ONBOARDING = "onboarding"


class AuditStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class ItemType(str, Enum):
    MEETING = "meeting"
    EMAIL = "email"


# ── Records ──────────────────────────────────────────────────────────────────


class AuditRecord(BaseModel):
    """One append-only audit log row."""

    timestamp: datetime = Field(default_factory=_now)
    action: ActionType
    status: AuditStatus
    client_id: str | None = None
    details: str = ""

    def to_row(self) -> Row:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "client_id": self.client_id or "",
            "details": self.details,
            "status": self.status.value,
        }

    @classmethod
    def from_row(cls, row: Row) -> AuditRecord:
        return cls(
            timestamp=_parse_ts(row.get("timestamp")),
            action=ActionType(row["action"]),
            status=AuditStatus(row["status"]),
            client_id=row.get("client_id") or None,
            details=row.get("details", ""),
        )


class DedupEntry(BaseModel):
    """Proof that an agenda was generated for one calendar event.

    ``claim_token`` identifies the writer so that racing inserts for the same
    event can be told apart after the fact.
    """

    event_id: str
    generated_at: datetime = Field(default_factory=_now)
    client_id: str
    claim_token: str = Field(default_factory=lambda: uuid.uuid4().hex)

    def to_row(self) -> Row:
        return {
            "event_id": self.event_id,
            "generated_at": self.generated_at.isoformat(),
            "client_id": self.client_id,
            "claim_token": self.claim_token,
        }

    @classmethod
    def from_row(cls, row: Row) -> DedupEntry:
        return cls(
            event_id=row.get("event_id", ""),
            generated_at=_parse_ts(row.get("generated_at")),
            client_id=row.get("client_id", ""),
            claim_token=row.get("claim_token", ""),
        )


class WorkClaim(BaseModel):
    """A short lease on one unit of work, such as completing a meeting.

    A claim is live until it is released or its lease runs out, so a crashed
    holder only blocks the work for one lease.
    """

    key: str
    claim_token: str = Field(default_factory=lambda: uuid.uuid4().hex)
    claimed_at: datetime = Field(default_factory=_now)
    released: bool = False

    def is_live(self, now: datetime, lease: timedelta) -> bool:
        return not self.released and self.claimed_at > now - lease

    def to_row(self) -> Row:
        return {
            "key": self.key,
            "claim_token": self.claim_token,
            "claimed_at": self.claimed_at.isoformat(),
            "released": from_bool(self.released),
        }

    @classmethod
    def from_row(cls, row: Row) -> WorkClaim:
        return cls(
            key=row.get("key", ""),
            claim_token=row.get("claim_token", ""),
            claimed_at=_parse_ts(row.get("claimed_at")),
            released=to_bool(row.get("released")),
        )


class UnmatchedItem(BaseModel):
    """A meeting or email whose participants matched no client.

    ``manually_resolved`` is set by the operator only; nothing re-reads it to
    reprocess the item.
    """

    item_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = Field(default_factory=_now)
    item_type: ItemType
    reference: str = ""
    details: str = ""
    participant_addresses: list[str] = Field(default_factory=list)
    manually_resolved: bool = False

    def to_row(self) -> Row:
        return {
            "item_id": self.item_id,
            "timestamp": self.timestamp.isoformat(),
            "item_type": self.item_type.value,
            "reference": self.reference,
            "details": self.details,
            "participant_addresses": join_list(self.participant_addresses),
            "manually_resolved": from_bool(self.manually_resolved),
        }

    @classmethod
    def from_row(cls, row: Row) -> UnmatchedItem:
        return cls(
            item_id=row.get("item_id", ""),
            timestamp=_parse_ts(row.get("timestamp")),
            item_type=ItemType(row.get("item_type", "meeting")),
            reference=row.get("reference", ""),
            details=row.get("details", ""),
            participant_addresses=split_list(row.get("participant_addresses")),
            manually_resolved=to_bool(row.get("manually_resolved")),
        )

"""Ledger -- append-only audit log plus idempotency guards.

The audit path never raises: a failure to log is itself logged through
structlog and swallowed, so it cannot mask the action being recorded.

The agenda guard is a compare-and-insert over the ``Agendas`` table. The
host offers no cross-invocation locks, so a racing duplicate is detected
after the append (the first row for an event id wins) and discarded by the
caller rather than prevented.

Work claims use the same compare-and-insert over the ``Claims`` table, with
a lease: a claim stops counting once it is released or the lease runs out.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import structlog

from src.clientops.ledger.schemas import (
    ActionType,
    AuditRecord,
    AuditStatus,
    DedupEntry,
    UnmatchedItem,
    WorkClaim,
)
from src.clientops.storage.rowstore import (
    AGENDAS_TABLE,
    AUDIT_TABLE,
    CLAIMS_TABLE,
    UNMATCHED_TABLE,
    RowStore,
    from_bool,
)

logger = structlog.get_logger(__name__)


class Ledger:
    """Durable audit and dedup ledger.

    Args:
        store: RowStore holding the audit, agenda, claim, and unmatched tables.
    """

    def __init__(self, store: RowStore) -> None:
        self._store = store

    # ── Audit ────────────────────────────────────────────────────────────

    async def audit(
        self,
        action: ActionType,
        status: AuditStatus,
        details: str = "",
        client_id: str | None = None,
    ) -> None:
        """Append an audit record. Never raises."""
        record = AuditRecord(
            action=action,
            status=status,
            client_id=client_id,
            details=details,
        )
        try:
            await self._store.append(AUDIT_TABLE, record.to_row())
        except Exception:
            logger.error(
                "audit_append_failed",
                action=action.value,
                status=status.value,
                client_id=client_id,
                details=details,
                exc_info=True,
            )

    async def list_audit(self) -> list[AuditRecord]:
        rows = await self._store.read_all(AUDIT_TABLE)
        return [AuditRecord.from_row(r) for r in rows]

    # ── Agenda Dedup ─────────────────────────────────────────────────────

    async def _agenda_entries(self, event_id: str) -> list[DedupEntry]:
        rows = await self._store.read_all(AGENDAS_TABLE)
        return [
            DedupEntry.from_row(r) for r in rows
            if r.get("event_id") == event_id
        ]

    async def has_agenda(self, event_id: str) -> bool:
        """True if an agenda was already generated for ``event_id``."""
        return bool(await self._agenda_entries(event_id))

    async def claim_agenda(self, entry: DedupEntry) -> bool:
        """Insert ``entry`` unless the event already has one.

        Returns:
            True if this caller owns the agenda for the event; False if an
            entry already existed or a concurrent writer got there first.
        """
        if await self._agenda_entries(entry.event_id):
            return False

        await self._store.append(AGENDAS_TABLE, entry.to_row())

        entries = await self._agenda_entries(entry.event_id)
        winner = entries[0] if entries else None
        if winner is None or winner.claim_token != entry.claim_token:
            logger.warning(
                "agenda_claim_lost",
                event_id=entry.event_id,
                claim_token=entry.claim_token,
            )
            await self.audit(
                ActionType.AGENDA_DUPLICATE,
                AuditStatus.WARNING,
                f"duplicate agenda insert discarded for event {entry.event_id}",
                client_id=entry.client_id,
            )
            return False
        return True

    # ── Work Claims ──────────────────────────────────────────────────────

    async def _live_claims(self, key: str, now: datetime, lease: timedelta) -> list[WorkClaim]:
        rows = await self._store.read_all(CLAIMS_TABLE)
        claims = [WorkClaim.from_row(r) for r in rows if r.get("key") == key]
        return [c for c in claims if c.is_live(now, lease)]

    async def claim_work(self, key: str, lease: timedelta) -> str | None:
        """Take the lease on ``key`` unless another invocation holds it.

        Returns:
            The claim token to pass to ``release_work``, or None if a live
            claim already existed or a concurrent writer got there first.
        """
        now = datetime.now(timezone.utc)
        if await self._live_claims(key, now, lease):
            return None

        claim = WorkClaim(key=key, claimed_at=now)
        await self._store.append(CLAIMS_TABLE, claim.to_row())

        live = await self._live_claims(key, now, lease)
        if not live or live[0].claim_token != claim.claim_token:
            logger.warning("work_claim_lost", key=key, claim_token=claim.claim_token)
            await self.release_work(claim.claim_token)
            return None
        return claim.claim_token

    async def release_work(self, claim_token: str) -> None:
        """Release a claim. Never raises; an unreleased claim expires."""
        try:
            await self._store.update(
                CLAIMS_TABLE,
                "claim_token",
                claim_token,
                {"released": from_bool(True)},
            )
        except Exception:
            logger.error("work_claim_release_failed", claim_token=claim_token, exc_info=True)

    # ── Unmatched Items ──────────────────────────────────────────────────

    async def record_unmatched(self, item: UnmatchedItem) -> None:
        await self._store.append(UNMATCHED_TABLE, item.to_row())
        logger.info(
            "unmatched_item_recorded",
            item_type=item.item_type.value,
            reference=item.reference,
            participants=item.participant_addresses,
        )

    async def list_unmatched(self, include_resolved: bool = False) -> list[UnmatchedItem]:
        rows = await self._store.read_all(UNMATCHED_TABLE)
        items = [UnmatchedItem.from_row(r) for r in rows]
        if include_resolved:
            return items
        return [i for i in items if not i.manually_resolved]

    async def has_open_unmatched(self, reference: str) -> bool:
        """True if an unresolved item with this reference is already queued."""
        return any(
            item.reference == reference
            for item in await self.list_unmatched()
        )

    async def mark_unmatched_resolved(self, item_id: str) -> None:
        """Operator action; the workflow never reacts to this flag."""
        await self._store.update(
            UNMATCHED_TABLE,
            "item_id",
            item_id,
            {"manually_resolved": from_bool(True)},
        )

"""Audit log and idempotency ledger shared by every workflow step."""

from src.clientops.ledger.ledger import Ledger
from src.clientops.ledger.schemas import (
    ActionType,
    AuditRecord,
    AuditStatus,
    DedupEntry,
    ItemType,
    UnmatchedItem,
    WorkClaim,
)

__all__ = [
    "ActionType",
    "AuditRecord",
    "AuditStatus",
    "DedupEntry",
    "ItemType",
    "Ledger",
    "UnmatchedItem",
    "WorkClaim",
]

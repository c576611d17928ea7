"""RowStore interface and table names.

Rows are flat string dictionaries. Callers address rows by a key column,
never by position; there are no multi-row transactions, so every write is
either a single append or a single-row update.
"""

from __future__ import annotations

from typing import Protocol

Row = dict[str, str]

CLIENTS_TABLE = "Clients"
MEETINGS_TABLE = "Meetings"
AGENDAS_TABLE = "Agendas"
AUDIT_TABLE = "AuditLog"
UNMATCHED_TABLE = "Unmatched"
CLAIMS_TABLE = "Claims"


class RowStore(Protocol):
    """Spreadsheet-like persistence with read-all / append / update-by-key."""

    async def read_all(self, table: str) -> list[Row]:
        """Return every row of ``table`` in insertion order."""
        ...

    async def append(self, table: str, row: Row) -> None:
        """Append one row to ``table``."""
        ...

    async def update(self, table: str, key_field: str, key: str, changes: Row) -> None:
        """Update the first row whose ``key_field`` equals ``key``.

        Raises:
            PersistenceFailure: If no such row exists or the write fails.
        """
        ...


def to_bool(value: str | bool | None) -> bool:
    """Parse a stored boolean cell."""
    if isinstance(value, bool):
        return value
    return (value or "").strip().lower() in {"true", "yes", "1", "y"}


def from_bool(value: bool) -> str:
    return "TRUE" if value else "FALSE"


def split_list(value: str | None) -> list[str]:
    """Split a comma/semicolon separated cell into trimmed, non-empty parts."""
    if not value:
        return []
    parts = value.replace(";", ",").split(",")
    return [p.strip() for p in parts if p.strip()]


def join_list(values: list[str] | set[str] | tuple[str, ...]) -> str:
    return ", ".join(values)

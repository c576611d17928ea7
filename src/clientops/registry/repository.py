"""Client registry -- ordered access to ClientRecord rows.

Order matters: the matcher's first-match-wins scan follows the registry's
insertion order, so ``list_records`` always returns rows exactly as stored.
"""

from __future__ import annotations

import structlog

from src.clientops.core.errors import ValidationFailure
from src.clientops.registry.schemas import ClientRecord, record_to_row, row_to_record
from src.clientops.storage.rowstore import CLIENTS_TABLE, RowStore, from_bool

logger = structlog.get_logger(__name__)


class ClientRegistry:
    """Reads and edits the client registry table.

    Args:
        store: RowStore holding the ``Clients`` table.
    """

    def __init__(self, store: RowStore) -> None:
        self._store = store

    async def list_records(self) -> list[ClientRecord]:
        """All records, active or not, in insertion order."""
        rows = await self._store.read_all(CLIENTS_TABLE)
        return [row_to_record(row) for row in rows if row.get("client_id")]

    async def active_records(self) -> list[ClientRecord]:
        return [r for r in await self.list_records() if r.active]

    async def get(self, client_id: str) -> ClientRecord | None:
        for record in await self.list_records():
            if record.client_id == client_id:
                return record
        return None

    async def add(self, record: ClientRecord) -> ClientRecord:
        """Register a new client.

        Raises:
            ValidationFailure: If the identifier is empty or already taken.
        """
        if not record.client_id:
            raise ValidationFailure("client_id is required")
        if await self.get(record.client_id) is not None:
            raise ValidationFailure(f"client_id already exists: {record.client_id}")

        await self._store.append(CLIENTS_TABLE, record_to_row(record))
        logger.info("client_registered", client_id=record.client_id, name=record.name)
        return record

    async def update_handles(
        self,
        client_id: str,
        document_id: str,
        task_project_id: str,
    ) -> None:
        """Record external handles and mark setup complete when both exist."""
        await self._store.update(
            CLIENTS_TABLE,
            "client_id",
            client_id,
            {
                "document_id": document_id,
                "task_project_id": task_project_id,
                "setup_complete": from_bool(bool(document_id and task_project_id)),
            },
        )

    async def deactivate(self, client_id: str) -> None:
        await self._store.update(CLIENTS_TABLE, "client_id", client_id, {"active": from_bool(False)})
        logger.info("client_deactivated", client_id=client_id)

    async def next_client_id(self) -> str:
        """Allocate the next sequential ``C-NNNN`` identifier."""
        highest = 0
        for record in await self.list_records():
            prefix, _, number = record.client_id.partition("-")
            if prefix == "C" and number.isdigit():
                highest = max(highest, int(number))
        return f"C-{highest + 1:04d}"

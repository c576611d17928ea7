"""Google Sheets implementation of RowStore.

Each table is a sheet whose first row is the header. All Google API calls are
wrapped in asyncio.to_thread() to avoid blocking the event loop. Any failure
is raised as PersistenceFailure; a write is never assumed to have succeeded.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from src.clientops.core.errors import PersistenceFailure
from src.clientops.services.gsuite.auth import GSuiteAuthManager
from src.clientops.storage.rowstore import Row

logger = structlog.get_logger(__name__)


def column_letter(index: int) -> str:
    """Convert a zero-based column index to A1 notation (0 -> A, 26 -> AA)."""
    letters = ""
    index += 1
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


class SheetsRowStore:
    """RowStore backed by one Google spreadsheet.

    Args:
        auth_manager: GSuiteAuthManager providing the Sheets API service.
        spreadsheet_id: ID of the spreadsheet holding all tables.
    """

    def __init__(self, auth_manager: GSuiteAuthManager, spreadsheet_id: str) -> None:
        self._auth = auth_manager
        self._spreadsheet_id = spreadsheet_id

    def _values(self) -> Any:
        return self._auth.get_sheets_service().spreadsheets().values()

    async def _read_values(self, table: str) -> list[list[str]]:
        def _get() -> dict:
            return (
                self._values()
                .get(spreadsheetId=self._spreadsheet_id, range=table)
                .execute()
            )

        result = await asyncio.to_thread(_get)
        return result.get("values", [])

    async def read_all(self, table: str) -> list[Row]:
        try:
            values = await self._read_values(table)
        except Exception as exc:
            raise PersistenceFailure(table, "read_all", exc) from exc

        if not values:
            return []

        header = [str(h) for h in values[0]]
        rows: list[Row] = []
        for raw in values[1:]:
            cells = [str(c) for c in raw] + [""] * (len(header) - len(raw))
            rows.append(dict(zip(header, cells)))
        return rows

    async def append(self, table: str, row: Row) -> None:
        try:
            values = await self._read_values(table)
            header = [str(h) for h in values[0]] if values else []
            missing = [k for k in row if k not in header]
            if missing:
                header = header + missing
                await self._write_range(f"{table}!A1", [header])

            ordered = [row.get(name, "") for name in header]

            def _append() -> dict:
                return (
                    self._values()
                    .append(
                        spreadsheetId=self._spreadsheet_id,
                        range=f"{table}!A1",
                        valueInputOption="RAW",
                        insertDataOption="INSERT_ROWS",
                        body={"values": [ordered]},
                    )
                    .execute()
                )

            await asyncio.to_thread(_append)
        except PersistenceFailure:
            raise
        except Exception as exc:
            raise PersistenceFailure(table, "append", exc) from exc

        logger.debug("sheets.row_appended", table=table)

    async def update(self, table: str, key_field: str, key: str, changes: Row) -> None:
        try:
            values = await self._read_values(table)
        except Exception as exc:
            raise PersistenceFailure(table, "update", exc) from exc

        if not values:
            raise PersistenceFailure(table, f"update {key_field}={key} (table empty)")

        header = [str(h) for h in values[0]]
        if key_field not in header:
            raise PersistenceFailure(table, f"update (no key column {key_field})")
        key_index = header.index(key_field)

        sheet_row: int | None = None
        for offset, raw in enumerate(values[1:]):
            if key_index < len(raw) and str(raw[key_index]) == key:
                sheet_row = offset + 2  # 1-based, after the header
                break
        if sheet_row is None:
            raise PersistenceFailure(table, f"update {key_field}={key} (row not found)")

        unknown = [name for name in changes if name not in header]
        if unknown:
            raise PersistenceFailure(table, f"update (unknown columns {unknown})")

        data = [
            {
                "range": f"{table}!{column_letter(header.index(name))}{sheet_row}",
                "values": [[value]],
            }
            for name, value in changes.items()
        ]

        def _batch_update() -> dict:
            return (
                self._values()
                .batchUpdate(
                    spreadsheetId=self._spreadsheet_id,
                    body={"valueInputOption": "RAW", "data": data},
                )
                .execute()
            )

        try:
            await asyncio.to_thread(_batch_update)
        except Exception as exc:
            raise PersistenceFailure(table, "update", exc) from exc

        logger.debug("sheets.row_updated", table=table, key=key, fields=list(changes))

    async def _write_range(self, range_name: str, values: list[list[str]]) -> None:
        def _update() -> dict:
            return (
                self._values()
                .update(
                    spreadsheetId=self._spreadsheet_id,
                    range=range_name,
                    valueInputOption="RAW",
                    body={"values": values},
                )
                .execute()
            )

        await asyncio.to_thread(_update)

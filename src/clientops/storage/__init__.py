"""Row store persistence -- named tables addressed by stable keys.

RowStore is the interface every repository and the ledger depend on.
SheetsRowStore is the Google Sheets implementation used in production.
"""

from src.clientops.storage.rowstore import (
    AGENDAS_TABLE,
    AUDIT_TABLE,
    CLIENTS_TABLE,
    MEETINGS_TABLE,
    UNMATCHED_TABLE,
    Row,
    RowStore,
)
from src.clientops.storage.sheets import SheetsRowStore

__all__ = [
    "AGENDAS_TABLE",
    "AUDIT_TABLE",
    "CLIENTS_TABLE",
    "MEETINGS_TABLE",
    "UNMATCHED_TABLE",
    "Row",
    "RowStore",
    "SheetsRowStore",
]

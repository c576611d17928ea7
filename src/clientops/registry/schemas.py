"""Client registry schemas and row serialization."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from src.clientops.storage.rowstore import Row, from_bool, join_list, split_list, to_bool


class ClientRecord(BaseModel):
    """A client the operator works with.

    Contact addresses and domains are stored lower-cased. Records are never
    deleted; ``active`` is cleared instead.
    """

    client_id: str
    name: str
    contact_emails: list[str] = Field(default_factory=list)
    domains: list[str] = Field(default_factory=list)
    internal_only: bool = False
    document_id: str = ""
    task_project_id: str = ""
    setup_complete: bool = False
    active: bool = True

    @field_validator("contact_emails", "domains")
    @classmethod
    def _lower(cls, values: list[str]) -> list[str]:
        return [v.strip().lower() for v in values if v and v.strip()]

    @field_validator("domains")
    @classmethod
    def _strip_at(cls, values: list[str]) -> list[str]:
        return [v.lstrip("@") for v in values]


def record_to_row(record: ClientRecord) -> Row:
    return {
        "client_id": record.client_id,
        "name": record.name,
        "contact_emails": join_list(record.contact_emails),
        "domains": join_list(record.domains),
        "internal_only": from_bool(record.internal_only),
        "document_id": record.document_id,
        "task_project_id": record.task_project_id,
        "setup_complete": from_bool(record.setup_complete),
        "active": from_bool(record.active),
    }


def row_to_record(row: Row) -> ClientRecord:
    active_cell = row.get("active", "")
    return ClientRecord(
        client_id=row.get("client_id", ""),
        name=row.get("name", ""),
        contact_emails=split_list(row.get("contact_emails")),
        domains=split_list(row.get("domains")),
        internal_only=to_bool(row.get("internal_only")),
        document_id=row.get("document_id", ""),
        task_project_id=row.get("task_project_id", ""),
        setup_complete=to_bool(row.get("setup_complete")),
        # Rows written before the column existed count as active
        active=to_bool(active_cell) if active_cell else True,
    )

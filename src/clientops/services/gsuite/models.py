"""Pydantic schemas for Gmail, Docs, and Calendar payloads."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class EmailMessage(BaseModel):
    """Email message to send or save as a draft via Gmail API."""

    to: list[str]
    subject: str
    body_text: str
    body_html: str | None = None
    cc: list[str] = Field(default_factory=list)
    thread_id: str | None = None


class SentEmailResult(BaseModel):
    """Result from sending an email via Gmail API."""

    message_id: str
    thread_id: str
    label_ids: list[str] = Field(default_factory=list)


class DraftResult(BaseModel):
    """Result from creating a Gmail draft."""

    draft_id: str
    message_id: str = ""
    thread_id: str = ""


class EmailThreadMessage(BaseModel):
    """A single message within an email thread, with decoded body."""

    message_id: str
    thread_id: str
    sender: str = ""
    to: str = ""
    subject: str = ""
    date: datetime
    body_text: str = ""
    label_ids: list[str] = Field(default_factory=list)

    @property
    def is_sent(self) -> bool:
        return "SENT" in self.label_ids and "DRAFT" not in self.label_ids


class EmailThread(BaseModel):
    """Email thread retrieved from Gmail API, messages oldest first."""

    thread_id: str
    subject: str
    messages: list[EmailThreadMessage] = Field(default_factory=list)

    @property
    def first_message(self) -> EmailThreadMessage | None:
        return self.messages[0] if self.messages else None

    @property
    def last_activity(self) -> datetime | None:
        return self.messages[-1].date if self.messages else None


class CalendarEvent(BaseModel):
    """Calendar event reduced to the fields the workflow consumes."""

    event_id: str
    title: str
    start: datetime
    end: datetime
    attendees: list[str] = Field(default_factory=list)

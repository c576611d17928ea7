"""Pydantic schemas for the aggregated agenda context."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, Field


class TaskSummary(BaseModel):
    """Outstanding task due today or earlier."""

    task_id: str
    content: str
    due_date: date | None = None


class CorrespondenceItem(BaseModel):
    """One recent thread, reduced to its most recent message.

    ``excerpt`` holds only the leading characters of the body.
    """

    thread_id: str
    subject: str
    sender: str
    date: datetime
    excerpt: str


class AgendaContext(BaseModel):
    """Bounded bundle consumed verbatim by the agenda prompt builder.

    ``failed_sources`` names every source that errored and was replaced by
    an empty result.
    """

    client_id: str
    client_name: str
    meeting_date: date
    outstanding_tasks: list[TaskSummary] = Field(default_factory=list)
    correspondence: list[CorrespondenceItem] = Field(default_factory=list)
    prior_notes: str = ""
    carried_over: list[str] = Field(default_factory=list)
    failed_sources: list[str] = Field(default_factory=list)

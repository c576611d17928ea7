"""GSuite integration services for Gmail, Docs, Calendar, and Sheets.

Provides async-wrapped services using Google service account authentication
with domain-wide delegation to the operator mailbox.
"""

from src.clientops.services.gsuite.auth import GSuiteAuthManager
from src.clientops.services.gsuite.calendar import GoogleCalendarService
from src.clientops.services.gsuite.docs import DocsService
from src.clientops.services.gsuite.gmail import GmailService
from src.clientops.services.gsuite.models import (
    CalendarEvent,
    DraftResult,
    EmailMessage,
    EmailThread,
    EmailThreadMessage,
    SentEmailResult,
)

__all__ = [
    "CalendarEvent",
    "DocsService",
    "DraftResult",
    "EmailMessage",
    "EmailThread",
    "EmailThreadMessage",
    "GmailService",
    "GoogleCalendarService",
    "GSuiteAuthManager",
    "SentEmailResult",
]

"""Google Calendar service for upcoming-meeting discovery.

Reads the operator's calendar through GSuiteAuthManager (domain-wide
delegation) and reduces Calendar API event dicts to CalendarEvent models
with lower-cased attendee addresses.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import structlog

from src.clientops.services.gsuite.auth import GSuiteAuthManager
from src.clientops.services.gsuite.models import CalendarEvent

logger = structlog.get_logger(__name__)


def _parse_event_time(value: dict) -> datetime | None:
    """Parse a Calendar API start/end object (dateTime or all-day date)."""
    dt_str = value.get("dateTime") or value.get("date")
    if dt_str is None:
        return None
    try:
        parsed = datetime.fromisoformat(dt_str.replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_calendar_event(event: dict) -> CalendarEvent | None:
    """Convert a Calendar API event dict, or None if it lacks times."""
    start = _parse_event_time(event.get("start", {}))
    end = _parse_event_time(event.get("end", {}))
    if start is None or end is None:
        return None
    attendees = [
        a.get("email", "").lower()
        for a in event.get("attendees", [])
        if a.get("email")
    ]
    return CalendarEvent(
        event_id=event.get("id", ""),
        title=event.get("summary", "Untitled Meeting"),
        start=start,
        end=end,
        attendees=attendees,
    )


class GoogleCalendarService:
    """Google Calendar API v3 service for the operator's calendar.

    Args:
        auth_manager: GSuiteAuthManager instance (shared with Gmail/Docs/Sheets).
        calendar_id: Calendar to read; defaults to the delegated user's primary.
    """

    def __init__(self, auth_manager: GSuiteAuthManager, calendar_id: str = "primary") -> None:
        self._auth = auth_manager
        self._calendar_id = calendar_id

    async def list_events(
        self,
        time_min: datetime,
        time_max: datetime,
    ) -> list[CalendarEvent]:
        """Fetch non-cancelled events starting within the window, by start time."""
        service = self._auth.get_calendar_service()

        def _list() -> dict:
            return (
                service.events()
                .list(
                    calendarId=self._calendar_id,
                    timeMin=time_min.isoformat(),
                    timeMax=time_max.isoformat(),
                    singleEvents=True,
                    orderBy="startTime",
                )
                .execute()
            )

        result = await asyncio.to_thread(_list)

        events: list[CalendarEvent] = []
        for raw in result.get("items", []):
            if raw.get("status") == "cancelled":
                continue
            event = to_calendar_event(raw)
            if event is None:
                logger.warning("skipping_event_missing_times", event_id=raw.get("id"))
                continue
            events.append(event)

        logger.info("calendar_events_listed", count=len(events))
        return events

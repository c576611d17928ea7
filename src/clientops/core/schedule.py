"""Business-hours gating for externally triggered sweeps.

The gate is applied at the trigger boundary (HTTP endpoint or CLI), never
inside the orchestrator.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from src.clientops.config import BusinessHours


def within_business_hours(now: datetime, hours: BusinessHours) -> bool:
    """Return True if ``now`` falls inside the configured business window.

    Naive datetimes are treated as UTC. The window is ``[start_hour, end_hour)``
    in the configured time zone, on the configured weekdays (Monday is 0).
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    local = now.astimezone(ZoneInfo(hours.timezone))
    if local.weekday() not in hours.weekdays:
        return False
    return hours.start_hour <= local.hour < hours.end_hour

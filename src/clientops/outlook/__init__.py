"""Per-client meeting outlook and conflict detection."""

from src.clientops.outlook.composer import ClientOutlook, OutlookComposer
from src.clientops.outlook.conflicts import Interval, detect_conflicts, intervals_overlap

__all__ = [
    "ClientOutlook",
    "Interval",
    "OutlookComposer",
    "detect_conflicts",
    "intervals_overlap",
]

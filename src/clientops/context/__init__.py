"""Pre-meeting context aggregation."""

from src.clientops.context.aggregator import ContextAggregator
from src.clientops.context.schemas import AgendaContext, CorrespondenceItem, TaskSummary

__all__ = ["AgendaContext", "ContextAggregator", "CorrespondenceItem", "TaskSummary"]

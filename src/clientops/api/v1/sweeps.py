"""Sweep triggers for an external scheduler.

Each POST runs one sweep as a single invocation. The agenda sweep is gated
on business hours here, at the trigger, and reports ``skipped`` outside
them without touching the orchestrator.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.clientops.api.deps import get_orchestrator, get_outlook_composer, get_workflow_config
from src.clientops.config import WorkflowConfig
from src.clientops.core.schedule import within_business_hours
from src.clientops.meetings.schemas import SweepReport

router = APIRouter(prefix="/sweeps", tags=["sweeps"])


class SweepResponse(BaseModel):
    status: str
    report: SweepReport | None = None


def _now() -> datetime:
    return datetime.now(timezone.utc)


@router.post("/sent", response_model=SweepResponse)
async def sweep_sent(orchestrator: Any = Depends(get_orchestrator)) -> SweepResponse:
    """Detect sent follow-ups and complete their meetings."""
    report = await orchestrator.sweep_sent(_now())
    return SweepResponse(status="completed", report=report)


@router.post("/drafts", response_model=SweepResponse)
async def sweep_drafts(orchestrator: Any = Depends(get_orchestrator)) -> SweepResponse:
    """Retry drafting for meetings left in Received."""
    report = await orchestrator.retry_pending_drafts()
    return SweepResponse(status="completed", report=report)


@router.post("/agenda", response_model=SweepResponse)
async def sweep_agenda(
    orchestrator: Any = Depends(get_orchestrator),
    config: WorkflowConfig = Depends(get_workflow_config),
) -> SweepResponse:
    """Generate agendas for upcoming meetings, during business hours only."""
    now = _now()
    if not within_business_hours(now, config.business_hours):
        return SweepResponse(status="skipped")
    report = await orchestrator.run_agenda_sweep(now)
    return SweepResponse(status="completed", report=report)


@router.post("/outlook", response_model=SweepResponse)
async def sweep_outlook(
    composer: Any = Depends(get_outlook_composer),
    config: WorkflowConfig = Depends(get_workflow_config),
) -> SweepResponse:
    """Email the per-client outlook for the coming window."""
    now = _now()
    report = await composer.send_outlook(now, now + timedelta(days=config.outlook_window_days))
    return SweepResponse(status="completed", report=report)

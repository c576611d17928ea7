"""FastAPI dependencies resolving components wired onto ``app.state``.

Each dependency raises 503 when its component was not initialized, which
happens when the lifespan could not build it (missing credentials).
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from src.clientops.config import Settings, WorkflowConfig


def _from_state(request: Request, name: str, label: str) -> Any:
    component = getattr(request.app.state, name, None)
    if component is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} not initialized",
        )
    return component


def get_app_settings(request: Request) -> Settings:
    return _from_state(request, "settings", "Settings")


def get_workflow_config(request: Request) -> WorkflowConfig:
    return _from_state(request, "workflow_config", "Workflow configuration")


def get_ledger(request: Request) -> Any:
    """Retrieve Ledger from app.state, 503 if not available."""
    return _from_state(request, "ledger", "Ledger")


def get_orchestrator(request: Request) -> Any:
    """Retrieve MeetingLifecycleOrchestrator from app.state, 503 if not available."""
    return _from_state(request, "orchestrator", "Meeting orchestrator")


def get_outlook_composer(request: Request) -> Any:
    """Retrieve OutlookComposer from app.state, 503 if not available."""
    return _from_state(request, "outlook_composer", "Outlook composer")

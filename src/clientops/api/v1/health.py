"""Health check endpoint.

Liveness only: no signature, no external calls. Reports which components
the lifespan managed to initialize so a misconfigured deployment is visible.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from src.clientops.config import get_settings

router = APIRouter(tags=["health"])

_COMPONENTS = ("ledger", "orchestrator", "outlook_composer")


@router.get("/health")
async def health_check(request: Request):
    """Basic liveness check."""
    settings = getattr(request.app.state, "settings", None) or get_settings()
    components = {
        name: "ok" if getattr(request.app.state, name, None) is not None else "unavailable"
        for name in _COMPONENTS
    }
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT.value,
        "components": components,
    }

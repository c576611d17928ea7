"""FastAPI application factory.

Creates the app with logging middleware, metrics middleware, Sentry,
lifespan wiring of the workflow components, and the v1 API router.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.requests import Request
from fastapi.responses import Response

from src.clientops.api.middleware.logging import LoggingMiddleware
from src.clientops.api.v1.router import router as v1_router
from src.clientops.bootstrap import ConfigurationError, build_components
from src.clientops.config import get_settings
from src.clientops.core.logging import configure_structlog
from src.clientops.core.monitoring import MetricsMiddleware, get_metrics_response, init_sentry


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: configure logging and Sentry, wire components."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()

    if settings.SENTRY_DSN:
        init_sentry(dsn=settings.SENTRY_DSN, environment=settings.ENVIRONMENT.value)

    app.state.settings = settings
    app.state.workflow_config = settings.workflow_config()

    # Missing credentials leave the workflow routes at 503; health still answers.
    try:
        components = build_components(settings)
        app.state.workflow_config = components.workflow_config
        app.state.ledger = components.ledger
        app.state.registry = components.registry
        app.state.orchestrator = components.orchestrator
        app.state.outlook_composer = components.outlook_composer
        app.state.onboarding = components.onboarding
        log.info("workflow_initialized")
    except ConfigurationError as exc:
        log.warning("workflow_not_configured", reason=str(exc))
    except Exception:
        log.error("workflow_init_failed", exc_info=True)

    yield

    log.info("application_shutdown")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Client Meeting Ops API",
        version="0.1.0",
        description="Meeting lifecycle orchestration and client resolution",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(MetricsMiddleware)

    app.include_router(v1_router, prefix="/api/v1")

    # Prometheus metrics endpoint (infrastructure route, outside v1 router)
    @app.get("/metrics", include_in_schema=False)
    async def metrics(request: Request) -> Response:
        """Prometheus metrics endpoint."""
        return get_metrics_response()

    return app


# Module-level app for uvicorn
app = create_app()

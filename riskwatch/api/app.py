"""
RiskWatch: FastAPI application for the operations desk.

Run: uvicorn riskwatch.api.app:app --host 0.0.0.0 --port 8002

  - GET   /health                               ← liveness + provider modes
  - POST  /api/v1/updates                       ← push a batch of subject updates
  - GET   /api/v1/risk, /api/v1/risk/forecast   ← location risk
  - GET   /api/v1/incidents[/{id}]              ← incident records
  - PATCH /api/v1/incidents/{id}/status
  - POST  /api/v1/incidents/{id}/evidence
  - GET   /api/v1/notifications                 ← in-app feed
  - GET   /api/v1/subjects, /api/v1/groups/{id} ← subject projection
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from riskwatch.api.routers.incidents import router as incidents_router
from riskwatch.api.routers.notifications import router as notifications_router
from riskwatch.api.routers.risk import router as risk_router
from riskwatch.api.routers.subjects import router as subjects_router
from riskwatch.api.routers.updates import router as updates_router
from riskwatch.config import settings
from riskwatch.container import Services, build_services
from riskwatch.errors import IncidentNotFound, InvalidCoordinate, InvalidStatusTransition
from riskwatch.log_config import configure_logging
from riskwatch.middleware.error_handler import ErrorHandlerMiddleware
from riskwatch.middleware.request_context import RequestContextMiddleware

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    configure_logging(settings)
    logger.info("riskwatch_api_starting", version=settings.app_version)
    if app.state.services is None:
        app.state.services = build_services(settings)
    services: Services = app.state.services
    await services.startup()
    yield
    await services.shutdown()
    logger.info("riskwatch_api_shutdown")


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": message, "status": status_code},
    )


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="RiskWatch",
        description="Risk scoring and incident pipeline for tracked subjects.",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.services = services

    # ── Middleware (last added = outermost) ──
    app.add_middleware(RequestContextMiddleware)
    app.add_middleware(ErrorHandlerMiddleware)

    # ── Domain errors ──
    @app.exception_handler(InvalidCoordinate)
    async def invalid_coordinate_handler(request: Request, exc: InvalidCoordinate):
        return _error(422, str(exc))

    @app.exception_handler(IncidentNotFound)
    async def incident_not_found_handler(request: Request, exc: IncidentNotFound):
        return _error(404, str(exc))

    @app.exception_handler(InvalidStatusTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidStatusTransition):
        return _error(409, str(exc))

    app.include_router(updates_router)        # POST /api/v1/updates
    app.include_router(risk_router)           # GET /api/v1/risk
    app.include_router(incidents_router)      # /api/v1/incidents/*
    app.include_router(notifications_router)  # GET /api/v1/notifications
    app.include_router(subjects_router)       # GET /api/v1/subjects, /groups

    # ── Health Check (Liveness Probe) ─────────────────────────────────
    @app.get("/health", tags=["health"])
    async def health(request: Request):
        """Liveness probe. Reports which providers are live or degraded."""
        current: Optional[Services] = request.app.state.services
        return {
            "status": "ok",
            "version": settings.app_version,
            "service": "riskwatch",
            "providers": current.providers() if current else {},
            "pipeline_running": current.orchestrator.running if current else False,
        }

    return app


app = create_app()

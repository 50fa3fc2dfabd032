"""
FastAPI application factory and API package.

Run with:
    uvicorn agent_orchestrator.api:app --port 3000

Or via main.py:
    python -m agent_orchestrator --serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agent_orchestrator.config import Settings, get_settings
from agent_orchestrator.errors import OrchestratorError, StorageError
from agent_orchestrator.api.routes import health_router, requirements_router
from agent_orchestrator.api.plan_routes import plan_router
from agent_orchestrator.persistence.backends import build_backend
from agent_orchestrator.persistence.requirement_store import RequirementStore
from agent_orchestrator.services.requirement_service import RequirementService

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    store: RequirementStore | None = None,
) -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = settings or get_settings()
    if store is None:
        store = RequirementStore(build_backend(settings), scoring=settings.priority_scoring)

    application = FastAPI(
        title="Agent Orchestrator API",
        description="Requirement workflow store and plan linting for multi-role delivery agents",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )
    application.state.settings = settings
    application.state.store = store
    application.state.requirement_service = RequirementService(store)

    # Register route groups
    application.include_router(health_router, tags=["Health"])
    application.include_router(requirements_router, prefix=settings.api_prefix, tags=["Requirements"])
    application.include_router(plan_router, prefix=settings.api_prefix, tags=["Plan"])

    @application.exception_handler(OrchestratorError)
    async def orchestrator_error_handler(request: Request, exc: OrchestratorError):
        if isinstance(exc, StorageError):
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @application.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        error = "not_found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content={"error": error})

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        response = await call_next(request)
        role = request.headers.get("x-agent-role", "-")
        agent_id = request.headers.get("x-agent-id", "-")
        logger.info(
            f"{request.method} {request.url.path} {response.status_code} "
            f"role={role} agent_id={agent_id}"
        )
        return response

    @application.on_event("startup")
    async def startup():
        await store.open()
        logger.info(f"Starting {settings.app_name} API")

    @application.on_event("shutdown")
    async def shutdown():
        await store.close()

    return application


# Module-level instance for `uvicorn agent_orchestrator.api:app`
app = create_app()

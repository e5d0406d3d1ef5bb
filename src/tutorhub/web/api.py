"""FastAPI application factory.

Main entry point for the TutorHub Web API.
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tutorhub.config.app_config import AppConfig, load_app_config
from tutorhub.core.errors import TutorHubError
from tutorhub.db.database import Database
from tutorhub.utils.log_setup import configure_logging
from tutorhub.web.routes import (
    admin_router,
    auth_router,
    documents_router,
    exams_router,
    health_router,
    messages_router,
    notifications_router,
    planner_router,
    sessions_router,
    tutors_router,
    users_router,
)
from tutorhub.web.routes.health import API_VERSION

logger = structlog.get_logger(__name__)


def _error_body(message: str, data: dict | None = None) -> dict:
    body: dict = {"success": False, "message": message}
    if data:
        body["data"] = data
    return body


def _register_error_handlers(app: FastAPI) -> None:
    """Convert every failure into the response envelope, in one place."""

    @app.exception_handler(TutorHubError)
    async def handle_domain_error(request: Request, exc: TutorHubError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content=_error_body(exc.message, exc.details)
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400, content=_error_body("Validation failed", {"errors": errors})
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Route not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(status_code=exc.status_code, content=_error_body(message))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("http.unhandled_error", method=request.method, path=request.url.path)
        return JSONResponse(status_code=500, content=_error_body("Internal server error"))


def create_app(config: AppConfig | None = None, database: Database | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Application config (loaded from file/env when omitted)
        database: Store to serve from (built from `config.database` when omitted)

    Returns:
        Configured FastAPI app instance
    """
    config = config or load_app_config()
    configure_logging(config.server.log_level, config.server.environment)
    database = database or Database(
        config.database.path, busy_timeout=config.database.busy_timeout_seconds
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Open the store on startup, close it on shutdown."""
        database.open()
        logger.info(
            "api_startup",
            environment=config.server.environment,
            database=str(database.path),
        )
        yield
        database.close()

    app = FastAPI(
        title="TutorHub API",
        description="Peer-to-peer tutoring marketplace",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.database = database

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "http.request",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response

    _register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(tutors_router)
    app.include_router(sessions_router)
    app.include_router(exams_router)
    app.include_router(documents_router)
    app.include_router(planner_router)
    app.include_router(messages_router)
    app.include_router(notifications_router)
    app.include_router(admin_router)

    return app


# Default app instance for uvicorn
app = create_app()

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import InvalidIdError, NotFoundError, TaskError, ValidationError
from .repositories import TaskStore, open_store
from .routers import health as health_router
from .routers import tasks as tasks_router
from .settings import Settings, get_settings
from .utils import error_envelope

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "tasks", "description": "CRUD operations for tasks and task statistics."},
]


def _status_for(exc: TaskError) -> int:
    if isinstance(exc, (ValidationError, InvalidIdError)):
        return 400
    if isinstance(exc, NotFoundError):
        return 404
    return 500


def _register_exception_handlers(app: FastAPI, settings: Settings) -> None:
    def internal_error_response(exc: Exception) -> JSONResponse:
        message = str(exc) if settings.is_development and str(exc) else "Internal server error"
        return JSONResponse(status_code=500, content=error_envelope(message))

    @app.exception_handler(TaskError)
    async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
        status_code = _status_for(exc)
        if status_code == 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc, exc_info=exc)
            return internal_error_response(exc)
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, exc.message)
        details = exc.details if isinstance(exc, ValidationError) else None
        return JSONResponse(status_code=status_code, content=error_envelope(exc.message, details))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return the standard envelope for request body/parameter validation errors.

        Response format:
            {
                "success": false,
                "error": "Validation failed",
                "details": [{"loc": [...], "msg": "...", "type": "..."}, ...]
            }
        """
        details = [
            {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=error_envelope("Validation failed", details))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
        return JSONResponse(
            status_code=exc.status_code,
            content=error_envelope(message),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return internal_error_response(exc)


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, store: Optional[TaskStore] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Configuration; read from the environment when omitted.
        store: Storage handle to serve from. When omitted the configured
            store is opened on startup and closed on shutdown; a store passed
            in stays owned by the caller.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: Optional[TaskStore] = None
        if getattr(app.state, "store", None) is None:
            owned = open_store(settings)
            app.state.store = owned
        app.state.started_at = time.monotonic()
        logger.info("Task API started (env=%s, backend=%s)", settings.environment, settings.persistence_backend)
        try:
            yield
        finally:
            if owned is not None:
                owned.close()
                app.state.store = None
            logger.info("Task API stopped")

    app = FastAPI(
        title="Task Manager API",
        description="Task CRUD service with a uniform success/data/error response envelope.",
        version="1.0.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.store = store
    app.state.started_at = time.monotonic()

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS)
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=not allow_all,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        logger.debug("%s %s", request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.info("%s %s - 500 - %.0fms", request.method, request.url.path, duration_ms)
            raise
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s - %d - %.0fms", request.method, request.url.path, response.status_code, duration_ms)
        return response

    _register_exception_handlers(app, settings)

    app.include_router(health_router.router)
    app.include_router(tasks_router.router)
    return app


app = create_app()

"""FastAPI application: entry point, middleware, and health endpoints.

Creates the room state API with:
- API versioning via router prefix (/api/v1/)
- CORS middleware (origins from settings)
- Request logging middleware (raw ASGI, no response body buffering)
- Global exception handlers (StoreError, HTTPException, validation, catch-all)
- Health endpoints for the process and the storage backend
- A lifespan that prepares the schema, runs the expiry reaper and closes
  the backend on shutdown

Run with: uvicorn roomstate.main:app --reload

Tier 3 orchestration module: imports from config, api.deps, errors,
reaper and schemas.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator
from typing import Any

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from roomstate.api.deps import Container, build_container, get_container
from roomstate.config import Settings, get_settings
from roomstate.errors import RateLimited, StoreError
from roomstate.hooks.relational import RelationalBackend
from roomstate.reaper import run_reaper
from roomstate.schemas import ApiError, ApiResponse

logger = logging.getLogger("roomstate")


# ---------------------------------------------------------------------------
# Request logging middleware (raw ASGI)
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware:
    """Logs method, path, status code, and duration for every request.

    Uses raw ASGI to avoid response body buffering. Does NOT log
    request/response bodies, query params, auth headers, session tokens,
    or client IPs.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        method = scope.get("method", "?")
        path = scope.get("path", "?")
        start = time.monotonic()
        status_code = 0

        async def logging_send(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message.get("status", 0)
            await send(message)

        try:
            await self.app(scope, receive, logging_send)
        finally:
            duration_ms = (time.monotonic() - start) * 1000
            logger.info(
                "%s %s %d %.1fms", method, path, status_code, duration_ms
            )


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _store_error_response(request: Request, exc: StoreError) -> JSONResponse:
    """Maps a StoreError to its HTTP status inside the ApiResponse envelope."""
    headers = None
    if isinstance(exc, RateLimited):
        headers = {"Retry-After": str(exc.retry_after)}

    return JSONResponse(
        status_code=exc.http_status,
        content=ApiResponse(
            ok=False,
            error=ApiError(code=exc.code, message=exc.message),
        ).model_dump(),
        headers=headers,
    )


def _http_exception_response(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wraps HTTPException in ApiResponse envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiResponse(
            ok=False,
            error=ApiError(code="HTTP_ERROR", message=str(exc.detail)),
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


def _validation_error_response(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Wraps Pydantic validation errors in ApiResponse envelope.

    Returns a human-readable summary without leaking internal details.
    """
    errors = exc.errors()
    if errors:
        first = errors[0]
        loc = " -> ".join(str(part) for part in first.get("loc", []))
        msg = first.get("msg", "Validation error")
        detail = f"{loc}: {msg}" if loc else msg
    else:
        detail = "Request validation failed."

    return JSONResponse(
        status_code=422,
        content=ApiResponse(
            ok=False,
            error=ApiError(code="VALIDATION_ERROR", message=detail),
        ).model_dump(),
    )


def _unhandled_exception_response(request: Request, exc: Exception) -> JSONResponse:
    """Catches all unhandled exceptions. Never leaks internals to the client.

    Logs the full traceback server-side. Returns a generic 500 response.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

    return JSONResponse(
        status_code=500,
        content=ApiResponse(
            ok=False,
            error=ApiError(
                code="INTERNAL_ERROR",
                message="An unexpected error occurred.",
            ),
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@contextlib.asynccontextmanager
async def _lifespan(application: FastAPI) -> AsyncIterator[None]:
    """Prepares storage on startup; stops the reaper and closes it on shutdown.

    The reaper only runs for the relational backend. The memory backend
    sweeps itself on access.
    """
    container: Container = application.state.container
    backend = container.backend
    stop = asyncio.Event()
    reaper: asyncio.Task | None = None

    if isinstance(backend, RelationalBackend):
        await backend.init_schema()
        reaper = asyncio.create_task(
            run_reaper(backend, container.settings.reaper_interval_seconds, stop)
        )
        logger.info(
            "Expiry reaper started (every %ds)", container.settings.reaper_interval_seconds
        )

    try:
        yield
    finally:
        stop.set()
        if reaper is not None:
            await reaper
        await backend.close()
        logger.info("Storage backend closed")


# ---------------------------------------------------------------------------
# App creation
# ---------------------------------------------------------------------------


def create_app(
    settings: Settings | None = None,
    container: Container | None = None,
) -> FastAPI:
    """Creates and configures the FastAPI application.

    Args:
        settings: Overrides get_settings(). Ignored when container is given.
        container: Pre-built components, used by tests to inject backends.
    """
    if container is None:
        settings = settings or get_settings()
        container = build_container(settings)
    settings = container.settings

    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

    application = FastAPI(
        title="Room State Store",
        description="Ephemeral game rooms, accounts and sessions",
        version="0.1.0",
        lifespan=_lifespan,
    )
    application.state.container = container

    # -- Middleware (order matters: last added = first executed) --

    # CORS: outermost so preflight never hits the session checks
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-CSRF-Token", "Retry-After"],
    )

    application.add_middleware(RequestLoggingMiddleware)

    # -- Exception handlers --
    application.add_exception_handler(StoreError, _store_error_response)
    application.add_exception_handler(StarletteHTTPException, _http_exception_response)
    application.add_exception_handler(RequestValidationError, _validation_error_response)
    application.add_exception_handler(Exception, _unhandled_exception_response)

    _register_routes(application)

    logger.info(
        "Room state API ready: env=%s backend=%s", settings.app_env, settings.storage_backend
    )
    return application


def _register_routes(application: FastAPI) -> None:
    """Registers all API routers on the application."""
    v1 = APIRouter(prefix="/api/v1")

    @v1.get("/health")
    async def health() -> dict[str, Any]:
        return ApiResponse(ok=True, data={"status": "healthy"}).model_dump()

    @v1.get("/health/backend")
    async def backend_health(
        container: Container = Depends(get_container),
    ) -> JSONResponse:
        report = await container.backend.health()
        healthy = report.get("status") == "healthy"
        return JSONResponse(
            status_code=200 if healthy else 503,
            content=ApiResponse(ok=healthy, data=report).model_dump(),
        )

    from roomstate.api.session import router as session_router

    v1.include_router(session_router, tags=["session"])

    application.include_router(v1)


app = create_app()

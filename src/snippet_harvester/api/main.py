"""FastAPI application factory and entry point.

Usage::

    # Development server (from project root)
    uvicorn snippet_harvester.api.main:app --reload

    # Production
    gunicorn snippet_harvester.api.main:app -k uvicorn.workers.UvicornWorker

The lifespan handler builds the :class:`~snippet_harvester.core.context.AppContext`
(engine, stores, fetchers, scheduler) and, with the ``inprocess`` scheduler
backend, starts the recurring trigger.  On shutdown the scheduler stops
gracefully: the target being processed finishes and is persisted, and no
further target starts.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from snippet_harvester import __version__
from snippet_harvester.api.metrics import (
    get_metrics_response,
    http_request_duration_seconds,
    http_requests_total,
)
from snippet_harvester.config.settings import Settings, get_settings
from snippet_harvester.core.context import AppContext, build_context
from snippet_harvester.core.exceptions import (
    BatchAlreadyRunningError,
    ScheduleConfigError,
    TargetNotFoundError,
    TargetStoreUnavailableError,
    TargetValidationError,
)
from snippet_harvester.core.logging_config import configure_logging, request_id_var

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _error(status_code: int, detail: str, **extra: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, **extra})


async def _not_found_handler(request: Request, exc: TargetNotFoundError) -> JSONResponse:  # noqa: ARG001
    return _error(status.HTTP_404_NOT_FOUND, str(exc), error="NotFound")


async def _validation_handler(request: Request, exc: TargetValidationError) -> JSONResponse:  # noqa: ARG001
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), error="ValidationError", field=exc.field)


async def _schedule_config_handler(request: Request, exc: ScheduleConfigError) -> JSONResponse:  # noqa: ARG001
    return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, str(exc), error="ScheduleConfigError")


async def _batch_running_handler(request: Request, exc: BatchAlreadyRunningError) -> JSONResponse:  # noqa: ARG001
    return _error(status.HTTP_409_CONFLICT, str(exc), error="BatchAlreadyRunning")


async def _store_unavailable_handler(
    request: Request, exc: TargetStoreUnavailableError  # noqa: ARG001
) -> JSONResponse:
    return _error(status.HTTP_503_SERVICE_UNAVAILABLE, str(exc), error="TargetStoreUnavailable")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        settings: Overrides :func:`get_settings`.
        context: A prebuilt context.  When given, the lifespan neither builds
            nor closes it; the caller owns it.  Tests use this.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = settings or (context.settings if context is not None else get_settings())
    configure_logging(settings.log_level, json_logs=False if settings.debug else None)

    @asynccontextmanager
    async def lifespan(application: FastAPI) -> AsyncIterator[None]:
        owned = getattr(application.state, "context", None) is None
        app_context: AppContext = application.state.context if not owned else await build_context(settings)
        application.state.context = app_context

        if settings.scheduler_enabled and settings.scheduler_backend == "inprocess":
            app_context.scheduler.start()
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            scheduler_enabled=settings.scheduler_enabled,
            scheduler_backend=settings.scheduler_backend,
        )
        try:
            yield
        finally:
            if owned:
                await app_context.aclose()
                application.state.context = None
            else:
                await app_context.scheduler.shutdown()
            logger.info("application_shutdown")

    application = FastAPI(
        title=settings.app_name,
        description="Scheduled and on-demand extraction of text fragments from web pages.",
        version=__version__,
        debug=settings.debug,
        redirect_slashes=False,
        lifespan=lifespan,
    )
    application.state.context = context

    # ---- Middleware --------------------------------------------------------

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @application.middleware("http")
    async def request_logging_middleware(request: Request, call_next: Callable) -> Response:
        """Bind a request id to the log context and record request metrics."""
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed = time.perf_counter() - start
            route = request.scope.get("route")
            path = getattr(route, "path", request.url.path)
            http_requests_total.labels(method=request.method, path=path, status=str(status_code)).inc()
            http_request_duration_seconds.labels(method=request.method, path=path).observe(elapsed)
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn("request_complete", status_code=status_code, elapsed_ms=round(elapsed * 1000, 2))

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Exception handlers ------------------------------------------------

    application.add_exception_handler(TargetNotFoundError, _not_found_handler)
    application.add_exception_handler(TargetValidationError, _validation_handler)
    application.add_exception_handler(ScheduleConfigError, _schedule_config_handler)
    application.add_exception_handler(BatchAlreadyRunningError, _batch_running_handler)
    application.add_exception_handler(TargetStoreUnavailableError, _store_unavailable_handler)

    # ---- Routers -------------------------------------------------------------

    from snippet_harvester.api.routes import health, settings as settings_routes, stats, targets  # noqa: PLC0415
    from snippet_harvester.scraper.router import router as scrape_router  # noqa: PLC0415

    application.include_router(health.router)
    application.include_router(targets.router)
    application.include_router(scrape_router)
    application.include_router(settings_routes.router)
    application.include_router(stats.router)

    if settings.metrics_enabled:

        @application.get("/metrics", include_in_schema=False)
        async def metrics() -> Response:
            body, content_type = get_metrics_response()
            return Response(content=body, media_type=content_type)

    return application


app = create_app()
"""The ASGI callable passed to Uvicorn / Gunicorn."""

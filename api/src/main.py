"""
FastAPI application entry point for the CPU Load Test Service.

This module provides the FastAPI application with:
- The synthetic load endpoint (/test)
- Diagnostics (profiling) endpoints
- Health endpoint
- Request logging with correlation ids
- Prometheus metrics
- Optional OpenTelemetry distributed tracing
- Graceful startup and shutdown
"""

import socket
import sys
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from prometheus_client import CONTENT_TYPE_LATEST
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.src import __version__
from api.src.config import Settings, get_settings
from api.src.middleware import RequestLoggingMiddleware
from api.src.routers import diagnostics, load
from shared.logging import configure_logging
from shared.metrics import get_metrics_handler, setup_metrics
from shared.models import HealthStatus, ServiceInfo
from shared.tracing import configure_tracing

# Initialize logger
logger = structlog.get_logger(__name__)


# ============================================================================
# Lifespan Management
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager for startup and shutdown events.

    Handles:
    - Start-up logging and uptime tracking
    - Flushing and shutting down the tracer provider
    """
    settings: Settings = app.state.settings

    logger.info(
        "application_starting",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        burn_iterations=settings.burn_iterations,
        payload_length=settings.payload_length,
    )
    app.state.started_at = time.monotonic()

    logger.info("application_started", host=settings.host, port=settings.port)

    try:
        yield
    finally:
        logger.info("application_shutting_down")

        tracer_provider = getattr(app.state, "tracer_provider", None)
        if tracer_provider is not None:
            logger.info("shutting_down_tracing")
            tracer_provider.shutdown()

        logger.info("application_shutdown_complete")


# ============================================================================
# Exception Handlers
# ============================================================================

def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw input and context objects."""
    return [
        {key: value for key, value in error.items() if key not in ("input", "ctx", "url")}
        for error in exc.errors()
    ]


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reject invalid query or path parameters with 422 and the error list."""
    errors = jsonable_errors(exc)
    logger.warning("validation_error", method=request.method, path=request.url.path, errors=errors)
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": errors})


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render 404/405 and other HTTP errors as ``{"detail": ...}`` JSON."""
    logger.warning(
        "http_exception",
        method=request.method,
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def general_exception_handler(request: Request, exc: Exception):
    """Last resort: log with traceback, answer 500 without internals."""
    logger.error("unexpected_exception", method=request.method, path=request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


# ============================================================================
# Application Factory
# ============================================================================

def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: Settings to build with (process-wide settings when omitted)

    Returns:
        Configured application
    """
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_logs=settings.json_logs,
        service_name=settings.app_name,
        environment=settings.environment,
    )

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Synthetic CPU load target. Each request to /test burns a fixed "
            "amount of CPU and returns a deterministic digit payload."
        ),
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.started_at = time.monotonic()
    app.state.tracer_provider = None

    http_metrics, _ = setup_metrics()

    # Request Logging and Metrics Middleware
    app.add_middleware(
        RequestLoggingMiddleware,
        metrics=http_metrics if settings.metrics_enabled else None,
    )

    # OpenTelemetry Instrumentation
    if settings.tracing_enabled:
        logger.info("initializing_tracing", otlp_endpoint=settings.tracing_otlp_endpoint)
        app.state.tracer_provider = configure_tracing(
            service_name=settings.app_name,
            service_version=settings.app_version,
            otlp_endpoint=settings.tracing_otlp_endpoint,
            sampling_rate=settings.tracing_sample_rate,
        )
        FastAPIInstrumentor.instrument_app(app, tracer_provider=app.state.tracer_provider)

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    # ========================================================================
    # Health Endpoint
    # ========================================================================

    @app.get("/health", tags=["Health"], response_model=ServiceInfo)
    async def health_check(request: Request) -> ServiceInfo:
        """
        Health check endpoint.

        The service has no dependencies, so a responding process is a
        healthy one.
        """
        return ServiceInfo(
            service_name=settings.app_name,
            version=settings.app_version,
            status=HealthStatus.HEALTHY,
            uptime_seconds=max(0.0, time.monotonic() - request.app.state.started_at),
            environment=settings.environment,
        )

    # ========================================================================
    # Metrics Endpoint
    # ========================================================================

    if settings.metrics_enabled:
        metrics_handler = get_metrics_handler()

        async def metrics() -> Response:
            """Prometheus metrics endpoint."""
            return Response(content=metrics_handler(), media_type=CONTENT_TYPE_LATEST)

        app.add_api_route(
            settings.metrics_endpoint,
            metrics,
            methods=["GET"],
            tags=["Monitoring"],
            include_in_schema=False,
        )

    # ========================================================================
    # API Router Registration
    # ========================================================================

    app.include_router(load.router)

    if settings.diagnostics_enabled:
        app.include_router(diagnostics.router, prefix=settings.diagnostics_prefix)

    return app


# ============================================================================
# Application Entry Point
# ============================================================================

def bind_socket(host: str, port: int) -> socket.socket:
    """
    Bind the listening socket.

    Raises:
        OSError: When the address cannot be bound
    """
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
    except OSError:
        sock.close()
        raise
    sock.set_inheritable(True)
    return sock


def run() -> None:
    """
    Serve the application with Uvicorn.

    Failing to bind the configured address is fatal: it is logged and the
    process exits with status 1.
    """
    settings: Settings = app.state.settings

    logger.info(
        "starting_uvicorn_server",
        host=settings.host,
        port=settings.port,
        version=__version__,
    )

    try:
        sock = bind_socket(settings.host, settings.port)
    except OSError as e:
        logger.critical("server_start_failed", host=settings.host, port=settings.port, error=str(e))
        sys.exit(1)

    config = uvicorn.Config(
        app,
        log_level=settings.log_level.lower(),
        log_config=None,
        access_log=False,
    )
    uvicorn.Server(config).run(sockets=[sock])


app = create_app()


if __name__ == "__main__":
    run()

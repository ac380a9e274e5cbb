"""
Main FastAPI application entry point.

This module sets up the FastAPI app with routes, exception handlers and
lifecycle events.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CollectorRegistry

from .api import admin_router, cron_router, healthz_router, metrics_router
from .config import Settings, get_settings
from .core.client import get_convert_message_client
from .core.database import init_database
from .core.exceptions import CollectLogsException
from .core.metrics import MetricsCollector
from .core.transformer import get_message_transformer


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structured logging for the application."""
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # SQL echo goes through its own logger when enabled
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def create_lifespan_handler(settings: Settings) -> Any:
    """Create a lifespan handler with access to settings."""
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """
        FastAPI lifespan context manager.

        Ensures the tables exist, wires the message transformer and closes
        the remote client's HTTP session at shutdown.
        """
        logger = structlog.get_logger(__name__)
        logger.info("Starting CollectLogs service", version=app.version)

        init_database()

        metrics_collector = MetricsCollector(registry=CollectorRegistry())
        app.state.metrics = metrics_collector

        transformer = get_message_transformer()
        transformer.metrics = metrics_collector
        app.state.transformer = transformer

        try:
            logger.info(
                "CollectLogs service started successfully",
                remote_url=settings.remote.convert_message_url,
            )
            yield
        finally:
            logger.info("Shutting down CollectLogs service")
            await get_convert_message_client().stop()
            logger.info("CollectLogs service shutdown complete")

    return lifespan


async def collectlogs_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle custom CollectLogs exceptions."""
    assert isinstance(exc, CollectLogsException)
    logger = structlog.get_logger(__name__)
    logger.error(
        "CollectLogs exception occurred",
        error=str(exc),
        status_code=exc.status_code,
        path=request.url.path,
        method=request.method,
    )

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": str(exc),
            "details": exc.details,
        },
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger = structlog.get_logger(__name__)
    logger.error(
        "Unexpected exception occurred",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred",
        },
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function ensures all configuration is applied
    whether running via uvicorn or direct execution.
    """
    settings = get_settings()

    configure_logging(settings.log_level)

    app = FastAPI(
        title="CollectLogs",
        description="Module settings and remote message convert rules",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=create_lifespan_handler(settings),
    )

    app.add_exception_handler(CollectLogsException, collectlogs_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(cron_router, tags=["cron"])
    app.include_router(admin_router, tags=["admin"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(healthz_router, tags=["health"])

    @app.get("/", include_in_schema=False)
    async def root() -> Dict[str, str]:
        """Root endpoint with service information."""
        return {
            "service": "CollectLogs",
            "version": app.version,
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "collectlogs.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )

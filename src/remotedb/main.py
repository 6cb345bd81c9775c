"""
RemoteDB application factory.

Wires configuration, structured logging, metrics, error rendering and the
routers into one FastAPI app. Run with ``python -m src.remotedb.main`` or
point uvicorn at ``src.remotedb.main:app``.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.remotedb import __version__
from src.remotedb.api import admin_router, healthz_router, metrics_router, query_router
from src.remotedb.config import Settings, get_settings
from src.remotedb.core.exceptions import ConfigurationError, RemoteDbException
from src.remotedb.core.metrics import MetricsCollector

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str = "INFO", debug: bool = False) -> None:
    """
    Route structlog through stdlib logging.

    Debug mode renders colored key-value lines; otherwise one JSON object
    per event.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", level=level)

    # The MySQL driver is chatty at DEBUG
    logging.getLogger("mysql.connector").setLevel(max(level, logging.WARNING))

    renderer = structlog.dev.ConsoleRenderer() if debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the process-wide metrics collector and report missing keys."""
    app.state.metrics = MetricsCollector()

    try:
        settings = get_settings()
    except ConfigurationError:
        logger.error("RemoteDB gateway starting with invalid configuration; requests will fail until it is fixed")
    else:
        logger.info(
            "RemoteDB gateway starting",
            version=__version__,
            database_host=settings.database.host,
            database_port=settings.database.port,
        )
        if not settings.security.api_key:
            logger.warning("API key not configured; query requests will fail until it is set")
        if not settings.security.admin_api_key:
            logger.info("Admin API key not configured; privileged access disabled")

    yield

    logger.info("RemoteDB gateway stopped")


async def remotedb_exception_handler(request: Request, exc: RemoteDbException) -> JSONResponse:
    """Render gateway failures as ``{"query_status": "ERROR", "response": ...}``."""
    log = logger.warning if exc.status_code >= 500 else logger.info
    log(
        "Request rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=str(exc),
    )

    headers: Dict[str, str] = {}
    retry_after = exc.details.get("retry_after")
    if exc.status_code == 429 and retry_after:
        headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content={"query_status": "ERROR", "response": str(exc)},
        headers=headers,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: never leak internals to the client."""
    logger.error(
        "Unhandled exception",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"query_status": "ERROR", "response": "Internal server error."},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    Without ``settings`` the process-wide ones are used. Invalid
    configuration does not stop the app from starting: logging falls back
    to defaults and each request answers with a configuration error.
    """
    if settings is None:
        try:
            settings = get_settings()
        except ConfigurationError:
            settings = None

    if settings is not None:
        configure_logging(settings.log_level, settings.debug)
    else:
        configure_logging()

    application = FastAPI(
        title="RemoteDB",
        description="Remote SQL gateway with API keys, rate limiting and query logging",
        version=__version__,
        lifespan=lifespan,
    )

    # Browser clients call the endpoint directly
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    application.add_exception_handler(RemoteDbException, remotedb_exception_handler)
    application.add_exception_handler(Exception, unhandled_exception_handler)

    application.include_router(query_router, prefix="/api", tags=["query"])
    application.include_router(admin_router, tags=["admin"])
    application.include_router(healthz_router, tags=["health"])
    application.include_router(metrics_router, tags=["metrics"])

    @application.get("/", include_in_schema=False)
    async def service_info() -> Dict[str, Any]:
        return {
            "service": "RemoteDB",
            "version": __version__,
            "endpoint": "/api/remotedb?apikey=KEY&keyspace=DATABASE&query=SQL",
            "docs": "/docs",
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    try:
        _settings = get_settings()
        _host, _port, _log_level, _reload = _settings.host, _settings.port, _settings.log_level, _settings.debug
    except ConfigurationError:
        _host = Settings.model_fields["host"].default
        _port = Settings.model_fields["port"].default
        _log_level, _reload = "INFO", False

    uvicorn.run(
        "src.remotedb.main:app",
        host=_host,
        port=_port,
        log_level=_log_level.lower(),
        reload=_reload,
    )

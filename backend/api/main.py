"""
CertReload API Main Application.

FastAPI admin application with error handling and lifecycle management
of the reloadable TLS endpoint.
Requires Python 3.11+.
"""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.dependencies import (
    get_reload_service,
    get_tls_endpoint,
    get_tls_server,
    set_reload_service,
    set_tls_endpoint,
    set_tls_server,
)
from tlshost.endpoint import CertificateLoadError, TLSEndpoint
from tlshost.server import start_tls_server
from utils.config import get_settings
from utils.logger import configure_logging, get_logger
from watcher.service import start_watching_and_reloading


# Initialize logging
configure_logging()
logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan manager.

    Loads the TLS endpoint, serves TLS from it and starts live
    certificate reload.
    """
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    set_tls_endpoint(None)
    set_tls_server(None)
    set_reload_service(None)

    if settings.tls.is_configured:
        endpoint = TLSEndpoint.from_settings(settings.tls)
        try:
            endpoint.init()
        except CertificateLoadError as e:
            # Continue without TLS for graceful degradation
            logger.error("tls_initialization_failed", error=str(e))
        set_tls_endpoint(endpoint)

        if endpoint.is_initialized and settings.server.enabled:
            try:
                set_tls_server(
                    await start_tls_server(
                        endpoint, settings.server.host, settings.server.port
                    )
                )
            except OSError as e:
                logger.error(
                    "tls_server_start_failed",
                    host=settings.server.host,
                    port=settings.server.port,
                    error=str(e),
                )

        if endpoint.is_initialized and settings.watcher.enabled:
            set_reload_service(
                start_watching_and_reloading(
                    endpoint, settle_delay_ms=settings.watcher.settle_delay_ms
                )
            )
    else:
        logger.warning("tls_not_configured", setting="TLS_CERTIFICATE_FILE")

    yield

    # Cleanup
    logger.info("shutting_down_application")
    service = get_reload_service()
    if service:
        service.stop()

    server = get_tls_server()
    if server:
        server.close()
        await server.wait_closed()


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        Configured FastAPI instance
    """
    settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        description="Live TLS certificate reload",
        version=settings.app_version,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # CORS middleware
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global exception handler
    @application.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.exception(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
        )
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": str(exc) if settings.is_development else "An unexpected error occurred",
            },
        )

    # Health check endpoint
    @application.get("/health")
    async def health_check() -> dict[str, Any]:
        """Health check endpoint."""
        endpoint = get_tls_endpoint()
        service = get_reload_service()
        return {
            "status": "healthy",
            "version": settings.app_version,
            "tls": "loaded" if endpoint and endpoint.is_initialized else "unavailable",
            "tls_server": "listening" if get_tls_server() else "stopped",
            "live_reload": "running" if service and service.is_running else "stopped",
        }

    # Import and include routers here to avoid circular imports
    from api.routes import tls

    application.include_router(tls.router, prefix="/tls", tags=["TLS"])

    return application


# Create the application instance
app = create_app()

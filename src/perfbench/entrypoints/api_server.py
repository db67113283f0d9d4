"""FastAPI application factory for the echo server.

This module provides the echo server application with error handlers,
a health endpoint and the echo routes.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from perfbench import __version__
from perfbench.adapters.config.settings import ServerSettings, get_settings
from perfbench.adapters.inbound.echo_adapter import router as echo_router
from perfbench.adapters.inbound.request_models import HealthResponse
from perfbench.domain.errors import HarnessError, NotFoundError, ProtocolError


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager (startup/shutdown logging only)."""
    logger = structlog.get_logger(__name__)
    logger.info("echo_server_starting")
    yield
    logger.info("echo_server_stopped")


def _format_error_response(status_code: int, error_type: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"type": error_type, "message": message}},
    )


def _get_harness_error_details(exc: HarnessError) -> tuple[int, str]:
    """Get HTTP status code and error type for HarnessError subclasses."""
    if isinstance(exc, ProtocolError):
        return status.HTTP_400_BAD_REQUEST, "bad_request"
    elif isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND, "not_found_error"
    else:
        return status.HTTP_500_INTERNAL_SERVER_ERROR, "api_error"


def _register_error_handlers(app: FastAPI):
    """Register error handlers for exceptions.

    Args:
        app: FastAPI application
    """
    logger = structlog.get_logger(__name__)

    @app.exception_handler(HarnessError)
    async def harness_error_handler(request: Request, exc: HarnessError):
        """Reject the request; the server keeps running."""
        status_code, error_type = _get_harness_error_details(exc)
        logger.warning(
            "request_rejected",
            path=request.url.path,
            error_type=exc.__class__.__name__,
            http_status=status_code,
            message=str(exc),
        )
        return _format_error_response(status_code, error_type, str(exc))

    @app.exception_handler(Exception)
    async def general_error_handler(request: Request, exc: Exception):
        """Handle unexpected errors."""
        logger.error(
            "unexpected_error",
            path=request.url.path,
            error_type=type(exc).__name__,
            message=str(exc),
            exc_info=True,
        )
        return _format_error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "api_error",
            "An internal error occurred",
        )


def _register_health_endpoints(app: FastAPI):
    @app.get("/health", response_model=HealthResponse)
    async def health():
        """Liveness probe used while waiting for the server to come up."""
        return HealthResponse()


def create_app(settings: ServerSettings | None = None) -> FastAPI:
    """Create and configure the echo server application.

    Args:
        settings: Server settings (default: from environment)

    Returns:
        Configured FastAPI application instance.
    """
    settings = settings or get_settings().server

    logger = structlog.get_logger(__name__)
    logger.debug("creating_echo_app", version=__version__)

    app = FastAPI(
        title="perfbench echo server",
        description="No-op, WebSocket echo and upload endpoints for network benchmarks",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.server_settings = settings

    _register_error_handlers(app)
    _register_health_endpoints(app)
    app.include_router(echo_router)

    return app

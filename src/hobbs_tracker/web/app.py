"""
FastAPI application for the Hobbs Tracker dashboard.

PURPOSE: Main application factory and server runner.
AI CONTEXT: Creates app with all routes and the error-kind handler registered.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from ..__version__ import __version__
from ..config import Config
from ..errors import TrackerError
from .routes import router

__all__ = ["create_app", "run_dashboard", "tracker_error_handler"]

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:  # noqa: ARG001
    """
    Manage application lifecycle with startup/shutdown hooks.

    Args:
        app: The FastAPI application instance (provided by FastAPI).

    Yields:
        None. Control returns to FastAPI to handle requests.
    """
    logger.info("Hobbs Tracker dashboard starting (v%s)", __version__)
    yield
    logger.info("Hobbs Tracker dashboard shutting down")


async def tracker_error_handler(request: Request, exc: Exception) -> JSONResponse:  # noqa: ARG001
    """
    Answer a TrackerError raised outside the service layer.

    Identity resolution (get_actor) and the chart route raise instead of
    returning a ServiceResult; this maps the error kind to its status.

    Returns:
        JSONResponse shaped like a failed ServiceResult.
    """
    if not isinstance(exc, TrackerError):  # pragma: no cover - registered for TrackerError only
        raise exc
    return JSONResponse(
        status_code=exc.http_status,
        content={
            "success": False,
            "message": "Request failed",
            "error": exc.message,
            "error_kind": exc.kind,
        },
    )


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI dashboard application.

    Business context: The app serves the owner dashboard and the JSON API
    behind an authenticating reverse proxy.

    Returns:
        Configured FastAPI application instance with:
        - All dashboard routes registered (/, /charts/*, /api/*)
        - TrackerError mapped to its HTTP status
        - OpenAPI documentation available at /docs

    Example:
        >>> from fastapi.testclient import TestClient
        >>> client = TestClient(create_app())
        >>> client.get('/api/overview', headers={'X-User-Id': 'user-1'}).status_code
        200
    """
    app = FastAPI(
        title="Hobbs Tracker",
        description="Fleet flight-time tracking for aircraft owners",
        version=__version__,
        lifespan=lifespan,
    )

    app.include_router(router)
    app.add_exception_handler(TrackerError, tracker_error_handler)

    return app


def run_dashboard(
    host: str = Config.DEFAULT_HOST,
    port: int = Config.DEFAULT_PORT,
    reload: bool = False,
    log_level: str = "info",
) -> None:
    """
    Launch the Hobbs Tracker web dashboard server.

    Starts a uvicorn ASGI server hosting the FastAPI application.

    Args:
        host: Network interface to bind the server to. Use '127.0.0.1'
            for local-only access (default) or '0.0.0.0' behind a proxy.
        port: TCP port number for the HTTP server. Default 8000.
        reload: Enable auto-reload on code changes for development.
        log_level: Uvicorn logging verbosity.

    Returns:
        None. This function blocks until the server is stopped (Ctrl+C).

    Raises:
        OSError: If the port is already in use or host is invalid.
    """
    uvicorn.run(
        "hobbs_tracker.web.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# For direct execution
if __name__ == "__main__":
    run_dashboard()

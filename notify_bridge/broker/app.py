"""
Application Factory - Creates and configures the FastAPI app.

Each call creates a fresh app wired to one BrokerController; the
lifespan hooks drive the controller's startup and shutdown.
"""

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from .middleware import CORSMiddleware, ErrorMiddleware, LoggingMiddleware
from .routes import router

if TYPE_CHECKING:
    from .controller import BrokerController

__all__ = ["create_app"]

logger = structlog.get_logger(__name__)


def create_app(controller: "BrokerController") -> FastAPI:
    """Create the broker's FastAPI application.

    Args:
        controller: Owner of hub, connection lifecycle and idle timer

    Returns:
        Configured FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await controller.startup()
        try:
            yield
        finally:
            await controller.shutdown("server_exit")

    app = FastAPI(
        title="Claude Notify Bridge",
        description="Fans out Claude Code hook events to notification listeners",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        # Unknown paths and wrong methods are both "not found"
        if exc.status_code in (404, 405):
            return JSONResponse(status_code=404, content={"error": "Not found"})
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})

    # Add middleware (order matters - last added runs first)
    app.add_middleware(ErrorMiddleware)
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CORSMiddleware)

    app.include_router(router)

    app.state.controller = controller

    return app

"""
Middleware - Request processing for the HTTP surface.

Provides:
- Open CORS (any origin) with 204 preflight replies
- Request logging
- Error handling
"""

import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

__all__ = ["CORSMiddleware", "ErrorMiddleware", "LoggingMiddleware"]

logger = structlog.get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class CORSMiddleware(BaseHTTPMiddleware):
    """Adds permissive CORS headers and answers every OPTIONS with 204."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)

        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs request/response details.

    Excludes health checks from verbose logging.
    """

    QUIET_PATHS = {"/health"}

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = (time.monotonic() - start) * 1000

        if request.url.path not in self.QUIET_PATHS:
            logger.debug(
                "request",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

        return response


class ErrorMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions and returns JSON errors.

    A failing request never takes the broker down.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            logger.exception(
                "unhandled_error",
                method=request.method,
                path=request.url.path,
                error=str(e),
            )
            return JSONResponse(
                status_code=500,
                content={"error": "internal_server_error"},
            )

"""Structured error response middleware."""
from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ..services.stores import StorageError
from .correlation import get_correlation_id

log = structlog.get_logger()


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Renders exceptions that escape the routes as structured 500 responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            correlation_id = get_correlation_id()
            log.error(
                "unhandled.exception",
                error=str(exc),
                error_type=exc.__class__.__name__,
                path=request.url.path,
                exc_info=True,
            )
            if isinstance(exc, StorageError):
                error, message = "StorageError", "The secret store is unavailable"
            else:
                error, message = "InternalServerError", "An unexpected error occurred"
            return JSONResponse(
                status_code=500,
                content={
                    "error": error,
                    "message": message,
                    "correlation_id": correlation_id,
                    "path": str(request.url.path),
                },
            )

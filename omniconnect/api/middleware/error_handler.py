"""
Global error handling middleware with channel-aware logging.

Unhandled exceptions become structured JSON 500 responses; internal details
are only included in development.
"""

import time
import traceback
from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from omniconnect.core.config.settings import settings
from omniconnect.core.logging.logger import get_logger


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catches unhandled exceptions and answers with a structured error body."""

    async def dispatch(self, request: Request, call_next) -> Response:
        try:
            return await call_next(request)

        except HTTPException as http_exc:
            get_logger(__name__).warning(
                f"HTTP {http_exc.status_code} - {request.method} {request.url.path} - "
                f"Detail: {http_exc.detail}"
            )
            raise

        except Exception as exc:
            return self._handle_unexpected_exception(request, exc)

    def _handle_unexpected_exception(self, request: Request, exc: Exception) -> JSONResponse:
        get_logger(__name__).error(
            f"Unhandled exception in {request.method} {request.url.path}: {exc}",
            exc_info=True,
        )
        if self._is_webhook_endpoint(request.url.path):
            return self._webhook_error_response(exc)
        return self._api_error_response(exc)

    def _is_webhook_endpoint(self, path: str) -> bool:
        return path.startswith("/webhooks/")

    def _webhook_error_response(self, exc: Exception) -> JSONResponse:
        """Providers only look at the status code; keep the body minimal."""
        error_response: dict[str, Any] = {
            "success": False,
            "message": "Webhook processing failed",
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
            }
        return JSONResponse(status_code=500, content=error_response)

    def _api_error_response(self, exc: Exception) -> JSONResponse:
        error_response: dict[str, Any] = {
            "detail": "Internal server error",
            "type": "internal_error",
            "timestamp": time.time(),
        }
        if settings.is_development:
            error_response["debug"] = {
                "exception_type": type(exc).__name__,
                "exception_message": str(exc),
                "traceback": traceback.format_exc().split("\n"),
            }
        return JSONResponse(status_code=500, content=error_response)

"""FastAPI middleware for the signing-authority service.

Middleware stack (applied bottom-up):
    1. RequestContextMiddleware — request_id/method/path on every log entry,
       X-Request-ID echoed, one `request.completed` entry per request
    2. ErrorHandlerMiddleware — domain exceptions -> structured JSON errors
    3. CORSMiddleware — exchange clients call the signing service from browsers

Error bodies are always `{"error": <code>, "message": <text>}`.
"""

from __future__ import annotations

import time
import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from sticker_exchange.domain.exceptions import (
    ExchangeError,
    SigningConfigurationError,
    SigningError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Most specific class wins; anything else derived from ExchangeError is a 400.
ERROR_STATUS: dict[type[ExchangeError], int] = {
    SigningConfigurationError: 500,
    SigningError: 502,
    ExchangeError: 400,
}

# Their messages are replaced with a generic one in the response body.
CONCEALED = (SigningConfigurationError,)


def status_for(exc: ExchangeError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


def error_body(code: str, message: str) -> dict[str, str]:
    return {"error": code, "message": message}


# ---------------------------------------------------------------------------
# 1. Request Context Middleware
# ---------------------------------------------------------------------------
class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind request context for log correlation and log each request once."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request.completed",
            status=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except ExchangeError as exc:
            status = status_for(exc)
            log = logger.error if status >= 500 else logger.warning
            log("request.failed", error=exc.message, code=exc.code, status=status)
            message = "Internal Server Error" if isinstance(exc, CONCEALED) else exc.message
            return JSONResponse(status_code=status, content=error_body(exc.code, message))
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
            )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are a client error (400), not FastAPI's default 422."""
    logger.warning("request.invalid", errors=len(exc.errors()))
    return JSONResponse(
        status_code=400,
        content=error_body("INVALID_REQUEST", "Missing payload or userDid"),
    )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Middleware is applied bottom-up, so the last added middleware runs first.
    """
    app.add_exception_handler(RequestValidationError, validation_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.add_middleware(ErrorHandlerMiddleware)

    # Outermost, so error responses are logged and tagged too.
    app.add_middleware(RequestContextMiddleware)

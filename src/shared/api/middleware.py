"""
Shared API Middleware
======================

Common middleware and exception handlers for the FastAPI application.
"""

import time
import uuid
from datetime import datetime, timezone
from typing import Callable, List

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from config import settings
from core import ApplicationException, ValidationException
from shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SLOW_REQUEST_SECONDS = 1.0
UNMATCHED_PATH = "<unmatched>"


def _correlation_id(request: Request) -> str:
    return getattr(request.state, "correlation_id", "unknown")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Adds correlation ID to requests for tracing.

    Correlation IDs link every log line written while serving a request.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Get existing correlation ID or generate new one
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state for access in endpoints
        request.state.correlation_id = correlation_id

        # Add to response header
        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    """
    Records request count and duration in the app's MetricsRegistry.

    The registry is read from ``app.state.metrics``; requests are labelled
    with the route template so path parameters don't explode cardinality.
    Requests that match no route share the ``<unmatched>`` label.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        registry = getattr(request.app.state, "metrics", None)
        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            response_time = time.perf_counter() - start_time
            if registry is not None:
                route = request.scope.get("route")
                labels = {
                    "method": request.method,
                    "path": getattr(route, "path", UNMATCHED_PATH),
                    "status_code": str(status_code),
                }
                registry.http_requests_total.inc(**labels)
                registry.http_request_duration.observe(response_time, **labels)

        response.headers["X-Response-Time"] = f"{response_time:.3f}s"
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs all requests and responses.

    Requests slower than one second are logged as warnings.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        correlation_id = _correlation_id(request)
        start_time = time.perf_counter()

        logger.info(
            "Request started",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "url": str(request.url),
                "client": request.client.host if request.client else None
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            response_time = time.perf_counter() - start_time
            logger.error(
                "Request failed",
                extra={
                    "correlation_id": correlation_id,
                    "method": request.method,
                    "url": str(request.url),
                    "error": str(e),
                    "response_time_ms": int(response_time * 1000)
                }
            )
            raise

        response_time = time.perf_counter() - start_time
        context = {
            "correlation_id": correlation_id,
            "method": request.method,
            "url": str(request.url),
            "status_code": response.status_code,
            "response_time_ms": int(response_time * 1000)
        }
        if response_time > SLOW_REQUEST_SECONDS:
            logger.warning("Slow request", extra=context)
        else:
            logger.info("Request completed", extra=context)

        return response


# ========== Exception Handlers ==========

def _error_body(request: Request, message: str, errors: List[str] = None, details: dict = None) -> dict:
    body = {"message": message}
    if errors:
        body["errors"] = errors
    if details:
        body["details"] = details
    body["correlation_id"] = _correlation_id(request)
    return body


async def application_exception_handler(request: Request, exc: ApplicationException) -> JSONResponse:
    """Map application exceptions to their HTTP status with a uniform body."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "Request rejected",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": exc.message,
            "status_code": exc.status_code
        }
    )

    errors = exc.errors if isinstance(exc, ValidationException) else None
    headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(request, exc.message, errors, exc.details),
        headers=headers
    )


def _field_message(error: dict) -> str:
    location = [str(part) for part in error.get("loc", ()) if part != "body"]
    field = ".".join(location)
    return f"{field}: {error.get('msg')}" if field else str(error.get("msg"))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures as 400 with one message per field."""
    errors = [_field_message(error) for error in exc.errors()]
    logger.warning(
        "Request validation failed",
        extra={
            "correlation_id": _correlation_id(request),
            "path": request.url.path,
            "errors": errors
        }
    )
    return JSONResponse(
        status_code=400,
        content=_error_body(request, "Validation error", errors)
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Global exception handler for unhandled exceptions.

    Returns consistent error responses for all exceptions.
    """
    correlation_id = _correlation_id(request)

    logger.error(
        "Unhandled exception",
        extra={
            "correlation_id": correlation_id,
            "path": request.url.path,
            "method": request.method,
            "error_type": type(exc).__name__,
            "error_message": str(exc)
        },
        exc_info=exc
    )

    body = {
        "message": "Internal server error",
        "correlation_id": correlation_id,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    # Don't expose internal details outside development
    if settings.environment == "development":
        body["debug_info"] = str(exc)

    return JSONResponse(status_code=500, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ApplicationException, application_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

"""
Error Handler Middleware

Centralized error handling for the HTTP surface of the chat service:
- Structured error responses
- Error logging with context
- Error categorization
"""

import logging
import traceback
from typing import Callable
from datetime import datetime, timezone
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from redis.exceptions import RedisError

from app.core.exceptions import AppError, ErrorCategory

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


async def error_handler_middleware(request: Request, call_next: Callable) -> Response:
    """
    Global error handling middleware.

    Catches all unhandled exceptions and returns structured error responses.
    """
    try:
        return await call_next(request)

    except AppError as e:
        return handle_app_error(e, request)

    except SQLAlchemyError as e:
        return handle_database_error(e, request)

    except RedisError as e:
        return handle_redis_error(e, request)

    except Exception as e:
        return handle_unexpected_error(e, request)


def handle_app_error(error: AppError, request: Request) -> JSONResponse:
    """Handle structured application errors"""

    log = logger.error if error.status_code >= 500 else logger.warning
    log(
        f"Application error: {error.category}",
        extra={
            "category": error.category,
            "error_message": error.message,
            "status_code": error.status_code,
            "path": request.url.path,
            "method": request.method,
            "details": error.details
        }
    )

    response_data = {
        "error": {
            "category": error.category,
            "message": error.message,
            "timestamp": _now(),
            "path": request.url.path,
            **error.details
        }
    }

    headers = {}
    if error.retry_after:
        headers["Retry-After"] = str(error.retry_after)

    return JSONResponse(
        status_code=error.status_code,
        content=response_data,
        headers=headers
    )


def handle_validation_error(error: RequestValidationError, request: Request) -> JSONResponse:
    """Handle FastAPI validation errors"""

    errors = []
    for err in error.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"]
        })

    logger.warning(
        f"Validation error on {request.url.path}",
        extra={"errors": errors, "method": request.method}
    )

    return JSONResponse(
        status_code=400,
        content={
            "error": {
                "category": ErrorCategory.VALIDATION,
                "message": "Request validation failed",
                "timestamp": _now(),
                "path": request.url.path,
                "validation_errors": errors
            }
        }
    )


def handle_database_error(error: SQLAlchemyError, request: Request) -> JSONResponse:
    """Handle database errors"""

    is_connection_error = isinstance(error, OperationalError)
    is_integrity_error = isinstance(error, IntegrityError)

    if is_connection_error:
        message = "Database connection failed. Please try again."
        retry_after = 30
    elif is_integrity_error:
        message = "Database constraint violation. Check your input data."
        retry_after = None
    else:
        message = "Database operation failed. Please try again."
        retry_after = 10

    logger.error(
        f"Database error: {type(error).__name__}",
        extra={
            "error": str(error),
            "path": request.url.path,
            "method": request.method,
        },
        exc_info=True
    )

    headers = {}
    if retry_after:
        headers["Retry-After"] = str(retry_after)

    return JSONResponse(
        status_code=503 if is_connection_error else 500,
        content={
            "error": {
                "category": ErrorCategory.DATABASE,
                "message": message,
                "timestamp": _now(),
                "path": request.url.path,
                "type": type(error).__name__
            }
        },
        headers=headers
    )


def handle_redis_error(error: Exception, request: Request) -> JSONResponse:
    """Handle Redis errors (message log backend)"""

    logger.error(
        f"Redis error: {type(error).__name__}",
        extra={
            "error": str(error),
            "path": request.url.path,
            "method": request.method
        },
        exc_info=True
    )

    return JSONResponse(
        status_code=503,
        content={
            "error": {
                "category": ErrorCategory.DATABASE,
                "message": "Message store temporarily unavailable. Please try again.",
                "timestamp": _now(),
                "path": request.url.path,
                "service": "redis"
            }
        },
        headers={"Retry-After": "30"}
    )


def handle_unexpected_error(error: Exception, request: Request) -> JSONResponse:
    """Handle unexpected errors"""

    tb = traceback.format_exc()

    logger.critical(
        f"Unexpected error: {type(error).__name__}",
        extra={
            "error": str(error),
            "traceback": tb,
            "path": request.url.path,
            "method": request.method
        },
        exc_info=True
    )

    # Don't expose internal details
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "category": ErrorCategory.INTERNAL,
                "message": "Server Error",
                "timestamp": _now(),
                "path": request.url.path,
            }
        }
    )


# Exception handlers for FastAPI
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """FastAPI exception handler for AppError"""
    return handle_app_error(exc, request)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """FastAPI exception handler for validation errors"""
    return handle_validation_error(exc, request)

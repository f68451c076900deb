# app/core/exceptions.py
"""
Custom exception hierarchy for the marketplace chat service.
All exceptions inherit from AppError so the HTTP layer can render them uniformly.

The room coordinator never raises these to chat clients: persistence problems
are degraded locally (see app.chat.coordinator).
"""

from typing import Optional


class ErrorCategory:
    """Error categories for structured error handling"""
    VALIDATION = "validation_error"
    DATABASE = "database_error"
    AUTHENTICATION = "authentication_error"
    PERMISSION = "permission_error"
    NOT_FOUND = "not_found_error"
    INTERNAL = "internal_error"


class AppError(Exception):
    """Base application error with structured information"""

    def __init__(
        self,
        message: str,
        category: str = ErrorCategory.INTERNAL,
        status_code: int = 500,
        details: Optional[dict] = None,
        retry_after: Optional[int] = None
    ):
        self.message = message
        self.category = category
        self.status_code = status_code
        self.details = details or {}
        self.retry_after = retry_after
        super().__init__(self.message)


class ValidationError(AppError):
    """Invalid arguments rejected at the boundary"""
    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(
            message=message,
            category=ErrorCategory.VALIDATION,
            status_code=400,
            details=details
        )


class AuthenticationError(AppError):
    """Missing or invalid credentials"""
    def __init__(self, message: str = "No token, authorization denied"):
        super().__init__(
            message=message,
            category=ErrorCategory.AUTHENTICATION,
            status_code=401
        )


class PermissionDeniedError(AppError):
    """Authenticated, but not allowed to touch the resource"""
    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.PERMISSION,
            status_code=403,
            details=details
        )


class NotFoundError(AppError):
    """Requested resource does not exist"""
    def __init__(self, resource: str, resource_id: str):
        super().__init__(
            message=f"{resource} not found",
            category=ErrorCategory.NOT_FOUND,
            status_code=404,
            details={"resource": resource, "id": resource_id}
        )


class PersistenceError(AppError):
    """A store (database, redis) failed to read or write"""
    def __init__(self, message: str, backend: str, details: Optional[dict] = None):
        super().__init__(
            message=message,
            category=ErrorCategory.DATABASE,
            status_code=503,
            details={"backend": backend, **(details or {})},
            retry_after=30
        )

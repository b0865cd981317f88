"""
HTTP-mapped errors raised by the studio routes and services.

Each subclass fixes an HTTP status and a default machine-readable code;
callers override the code where a route has a more specific reason, e.g.
``ConflictException(error_code="CLASS_HAS_ENROLLMENTS", ...)``.
"""

from typing import Any, Dict, Optional


class CustomException(Exception):
    code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[int] = None,
        error_code: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        self.message = message or type(self).message
        self.code = code or type(self).code
        self.error_code = error_code or type(self).error_code
        self.data: Dict[str, Any] = data or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Response body for the exception handler."""
        return {"error_code": self.error_code, "message": self.message, "data": self.data}

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code} {self.error_code}: {self.message})"


class BadRequestException(CustomException):
    code = 400
    error_code = "BAD_REQUEST"
    message = "Bad request"


class UnauthorizedException(CustomException):
    code = 401
    error_code = "UNAUTHORIZED"
    message = "Authentication required"


class ForbiddenException(CustomException):
    """Authenticated, but the role or ownership check failed."""

    code = 403
    error_code = "FORBIDDEN"
    message = "You do not have permission to perform this action"


class NotFoundException(CustomException):
    code = 404
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ConflictException(CustomException):
    """State conflict, e.g. deleting a class that still has enrollments."""

    code = 409
    error_code = "CONFLICT"
    message = "Resource conflict"


class ServiceUnavailableException(CustomException):
    """Transient failure; ``data["retryable"]`` tells the caller to try again."""

    code = 503
    error_code = "SERVICE_UNAVAILABLE"
    message = "Service temporarily unavailable"

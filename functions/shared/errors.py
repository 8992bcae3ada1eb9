"""
Standardized error responses for the API.
"""

from typing import Optional

from .response_utils import error_response


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self, origin: Optional[str] = None) -> dict:
        """Convert to API Gateway response format."""
        return error_response(
            self.status_code,
            self.code,
            self.message,
            details=self.details or None,
            origin=origin,
        )


class UnauthorizedError(APIError):
    """Raised when the bearer token is missing, malformed or expired."""

    def __init__(self, code: str = "unauthorized", message: str = "Missing or invalid authorization header"):
        super().__init__(code=code, message=message, status_code=401)


class InvalidRequestError(APIError):
    """Raised for general invalid request errors."""

    def __init__(self, message: str, code: str = "invalid_request", details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
        )


class MethodNotAllowedError(APIError):
    """Raised when an endpoint is called with the wrong HTTP method."""

    def __init__(self, method: str):
        super().__init__(
            code="method_not_allowed",
            message=f"Method {method or 'UNKNOWN'} not allowed",
            status_code=405,
        )


class InternalError(APIError):
    """Raised for internal server errors."""

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(
            code="internal_error",
            message=message,
            status_code=500,
        )

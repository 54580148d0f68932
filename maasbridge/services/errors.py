"""
Service layer exceptions.

MaasApiError is the only failure type that crosses a resource handler.
Everything else raised below it is normalized into one by
``services.error_handler``.
"""

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Symbolic codes carried by MaasApiError."""

    INVALID_PARAMETERS = "invalid_parameters"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RESOURCE_NOT_FOUND = "resource_not_found"
    VALIDATION_ERROR = "validation_error"
    REQUEST_ABORTED = "request_aborted"
    UNEXPECTED_ERROR = "unexpected_error"
    NETWORK_ERROR = "network_error"
    REQUEST_TIMEOUT = "request_timeout"
    MAAS_API_ERROR = "maas_api_error"


class MaasApiError(Exception):
    """Typed failure with an HTTP-like status and a symbolic code."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: ErrorCode | str = ErrorCode.UNEXPECTED_ERROR,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        result: dict[str, Any] = {
            "message": self.message,
            "status_code": self.status_code,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __repr__(self) -> str:
        return (
            f"MaasApiError({self.message!r}, status_code={self.status_code}, "
            f"error_code={self.error_code!r})"
        )


class RequestAbortedError(Exception):
    """The caller cancelled the request before it completed."""

    def __init__(self, message: str = "Request aborted by the client"):
        super().__init__(message)


class CacheError(Exception):
    """Cache operation failed. Never surfaced past the cache store."""

    pass

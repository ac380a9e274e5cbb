"""
Custom exceptions for the CollectLogs service.

Provides structured error handling with appropriate HTTP status codes
and error details for API responses and error reports.
"""

from typing import Any, Dict, Optional


class CollectLogsException(Exception):
    """Base exception for CollectLogs service."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str = "internal_error",
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class ConfigurationAccessError(CollectLogsException):
    """Raised when the host configuration facility cannot be read or written."""

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        super().__init__(
            message=message,
            status_code=503,
            error_code="configuration_error",
            details={"key": key} if key else None,
        )


class SynchronizationError(CollectLogsException):
    """Raised when fetching rules from the remote server fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=502,
            error_code="synchronization_error",
            details=details,
        )


class InvalidPatternError(CollectLogsException):
    """Raised when a stored convert rule cannot be compiled or applied."""

    def __init__(self, message: str, pattern: Optional[str] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="invalid_pattern",
            details={"pattern": pattern} if pattern is not None else None,
        )


class StorageError(CollectLogsException):
    """Raised when the local rule table cannot be read or mutated."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            message=message,
            status_code=500,
            error_code="storage_error",
            details=details,
        )


class AuthenticationError(CollectLogsException):
    """Raised when authentication fails."""

    def __init__(self, message: str = "Invalid or missing authentication token") -> None:
        super().__init__(
            message=message,
            status_code=401,
            error_code="authentication_error",
        )

"""
Error reporting collaborator.

Failures that must not propagate (rule synchronization) are described
and handed to a reporter instead of being raised.
"""

import traceback
from typing import Any, Dict, Optional, Protocol

import structlog

from .exceptions import CollectLogsException

logger = structlog.get_logger(__name__)


def describe_exception(exc: BaseException) -> Dict[str, Any]:
    """
    Build a structured description of a caught exception.

    Contains the exception type and message, the innermost frame the
    exception was raised from, the formatted stack trace, and the
    structured details of CollectLogs exceptions.
    """
    frames = traceback.extract_tb(exc.__traceback__)
    origin = frames[-1] if frames else None

    description: Dict[str, Any] = {
        "type": type(exc).__name__,
        "message": str(exc),
        "file": origin.filename if origin else None,
        "line": origin.lineno if origin else None,
        "trace": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }

    if isinstance(exc, CollectLogsException):
        description["error_code"] = exc.error_code
        description["details"] = exc.details

    cause = exc.__cause__
    if cause is not None:
        description["cause"] = {"type": type(cause).__name__, "message": str(cause)}

    return description


class ErrorReporter(Protocol):
    def log_fatal_error(self, description: Dict[str, Any]) -> None: ...


class LoggingErrorReporter:
    """Default reporter: writes the description through structlog."""

    def log_fatal_error(self, description: Dict[str, Any]) -> None:
        logger.error(
            "Error reported",
            error_type=description.get("type"),
            error=description.get("message"),
            file=description.get("file"),
            line=description.get("line"),
            details=description.get("details"),
            trace=description.get("trace"),
        )


# Global reporter instance
_error_reporter: Optional[ErrorReporter] = None


def get_error_reporter() -> ErrorReporter:
    """Get or create the global error reporter."""
    global _error_reporter

    if _error_reporter is None:
        _error_reporter = LoggingErrorReporter()

    return _error_reporter

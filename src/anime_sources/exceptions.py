"""Anime source custom exception hierarchy.

Provides specific exception types for the failure modes of outbound source
calls. The resilience layer uses the type of an error to decide whether it is
retried, whether it counts against a circuit breaker, and how it is reported.

Exception Hierarchy:
    SourceException (base)
    ├── SourceCallError
    ├── OperationAbortedError
    │   ├── SourceTimeoutError
    │   └── OperationCancelledError
    ├── CircuitOpenError
    ├── AdmissionRejectedError
    ├── CatalogError
    └── SourceConfigError
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Error classification used in logs and metric labels."""

    TRANSIENT = "transient"
    TIMEOUT = "timeout"
    CIRCUIT_OPEN = "circuit_open"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class SourceException(Exception):
    """Base exception for all anime source errors.

    All source-specific exceptions inherit from this class to allow
    catching them with a single except clause.
    """

    kind: ErrorKind = ErrorKind.TRANSIENT

    def __init__(self, message: str, context: Optional[dict] = None):
        """Initialize source exception.

        Args:
            message: Error message
            context: Optional context dictionary for debugging
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return string representation with context."""
        if self.context:
            context_str = "; ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class SourceCallError(SourceException):
    """Raised when a call to a source fails (network error, non-2xx status).

    Attributes:
        source: Name of the source that failed
        status_code: HTTP status code if available
        cause: The underlying exception
    """

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        status_code: Optional[int] = None,
        cause: Optional[Exception] = None,
        context: Optional[dict] = None,
    ):
        if context is None:
            context = {}
        if source:
            context["source"] = source
        if status_code:
            context["status_code"] = status_code
        super().__init__(message, context)
        self.source = source
        self.status_code = status_code
        self.cause = cause


class OperationAbortedError(SourceException):
    """Base exception for operations terminated before completion.

    Deadline expiry and caller cancellation both surface as subclasses of
    this error so callers can treat them identically.
    """

    pass


class SourceTimeoutError(OperationAbortedError):
    """Raised when an operation exceeds its deadline.

    Attributes:
        timeout: Configured timeout in seconds
        operation: The operation that timed out
    """

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        timeout: Optional[float] = None,
        operation: Optional[str] = None,
        context: Optional[dict] = None,
    ):
        """Initialize timeout error.

        Args:
            message: Error message
            timeout: Configured timeout value
            operation: The operation that timed out
            context: Additional context
        """
        if context is None:
            context = {}
        if timeout:
            context["timeout"] = timeout
        if operation:
            context["operation"] = operation
        super().__init__(message, context)
        self.timeout = timeout
        self.operation = operation


class OperationCancelledError(OperationAbortedError):
    """Raised when the caller cancels an operation.

    Attributes:
        reason: Reason passed to the cancellation token
    """

    kind = ErrorKind.CANCELLED

    def __init__(
        self,
        message: str = "Operation cancelled",
        reason: Optional[str] = None,
        context: Optional[dict] = None,
    ):
        if context is None:
            context = {}
        if reason:
            context["reason"] = reason
        super().__init__(message, context)
        self.reason = reason


class CircuitOpenError(SourceException):
    """Raised when a circuit breaker rejects a call without attempting it.

    Attributes:
        source: Source whose circuit is open
        retry_after: Seconds until the breaker allows a probe call
    """

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        message: str,
        source: Optional[str] = None,
        retry_after: Optional[float] = None,
        context: Optional[dict] = None,
    ):
        if context is None:
            context = {}
        if source:
            context["source"] = source
        if retry_after is not None:
            context["retry_after"] = round(retry_after, 3)
        super().__init__(message, context)
        self.source = source
        self.retry_after = retry_after


class AdmissionRejectedError(SourceException):
    """Raised when the admission queue is full or the queue wait expires.

    Attributes:
        queue_size: Number of waiters at rejection time
    """

    kind = ErrorKind.REJECTED

    def __init__(
        self,
        message: str,
        queue_size: Optional[int] = None,
        context: Optional[dict] = None,
    ):
        if context is None:
            context = {}
        if queue_size is not None:
            context["queue_size"] = queue_size
        super().__init__(message, context)
        self.queue_size = queue_size


class CatalogError(SourceException):
    """Raised when the metadata catalog request fails.

    Attributes:
        status_code: HTTP status code if available
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        context: Optional[dict] = None,
    ):
        if context is None:
            context = {}
        if status_code:
            context["status_code"] = status_code
        super().__init__(message, context)
        self.status_code = status_code


class SourceConfigError(SourceException):
    """Raised when source or settings configuration is invalid.

    Attributes:
        config_key: Configuration key that failed validation
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        context: Optional[dict] = None,
    ):
        if context is None:
            context = {}
        if config_key:
            context["config_key"] = config_key
        super().__init__(message, context)
        self.config_key = config_key


def classify_error(error: BaseException) -> ErrorKind:
    """Map an exception to its error kind.

    Args:
        error: Any exception raised by a source call

    Returns:
        ErrorKind for logging and metric labels
    """
    if isinstance(error, SourceException):
        return error.kind
    return ErrorKind.TRANSIENT


__all__ = [
    "ErrorKind",
    "SourceException",
    "SourceCallError",
    "OperationAbortedError",
    "SourceTimeoutError",
    "OperationCancelledError",
    "CircuitOpenError",
    "AdmissionRejectedError",
    "CatalogError",
    "SourceConfigError",
    "classify_error",
]

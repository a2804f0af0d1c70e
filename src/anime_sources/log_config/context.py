"""Logging context management with request IDs and hierarchical tracking."""

import contextlib
import contextvars
import secrets
import time
from dataclasses import dataclass, field
from typing import Any

import structlog


# Context variables for async propagation
_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_span_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "span_id", default=None
)
_parent_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "parent_id", default=None
)
_operation_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)

_BOUND_KEYS = ("request_id", "span_id", "parent_id", "operation")


def generate_id() -> str:
    """Generate a unique ID for request/span tracking.

    Returns:
        12-character hexadecimal ID
    """
    return secrets.token_hex(6)


@dataclass
class LoggingContext:
    """Logging context with request IDs and hierarchical tracking.

    A façade operation opens a root context (new ``request_id``); each source
    invocation below it opens a child span that inherits the request id. The
    ids are propagated across awaits via contextvars and bound into structlog
    so every log line of one logical request can be correlated.

    Example:
        ```python
        async def search(query):
            with LoggingContext(operation="search") as ctx:
                logger.info("search.start", query=query)

                with LoggingContext(operation="search:HiAnime"):
                    logger.debug("source.call")
        ```
    """

    request_id: str | None = None
    span_id: str | None = None
    parent_id: str | None = None
    operation: str | None = None

    _start_time: float = field(default_factory=time.monotonic)
    _tokens: list[tuple[contextvars.ContextVar, contextvars.Token]] = field(
        default_factory=list, init=False, repr=False
    )

    def __post_init__(self) -> None:
        """Initialize IDs if not provided."""
        if self.request_id is None:
            # Inherit from an enclosing request, otherwise this is a root context
            self.request_id = _request_id_var.get() or generate_id()

        if self.span_id is None:
            self.span_id = generate_id()

        if self.parent_id is None:
            self.parent_id = _span_id_var.get()

    def __enter__(self) -> "LoggingContext":
        """Enter context and bind to contextvars."""
        self._tokens = [
            (_request_id_var, _request_id_var.set(self.request_id)),
            (_span_id_var, _span_id_var.set(self.span_id)),
            (_parent_id_var, _parent_id_var.set(self.parent_id)),
            (_operation_var, _operation_var.set(self.operation)),
        ]
        structlog.contextvars.bind_contextvars(**self.to_log_dict())
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit context and restore the enclosing context."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens = []

        structlog.contextvars.unbind_contextvars(*_BOUND_KEYS)
        enclosing = get_current_context()
        if enclosing is not None:
            structlog.contextvars.bind_contextvars(**enclosing.to_log_dict())

    def to_log_dict(self) -> dict[str, Any]:
        """Convert context to dictionary for logging."""
        log_dict: dict[str, Any] = {
            "request_id": self.request_id,
            "span_id": self.span_id,
        }
        if self.parent_id:
            log_dict["parent_id"] = self.parent_id
        if self.operation:
            log_dict["operation"] = self.operation
        return log_dict

    def get_duration(self) -> float:
        """Get elapsed time since context creation in seconds."""
        return time.monotonic() - self._start_time


def get_current_context() -> LoggingContext | None:
    """Get current logging context from contextvars.

    Returns:
        Current LoggingContext if in a context, None otherwise
    """
    request_id = _request_id_var.get()
    if request_id is None:
        return None

    return LoggingContext(
        request_id=request_id,
        span_id=_span_id_var.get(),
        parent_id=_parent_id_var.get(),
        operation=_operation_var.get(),
    )


def clear_context() -> None:
    """Clear all logging context from contextvars.

    Useful for testing or explicit context cleanup.
    """
    for var in (_request_id_var, _span_id_var, _parent_id_var, _operation_var):
        var.set(None)

    with contextlib.suppress(KeyError):
        structlog.contextvars.unbind_contextvars(*_BOUND_KEYS)


__all__ = [
    "LoggingContext",
    "generate_id",
    "get_current_context",
    "clear_context",
]

"""Logging configuration package."""

from .context import LoggingContext, clear_context, generate_id, get_current_context
from .main import configure_logging, get_context_logger


__all__ = [
    "get_context_logger",
    "configure_logging",
    "LoggingContext",
    "generate_id",
    "get_current_context",
    "clear_context",
]

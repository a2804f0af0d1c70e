"""Source event type constants."""

from enum import Enum


class SourceEvents(str, Enum):
    """Event type constants for structured logging."""

    # Request events
    REQUEST_STARTED = "source.request.started"
    REQUEST_SUCCESS = "source.request.success"
    REQUEST_FAILED = "source.request.failed"
    REQUEST_RETRY = "source.request.retry"
    REQUEST_SLOW = "source.request.slow"

    # Fallback events
    FAILOVER = "source.failover"
    SOURCE_EXHAUSTED = "source.exhausted"
    SOURCE_EMPTY_RESULT = "source.empty_result"
    SOURCE_MARKED_UNAVAILABLE = "source.marked_unavailable"

    # Circuit breaker events
    CIRCUIT_OPENED = "source.circuit.opened"
    CIRCUIT_HALF_OPEN = "source.circuit.half_open"
    CIRCUIT_CLOSED = "source.circuit.closed"
    CIRCUIT_REJECTED = "source.circuit.rejected"

    # Health events
    HEALTH_CHECK_STARTED = "source.health.started"
    HEALTH_CHECK_COMPLETED = "source.health.completed"
    HEALTH_PROBE_FAILED = "source.health.probe_failed"

    # Admission events
    ADMISSION_QUEUED = "source.admission.queued"
    ADMISSION_REJECTED = "source.admission.rejected"

    # Aggregation and enrichment events
    SEARCH_ALL_COMPLETED = "source.search_all.completed"
    LOOKUP_TABLE_BUILT = "source.lookup_table.built"
    MATCH_FOUND = "source.match.found"
    MATCH_MISSED = "source.match.missed"


__all__ = ["SourceEvents"]

"""
Metric name constants for the anime source layer.

Provides standardized metric names so dashboards do not depend on string
literals scattered across the code.
"""


class SourceMetrics:
    """Metric name constants for source operations."""

    # Outbound call counters
    REQUESTS_TOTAL = "anime_sources.requests.total"
    REQUESTS_SUCCESS = "anime_sources.requests.success"
    REQUESTS_FAILURE = "anime_sources.requests.failure"
    REQUEST_RETRIES = "anime_sources.requests.retries"
    REQUESTS_SLOW = "anime_sources.requests.slow"
    REQUEST_DURATION_MS = "anime_sources.request.duration"

    # Fallback
    FAILOVER_TOTAL = "anime_sources.failover.total"
    FALLBACK_EXHAUSTED = "anime_sources.fallback.exhausted"

    # Circuit breaker
    CIRCUIT_OPENED = "anime_sources.circuit.opened"
    CIRCUIT_CLOSED = "anime_sources.circuit.closed"
    CIRCUIT_REJECTED = "anime_sources.circuit.rejected"

    # Health
    HEALTH_PROBES = "anime_sources.health.probes"
    HEALTH_LATENCY_MS = "anime_sources.health.latency"
    SOURCES_AVAILABLE = "anime_sources.sources.available"

    # Admission
    ADMISSION_IN_FLIGHT = "anime_sources.admission.in_flight"
    ADMISSION_REJECTED = "anime_sources.admission.rejected"
    ADMISSION_WAIT_MS = "anime_sources.admission.wait"


class MetricLabels:
    """Standard label names for metrics."""

    SOURCE = "source"
    OPERATION = "operation"
    ERROR_KIND = "error_kind"  # transient, timeout, circuit_open, cancelled, rejected
    STATUS = "status"  # online, offline, degraded


__all__ = ["SourceMetrics", "MetricLabels"]

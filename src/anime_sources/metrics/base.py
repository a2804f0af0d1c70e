"""
Abstract base class for metrics collection.

Every outbound source call, circuit transition and health probe is reported
through a MetricsCollector. The collector only observes: it never influences
routing or resilience decisions.
"""

from abc import ABC, abstractmethod


class MetricsCollector(ABC):
    """
    Abstract base class for metrics collection.

    Implementations must be safe to call from concurrently running tasks.
    """

    @abstractmethod
    def increment(
        self, metric: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        """
        Increment a counter metric.

        Args:
            metric: Metric name (e.g., 'anime_sources.requests.total')
            value: Amount to increment (default: 1)
            labels: Optional labels (e.g., {'source': 'HiAnime', 'result': 'success'})
        """

    @abstractmethod
    def histogram(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        """
        Record a histogram observation.

        Args:
            metric: Metric name (e.g., 'anime_sources.request.duration')
            value: Observed value (latencies are recorded in milliseconds)
            labels: Optional labels
        """

    @abstractmethod
    def gauge(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        """
        Adjust a gauge metric.

        Args:
            metric: Metric name (e.g., 'anime_sources.admission.in_flight')
            value: Positive to increase, negative to decrease
            labels: Optional labels
        """

    def timing(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        """Record a duration in milliseconds (alias of histogram)."""
        self.histogram(metric, value, labels)


class NoOpMetrics(MetricsCollector):
    """Default collector; every method does nothing."""

    def increment(
        self, metric: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        pass

    def histogram(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        pass

    def gauge(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        pass


__all__ = ["MetricsCollector", "NoOpMetrics"]

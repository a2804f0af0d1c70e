"""
Prometheus metrics collector implementation.

Exports source-layer metrics through the prometheus_client library.
"""

from typing import Any

from .base import MetricsCollector


class PrometheusMetrics(MetricsCollector):
    """
    Prometheus metrics collector.

    Creates Counter, Histogram and Gauge objects on first use and caches them
    by sanitized metric name. Label names are fixed by the first observation
    of each metric.

    Note: prometheus_client is an optional dependency. Install with:
        pip install anime-sources[prometheus]

    Example:
        >>> from anime_sources.metrics import PrometheusMetrics
        >>> metrics = PrometheusMetrics()
        >>> metrics.increment('anime_sources.requests.total', labels={'source': 'HiAnime'})
    """

    def __init__(self, registry: Any | None = None) -> None:
        """
        Initialize Prometheus metrics collector.

        Args:
            registry: Optional prometheus_client CollectorRegistry.
                If None, uses the default REGISTRY.
        """
        try:
            from prometheus_client import REGISTRY, Counter, Gauge, Histogram
        except ImportError as e:
            raise ImportError(
                "prometheus_client is required for PrometheusMetrics. "
                "Install with: pip install anime-sources[prometheus]"
            ) from e

        self._registry = registry or REGISTRY
        self._factories = {"counter": Counter, "histogram": Histogram, "gauge": Gauge}
        self._metrics: dict[tuple[str, str], Any] = {}

    @staticmethod
    def _sanitize_metric_name(metric: str) -> str:
        """Convert dots and dashes to underscores for Prometheus naming."""
        return metric.replace(".", "_").replace("-", "_")

    def _get(self, kind: str, metric: str, labels: dict[str, str]) -> Any:
        name = self._sanitize_metric_name(metric)
        key = (kind, name)
        if key not in self._metrics:
            self._metrics[key] = self._factories[kind](
                name,
                f"{kind.capitalize()} for {metric}",
                list(labels.keys()),
                registry=self._registry,
            )
        instrument = self._metrics[key]
        return instrument.labels(**labels) if labels else instrument

    def increment(
        self, metric: str, value: int = 1, labels: dict[str, str] | None = None
    ) -> None:
        self._get("counter", metric, labels or {}).inc(value)

    def histogram(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        self._get("histogram", metric, labels or {}).observe(value)

    def gauge(
        self, metric: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        """Adjust a gauge; positive values increment, negative decrement."""
        instrument = self._get("gauge", metric, labels or {})
        if value > 0:
            instrument.inc(value)
        elif value < 0:
            instrument.dec(abs(value))


__all__ = ["PrometheusMetrics"]

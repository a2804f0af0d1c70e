"""
Metrics collection module for anime sources.

Example:
    >>> from anime_sources.metrics import NoOpMetrics, PrometheusMetrics
    >>>
    >>> metrics = NoOpMetrics()  # default, zero overhead
    >>> metrics.increment('anime_sources.requests.total')
    >>>
    >>> metrics = PrometheusMetrics()
    >>> metrics.histogram('anime_sources.request.duration', 123.4, labels={'source': 'HiAnime'})
"""

from .base import MetricsCollector, NoOpMetrics
from .constants import MetricLabels, SourceMetrics
from .prometheus import PrometheusMetrics

__all__ = [
    "MetricsCollector",
    "NoOpMetrics",
    "PrometheusMetrics",
    "SourceMetrics",
    "MetricLabels",
]

"""Unit tests for metrics collectors."""

import pytest

from anime_sources.metrics import MetricLabels, NoOpMetrics, PrometheusMetrics, SourceMetrics


class TestNoOpMetrics:
    """Test the default collector."""

    def test_all_methods_accept_observations(self):
        metrics = NoOpMetrics()
        metrics.increment(SourceMetrics.REQUESTS_TOTAL, labels={MetricLabels.SOURCE: "HiAnime"})
        metrics.histogram(SourceMetrics.REQUEST_DURATION_MS, 12.5)
        metrics.gauge(SourceMetrics.ADMISSION_IN_FLIGHT, 1)
        metrics.timing(SourceMetrics.HEALTH_LATENCY_MS, 80.0)


class TestPrometheusMetrics:
    """Test the prometheus_client backed collector."""

    @pytest.fixture
    def registry(self):
        prometheus_client = pytest.importorskip("prometheus_client")
        return prometheus_client.CollectorRegistry()

    def test_sanitize_metric_name(self):
        assert PrometheusMetrics._sanitize_metric_name("anime_sources.request-duration") == (
            "anime_sources_request_duration"
        )

    def test_counter_with_labels(self, registry):
        metrics = PrometheusMetrics(registry)
        labels = {MetricLabels.SOURCE: "HiAnime", MetricLabels.OPERATION: "search"}

        metrics.increment(SourceMetrics.REQUESTS_TOTAL, labels=labels)
        metrics.increment(SourceMetrics.REQUESTS_TOTAL, 2, labels=labels)

        assert registry.get_sample_value("anime_sources_requests_total", labels) == 3

    def test_histogram_and_timing(self, registry):
        metrics = PrometheusMetrics(registry)

        metrics.histogram(SourceMetrics.REQUEST_DURATION_MS, 120.0, {"source": "A"})
        metrics.timing(SourceMetrics.REQUEST_DURATION_MS, 80.0, {"source": "A"})

        assert registry.get_sample_value("anime_sources_request_duration_count", {"source": "A"}) == 2
        assert registry.get_sample_value("anime_sources_request_duration_sum", {"source": "A"}) == 200.0

    def test_gauge_moves_both_ways(self, registry):
        metrics = PrometheusMetrics(registry)

        metrics.gauge(SourceMetrics.ADMISSION_IN_FLIGHT, 3)
        metrics.gauge(SourceMetrics.ADMISSION_IN_FLIGHT, -1)
        metrics.gauge(SourceMetrics.ADMISSION_IN_FLIGHT, 0)

        assert registry.get_sample_value("anime_sources_admission_in_flight") == 2

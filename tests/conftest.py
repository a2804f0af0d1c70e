"""Pytest configuration and shared fixtures for anime source tests."""

import sys
from pathlib import Path
from typing import Any

import pytest


sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from anime_sources.log_config import clear_context
from anime_sources.metrics import MetricsCollector
from anime_sources.settings import Settings
from anime_sources.sources.mock import MockSource
from anime_sources.time_provider import SimulatedTimeProvider
from anime_sources.types import Anime


# ==================== Helpers ====================


def make_anime(prefix: str, count: int, **fields: Any) -> list[Anime]:
    """Build ``count`` distinct records with ids ``{prefix}{n}``."""
    return [
        Anime(id=f"{prefix}{n}", title=f"{prefix.rstrip('-')} title {n}", **fields)
        for n in range(1, count + 1)
    ]


class RecordingMetrics(MetricsCollector):
    """Metrics collector keeping every observation for assertions."""

    def __init__(self) -> None:
        self.counters: list[tuple[str, float, dict[str, str]]] = []
        self.histograms: list[tuple[str, float, dict[str, str]]] = []
        self.gauges: list[tuple[str, float, dict[str, str]]] = []

    def increment(self, metric: str, value: float = 1, labels: dict[str, str] | None = None) -> None:
        self.counters.append((metric, value, labels or {}))

    def histogram(self, metric: str, value: float, labels: dict[str, str] | None = None) -> None:
        self.histograms.append((metric, value, labels or {}))

    def gauge(self, metric: str, value: float, labels: dict[str, str] | None = None) -> None:
        self.gauges.append((metric, value, labels or {}))

    def count(self, metric: str, **labels: str) -> float:
        return sum(
            value
            for name, value, seen in self.counters
            if name == metric and all(seen.get(k) == v for k, v in labels.items())
        )


# ==================== Fixtures ====================


@pytest.fixture(autouse=True)
def reset_logging_context():
    """Clear request ids between tests."""
    clear_context()
    yield
    clear_context()


@pytest.fixture
def time_provider() -> SimulatedTimeProvider:
    """Virtual clock: sleeps return immediately and are recorded."""
    return SimulatedTimeProvider()


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def naruto_catalog() -> list[Anime]:
    return [
        Anime(id="hianime-naruto-677", title="Naruto", rating=7.9, year=2002, genres=["Action"]),
        Anime(
            id="hianime-naruto-shippuden-355",
            title="Naruto: Shippuden",
            rating=8.2,
            year=2007,
            genres=["Action", "Adventure"],
        ),
        Anime(id="hianime-bleach-806", title="Bleach", rating=7.8, year=2004, genres=["Action"]),
    ]


@pytest.fixture
def mock_source(naruto_catalog) -> MockSource:
    return MockSource("HiAnime", catalog=naruto_catalog)


@pytest.fixture
def test_settings() -> Settings:
    """Settings for orchestration tests: one attempt per dispatch, no background tasks."""
    return Settings(
        environment="test",
        reliability={"max_attempts": 1, "base_delay": 0.0, "timeout": 2.0},
        health={"enabled": False},
        catalog={"enabled": False},
    )

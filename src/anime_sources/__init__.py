"""
Anime Sources Package

A resilience and orchestration layer over several anime content sources.
Every outbound call runs through retry, circuit breaking, global admission
control and per-attempt timeouts; the SourceManager façade routes
identifiers to the source that owns them, fails over once on errors and
aggregates results across sources.

This package provides:
- SourceManager: Multi-source orchestrator (search, listings, episodes, streaming)
- ReliableInvoker: Retry → circuit breaker → admission → timeout composition
- SourceRegistry / HealthMonitor: Availability, priority and periodic probing
- HttpSource / MockSource: Source adapters
- CatalogClient: AniList metadata catalog client

Usage:
    from anime_sources import SourceManager, MockSource

    async with SourceManager([MockSource("HiAnime", catalog=items)]) as manager:
        result = await manager.search("naruto")

    # From settings/config.yaml
    async with SourceManager.from_settings() as manager:
        episodes = await manager.get_episodes("hianime-naruto-677")
"""

from .browse import BrowsePage
from .catalog import CatalogClient
from .exceptions import (
    AdmissionRejectedError,
    CatalogError,
    CircuitOpenError,
    ErrorKind,
    OperationAbortedError,
    OperationCancelledError,
    SourceCallError,
    SourceConfigError,
    SourceException,
    SourceTimeoutError,
)
from .health import HealthMonitor
from .log_config import configure_logging
from .manager import SourceManager
from .matching import LookupTable, find_best_match, normalize_title
from .registry import SourceRegistry
from .resilience import (
    AdmissionController,
    CancellationToken,
    CircuitBreaker,
    CircuitBreakerRegistry,
    CircuitState,
    ReliableInvoker,
    RetryExecutor,
    RetryPolicy,
    TimeoutGuard,
)
from .routing import IdRouter, RouteRule
from .settings import Settings, get_settings, reload_settings
from .sources import BaseSource, ContentSource, HttpSource, MockSource, create_source
from .time_provider import (
    RealtimeTimeProvider,
    SimulatedTimeProvider,
    TimeProvider,
    create_time_provider,
)
from .types import (
    Anime,
    BrowseFilters,
    Capability,
    Episode,
    EpisodeServer,
    HealthStatus,
    SearchResult,
    SourceHealth,
    StreamingData,
    TopAnime,
)

__version__ = "1.0.0"

__all__ = [
    # Orchestration
    "SourceManager",
    "SourceRegistry",
    "HealthMonitor",
    "IdRouter",
    "RouteRule",
    "CatalogClient",
    "LookupTable",
    "normalize_title",
    "find_best_match",
    # Resilience
    "ReliableInvoker",
    "RetryExecutor",
    "RetryPolicy",
    "TimeoutGuard",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "AdmissionController",
    "CancellationToken",
    # Sources
    "ContentSource",
    "BaseSource",
    "HttpSource",
    "MockSource",
    "create_source",
    # Types
    "Anime",
    "Episode",
    "EpisodeServer",
    "SearchResult",
    "TopAnime",
    "StreamingData",
    "SourceHealth",
    "HealthStatus",
    "Capability",
    "BrowseFilters",
    "BrowsePage",
    # Errors
    "ErrorKind",
    "SourceException",
    "SourceCallError",
    "SourceTimeoutError",
    "OperationAbortedError",
    "OperationCancelledError",
    "CircuitOpenError",
    "AdmissionRejectedError",
    "CatalogError",
    "SourceConfigError",
    # Configuration
    "Settings",
    "get_settings",
    "reload_settings",
    "configure_logging",
    # Time providers
    "TimeProvider",
    "RealtimeTimeProvider",
    "SimulatedTimeProvider",
    "create_time_provider",
    "__version__",
]

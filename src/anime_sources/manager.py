"""
Source Manager

Top-level façade over the registered sources. Every content operation picks
a source from the SourceRegistry, executes through the ReliableInvoker and,
on failure, walks a bounded fallback chain. Aggregating and enrichment
operations combine results across sources and the metadata catalog.

The public API never raises for source failures: exhausting every source
yields a typed empty result (empty SearchResult, empty list, None, default
server list, empty StreamingData). Only caller cancellation propagates, as
OperationCancelledError.
"""

import asyncio
import random
from dataclasses import replace
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from .browse import (
    BROWSE_PAGE_SIZE,
    BrowsePage,
    apply_filters,
    order_listing,
    paginate,
    sort_anime,
)
from .catalog import CATALOG_NAME, CatalogClient
from .events import SourceEvents
from .exceptions import OperationCancelledError, classify_error
from .health import HealthMonitor
from .http_client_manager import HttpClientConfig, HttpClientManager
from .log_config import LoggingContext, get_context_logger
from .matching import LookupTable, deduplicate_results, find_best_match, normalize_title
from .metrics import (
    MetricLabels,
    MetricsCollector,
    NoOpMetrics,
    PrometheusMetrics,
    SourceMetrics,
)
from .registry import RegisteredSource, SourceRegistry
from .resilience.admission import AdmissionController
from .resilience.cancellation import CancellationToken
from .resilience.circuit_breaker import CircuitBreakerRegistry
from .resilience.invoker import ReliableInvoker
from .resilience.retry import RetryPolicy
from .routing import IdRouter
from .settings import Settings, get_settings
from .sources.base import ContentSource
from .sources.factory import create_source
from .sources.http import HttpSource
from .time_provider import RealtimeTimeProvider, TimeProvider
from .types import (
    Anime,
    BrowseFilters,
    Capability,
    Episode,
    EpisodeServer,
    SearchResult,
    SourceHealth,
    StreamingData,
    TopAnime,
    default_episode_servers,
)


T = TypeVar("T")

MAX_DISPATCHES = 2


def _http_config(settings: Settings) -> HttpClientConfig:
    # empty headers keep the default User-Agent
    data = settings.http.model_dump()
    if not data.get("headers"):
        data.pop("headers", None)
    return HttpClientConfig.from_dict(data)


class SourceManager:
    """
    Multi-source orchestrator.

    Attributes:
        registry: Registered sources, priority order and availability
        invoker: Retry → circuit breaker → admission → timeout wrapper
        monitor: Periodic health prober
        router: Identifier prefix routing table
        catalog: Metadata catalog client (None when disabled)
        lookup_table: Normalized-title index of one source's trending catalog

    Examples:
        >>> manager = SourceManager([hianime, gogoanime], priority=["HiAnime"])
        >>> async with manager:
        ...     result = await manager.search("naruto")
        ...     result.source
        'HiAnime'

        Aggregate across every source:
        >>> combined = await manager.search_all("naruto")
        >>> combined.source
        'HiAnime+Gogoanime'

        From configuration:
        >>> manager = SourceManager.from_settings(get_settings())
    """

    def __init__(
        self,
        sources: Iterable[ContentSource] = (),
        *,
        priority: Iterable[str] | None = None,
        settings: Settings | None = None,
        router: IdRouter | None = None,
        catalog: CatalogClient | Any | None = None,
        http: HttpClientManager | None = None,
        time_provider: TimeProvider | None = None,
        metrics: MetricsCollector | None = None,
        rng: random.Random | None = None,
    ):
        self.settings = settings or Settings()
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.metrics = metrics or NoOpMetrics()
        self.rng = rng or random.Random()
        self.logger = get_context_logger("source_manager")

        self.http = http or HttpClientManager(_http_config(self.settings))

        if priority is None:
            priority = self.settings.orchestrator.priority or None
        self.registry = SourceRegistry(
            sources,
            priority=priority,
            isolated=self.settings.orchestrator.isolated_sources,
        )
        for entry in self.registry:
            if isinstance(entry.adapter, HttpSource):
                entry.adapter.bind_client(self.http.get_client())

        reliability = self.settings.reliability
        admission = self.settings.admission
        self.invoker = ReliableInvoker(
            breakers=CircuitBreakerRegistry(
                failure_threshold=reliability.failure_threshold,
                reset_timeout=reliability.reset_timeout,
                time_provider=self.time_provider,
                metrics=self.metrics,
            ),
            admission=AdmissionController(
                admission.max_concurrent,
                max_queue=admission.max_queue,
                queue_timeout=admission.queue_timeout,
                metrics=self.metrics,
            ),
            retry_policy=RetryPolicy(
                max_attempts=reliability.max_attempts, base_delay=reliability.base_delay
            ),
            timeout=reliability.timeout,
            slow_threshold=reliability.slow_threshold,
            time_provider=self.time_provider,
            metrics=self.metrics,
        )

        health = self.settings.health
        self.monitor = HealthMonitor(
            self.registry,
            interval=health.interval,
            probe_timeout=health.probe_timeout,
            degraded_latency=health.degraded_latency,
            time_provider=self.time_provider,
            metrics=self.metrics,
        )

        self.router = router or IdRouter(self.settings.routes)

        catalog_cfg = self.settings.catalog
        if catalog is None and catalog_cfg.enabled:
            catalog = CatalogClient(
                url=catalog_cfg.url,
                cache_ttl=catalog_cfg.cache_ttl,
                timeout=catalog_cfg.timeout,
                time_provider=self.time_provider,
            )
        self.catalog = catalog

        orchestrator = self.settings.orchestrator
        self.lookup_table = LookupTable(orchestrator.lookup_ttl, self.time_provider)
        self._title_cache: dict[str, tuple[float, list[Anime]]] = {}

        self.logger.debug(
            "SourceManager initialized",
            sources=self.registry.names,
            priority=self.registry.priority_order,
            catalog=self.catalog is not None,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **kwargs: Any) -> "SourceManager":
        """
        Build a manager, its sources and its HTTP client from settings.

        Args:
            settings: Settings instance (default: ``get_settings()``)
            **kwargs: Overrides forwarded to the constructor

        Raises:
            SourceConfigError: If a source entry is invalid
        """
        settings = settings or get_settings()
        if "metrics" not in kwargs and settings.metrics == "prometheus":
            kwargs["metrics"] = PrometheusMetrics()

        http = kwargs.pop("http", None) or HttpClientManager(_http_config(settings))
        sources = [
            create_source(
                cfg,
                http_client=http.get_client() if cfg.get("type", "http") == "http" else None,
            )
            for cfg in settings.sources
        ]
        return cls(sources, settings=settings, http=http, **kwargs)

    # ----- lifecycle ------------------------------------------------------

    async def start(self) -> None:
        """Start health monitoring (immediate check, then periodic)."""
        if self.settings.health.enabled:
            await self.monitor.start()

    async def close(self) -> None:
        """Stop health monitoring and release HTTP connections."""
        await self.monitor.stop()
        await self.http.close()

    async def __aenter__(self) -> "SourceManager":
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # ----- dispatch primitives -------------------------------------------

    async def _invoke(
        self,
        source: str,
        operation: str,
        call: Callable[[CancellationToken | None], Awaitable[T]],
        token: CancellationToken | None,
        **overrides: Any,
    ) -> T:
        return await self.invoker.invoke(source, operation, call, token=token, **overrides)

    async def _with_fallback(
        self,
        operation: str,
        run: Callable[[RegisteredSource, CancellationToken | None], Awaitable[T]],
        empty: Callable[[], T],
        *,
        preferred: str | None = None,
        strict: bool = False,
        token: CancellationToken | None = None,
    ) -> T:
        """
        Run ``run`` against the selected source, failing over at most once.

        An unavailable ``preferred`` source falls back to priority selection,
        or yields ``empty()`` when ``strict`` is set. A source is dispatched
        at most once per call. Failed sources are marked unavailable;
        cancellation propagates unchanged.
        """
        if strict and preferred is not None and not self.registry.is_available(preferred):
            self.logger.warning(
                "Requested source not available",
                operation=operation,
                source=preferred,
                registered=preferred in self.registry,
            )
            return empty()

        visited: list[str] = []
        failures: list[dict[str, str]] = []
        while len(visited) < MAX_DISPATCHES:
            entry = self.registry.select(None if visited else preferred, exclude=visited)
            if entry is None:
                break
            if visited:
                self.logger.warning(
                    SourceEvents.FAILOVER,
                    operation=operation,
                    from_source=visited[-1],
                    to_source=entry.name,
                    reason=failures[-1]["error"],
                )
                self.metrics.increment(
                    SourceMetrics.FAILOVER_TOTAL,
                    labels={MetricLabels.SOURCE: entry.name, MetricLabels.OPERATION: operation},
                )
            visited.append(entry.name)

            try:
                return await run(entry, token)
            except OperationCancelledError:
                raise
            except Exception as e:
                failures.append({"source": entry.name, "error": str(e)})
                self.registry.mark_unavailable(entry.name, str(e))

        self.logger.warning(
            SourceEvents.SOURCE_EXHAUSTED,
            operation=operation,
            attempted=visited,
            failures=failures,
        )
        self.metrics.increment(
            SourceMetrics.FALLBACK_EXHAUSTED, labels={MetricLabels.OPERATION: operation}
        )
        return empty()

    def _is_isolated(self, content_id: str) -> bool:
        rule = self.router.match(content_id)
        return rule is not None and rule.source in self.settings.orchestrator.isolated_sources

    def _scan_plan(
        self,
        content_id: str,
        capability: Capability | None,
        backups: Iterable[str] | None = None,
    ) -> list[tuple[RegisteredSource, str]]:
        """
        Sources to try for an identifier-keyed operation, in order.

        The routed (or generically selected) source gets the original id.
        Identifiers with a known prefix may continue to further sources with
        converted ids: the given ``backups``, or every source advertising
        ``capability`` in priority order. Isolated sources never mix with
        the others.
        """
        isolated_sources = self.settings.orchestrator.isolated_sources
        isolated = self._is_isolated(content_id)
        routed = self.router.route(content_id, self.registry.is_available)
        primary = (
            self.registry.get(routed) if routed else self.registry.select(capability=capability)
        )
        if primary is not None and (primary.name in isolated_sources) != isolated:
            primary = None

        plan: list[tuple[RegisteredSource, str]] = []
        if primary is not None and primary.is_available and primary.supports(capability):
            plan.append((primary, content_id))

        if not self.router.has_known_prefix(content_id):
            return plan

        visited = {entry.name for entry, _ in plan}
        if backups is None:
            candidates = self.registry.candidates(
                capability=capability, exclude=visited, include_isolated=True
            )
        else:
            candidates = [
                entry
                for entry in (self.registry.get(name) for name in backups)
                if entry is not None
                and entry.name not in visited
                and entry.is_available
                and entry.supports(capability)
            ]

        raw_id = self.router.extract_raw_id(content_id)
        for entry in candidates:
            if (entry.name in isolated_sources) != isolated:
                continue
            plan.append((entry, self.router.build_source_id(raw_id, entry.name)))
        return plan

    async def _scan(
        self,
        operation: str,
        plan: list[tuple[RegisteredSource, str]],
        call: Callable[[RegisteredSource, str, CancellationToken | None], Awaitable[T]],
        is_hit: Callable[[T], bool],
        token: CancellationToken | None,
    ) -> tuple[T | None, str | None]:
        """Try ``plan`` strictly in order; return the first hit and its source."""
        for entry, source_id in plan:
            try:
                result = await self._invoke(
                    entry.name,
                    operation,
                    lambda tok, entry=entry, source_id=source_id: call(entry, source_id, tok),
                    token,
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                self.logger.info(
                    "Source failed during scan",
                    operation=operation,
                    source=entry.name,
                    source_id=source_id,
                    error=str(e),
                    error_kind=classify_error(e).value,
                )
                continue
            if is_hit(result):
                return result, entry.name
            self.logger.info(
                SourceEvents.SOURCE_EMPTY_RESULT,
                operation=operation,
                source=entry.name,
                source_id=source_id,
            )

        self.logger.warning(
            SourceEvents.SOURCE_EXHAUSTED,
            operation=operation,
            attempted=[entry.name for entry, _ in plan],
        )
        return None, None

    @staticmethod
    def _label(result: SearchResult, source: str) -> SearchResult:
        if result.source in ("", "none"):
            result.source = source
        return result

    # ----- search -----------------------------------------------------------

    async def search(
        self,
        query: str,
        page: int = 1,
        source: str | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        """
        Search with fallback: primary source plus exactly one failover.

        An explicitly requested source that is unknown or unavailable yields
        an empty result.
        """
        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> SearchResult:
            result = await self._invoke(
                entry.name, "search", lambda t: entry.adapter.search(query, page, token=t), tok
            )
            return self._label(result, entry.name)

        with LoggingContext(operation="search"):
            self.logger.info("Search request", query=query, page=page, source=source or "auto")
            return await self._with_fallback(
                "search",
                run,
                lambda: SearchResult.empty(page),
                preferred=source,
                strict=True,
                token=token,
            )

    async def search_all(
        self,
        query: str,
        page: int = 1,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        """
        Search every non-isolated source sequentially in priority order.

        Stops once the accumulated results reach the configured threshold
        (20). The result's ``source`` joins the contributing source names
        with ``+``; failures and empty answers are reported in
        ``failed_sources`` and ``messages``.
        """
        threshold = self.settings.orchestrator.search_all_threshold
        combined = SearchResult.empty(page)
        order = [
            name
            for name in self.registry.priority_order
            + [n for n in self.registry.names if n not in self.registry.priority_order]
            if name not in self.registry.isolated
        ]

        with LoggingContext(operation="search_all"):
            for name in order:
                entry = self.registry.get(name)
                if entry is None:
                    continue
                if not entry.is_available:
                    combined.messages.append(f"{name}: unavailable")
                    continue

                try:
                    result = await self._invoke(
                        name,
                        "search",
                        lambda t, entry=entry: entry.adapter.search(query, page, token=t),
                        token,
                    )
                except OperationCancelledError:
                    raise
                except Exception as e:
                    combined.failed_sources.append({"source": name, "error": str(e)})
                    combined.messages.append(f"{name}: {e}")
                    continue

                if not result.results:
                    combined.messages.append(f"{name}: no results")
                    continue

                combined.results.extend(result.results)
                combined.contributing_sources.append(name)
                combined.total_pages = max(combined.total_pages, result.total_pages)
                combined.has_next_page = combined.has_next_page or result.has_next_page
                if len(combined.results) >= threshold:
                    break

            combined.total_results = len(combined.results)
            combined.source = "+".join(combined.contributing_sources) or "none"
            self.logger.info(
                SourceEvents.SEARCH_ALL_COMPLETED,
                query=query,
                results=len(combined.results),
                contributing=combined.contributing_sources,
                failed=[item["source"] for item in combined.failed_sources],
            )
            return combined

    # ----- identifier-keyed operations -----------------------------------

    async def _catalog_call(
        self,
        operation: str,
        call: Callable[[Any, CancellationToken | None], Awaitable[T]],
        token: CancellationToken | None,
    ) -> T:
        if isinstance(self.catalog, CatalogClient):
            self.catalog.bind_client(self.http.get_client())
        catalog = self.catalog
        return await self._invoke(CATALOG_NAME, operation, lambda t: call(catalog, t), token)

    async def get_anime(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> Anime | None:
        """
        Fetch one anime by identifier.

        ``anilist-`` identifiers are resolved through the catalog and matched
        to a streaming entry by title; others go to the routed source, its
        backup, or the first available source. Errors yield None.
        """
        with LoggingContext(operation="get_anime"):
            if self.router.is_catalog_id(anime_id):
                return await self._get_catalog_anime(anime_id, token)

            routed = self.router.route(anime_id, self.registry.is_available)
            entry = self.registry.get(routed) if routed else self.registry.select()
            if entry is None:
                self.logger.warning("No source available", operation="get_anime", anime_id=anime_id)
                return None
            try:
                return await self._invoke(
                    entry.name,
                    "get_by_id",
                    lambda t: entry.adapter.get_by_id(anime_id, token=t),
                    token,
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                self.logger.warning(
                    "get_anime failed", source=entry.name, anime_id=anime_id, error=str(e)
                )
                return None

    async def _get_catalog_anime(
        self, anime_id: str, token: CancellationToken | None
    ) -> Anime | None:
        catalog_id = self.router.catalog_id(anime_id)
        if catalog_id is None or self.catalog is None:
            self.logger.warning("Cannot resolve catalog id", anime_id=anime_id)
            return None

        try:
            details = await self._catalog_call(
                "get_by_id", lambda c, t: c.get_by_id(int(catalog_id), token=t), token
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            self.logger.warning("Catalog lookup failed", anime_id=anime_id, error=str(e))
            return None
        if details is None:
            return None

        match = await self.find_streaming_anime_by_title(details.title, token=token)
        if match is None:
            return replace(details, id=anime_id, streaming_id=None, source=CATALOG_NAME)
        return replace(
            match,
            genres=details.genres,
            description=details.description,
            rating=details.rating or match.rating,
            studios=details.studios,
            season=details.season,
            year=details.year,
            streaming_id=match.id,
        )

    async def get_episodes(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> list[Episode]:
        """
        List episodes, trying the routed source then its designated backups.

        ``anilist-`` identifiers are resolved to a streaming id by title
        first. Returns an empty list when nothing answers.
        """
        with LoggingContext(operation="get_episodes"):
            if self.router.is_catalog_id(anime_id):
                streaming_id = await self._resolve_catalog_streaming_id(anime_id, token)
                if streaming_id is None:
                    return []
                anime_id = streaming_id

            plan = self._scan_plan(
                anime_id, None, backups=self.settings.orchestrator.backup_sources
            )
            episodes, source = await self._scan(
                "get_episodes",
                plan,
                lambda entry, source_id, t: entry.adapter.get_episodes(source_id, token=t),
                bool,
                token,
            )
            if episodes:
                self.logger.info(
                    "Episodes resolved", anime_id=anime_id, source=source, count=len(episodes)
                )
            return episodes or []

    async def _resolve_catalog_streaming_id(
        self, anime_id: str, token: CancellationToken | None
    ) -> str | None:
        catalog_id = self.router.catalog_id(anime_id)
        if catalog_id is None or self.catalog is None:
            return None
        try:
            details = await self._catalog_call(
                "get_by_id", lambda c, t: c.get_by_id(int(catalog_id), token=t), token
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            self.logger.warning("Catalog lookup failed", anime_id=anime_id, error=str(e))
            return None
        if details is None or not details.title:
            return None

        found = await self.search(details.title, 1, token=token)
        if not found.results:
            return None
        wanted = normalize_title(details.title)
        best = next(
            (anime for anime in found.results if normalize_title(anime.title) == wanted),
            found.results[0],
        )
        if self.router.is_catalog_id(best.id):
            return None
        return best.id

    async def get_episode_servers(
        self, episode_id: str, *, token: CancellationToken | None = None
    ) -> list[EpisodeServer]:
        """
        List servers for an episode.

        Tries the routed source, then every source advertising episode
        servers in priority order; falls back to the default server list.
        """
        with LoggingContext(operation="get_episode_servers"):
            plan = self._scan_plan(episode_id, Capability.EPISODE_SERVERS)
            servers, _ = await self._scan(
                "get_episode_servers",
                plan,
                lambda entry, source_id, t: entry.adapter.get_episode_servers(source_id, token=t),
                bool,
                token,
            )
            return servers or default_episode_servers()

    async def get_streaming_links(
        self,
        episode_id: str,
        server: str | None = None,
        category: str = "sub",
        *,
        token: CancellationToken | None = None,
    ) -> StreamingData:
        """
        Resolve playable links for an episode.

        Sources are tried strictly one after another; the first answer with
        at least one video source wins. Returns empty StreamingData when no
        source resolves the episode.
        """
        with LoggingContext(operation="get_streaming_links"):
            plan = self._scan_plan(episode_id, Capability.STREAMING_LINKS)
            data, source = await self._scan(
                "get_streaming_links",
                plan,
                lambda entry, source_id, t: entry.adapter.get_streaming_links(
                    source_id, server, category, token=t
                ),
                lambda result: result is not None and not result.is_empty,
                token,
            )
            if data is None:
                return StreamingData()
            data.source = data.source or source
            return data

    # ----- listings -------------------------------------------------------

    async def get_trending(
        self,
        page: int = 1,
        source: str | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> SearchResult:
            result = await self._invoke(
                entry.name, "get_trending", lambda t: entry.adapter.get_trending(page, token=t), tok
            )
            return self._label(result, entry.name)

        with LoggingContext(operation="get_trending"):
            return await self._with_fallback(
                "get_trending", run, lambda: SearchResult.empty(page), preferred=source, token=token
            )

    async def get_latest(
        self,
        page: int = 1,
        source: str | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> SearchResult:
            result = await self._invoke(
                entry.name, "get_latest", lambda t: entry.adapter.get_latest(page, token=t), tok
            )
            return self._label(result, entry.name)

        with LoggingContext(operation="get_latest"):
            return await self._with_fallback(
                "get_latest", run, lambda: SearchResult.empty(page), preferred=source, token=token
            )

    async def get_top_rated(
        self,
        page: int = 1,
        limit: int = 10,
        source: str | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> list[TopAnime]:
        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> list[TopAnime]:
            return await self._invoke(
                entry.name,
                "get_top_rated",
                lambda t: entry.adapter.get_top_rated(page, limit, token=t),
                tok,
            )

        with LoggingContext(operation="get_top_rated"):
            return await self._with_fallback(
                "get_top_rated", run, list, preferred=source, token=token
            )

    async def get_anime_by_genre(
        self,
        genre: str,
        page: int = 1,
        source: str | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        """
        List anime in a genre.

        Sources advertising the genre capability answer natively; others
        search for the genre name.
        """
        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> SearchResult:
            if entry.supports(Capability.BY_GENRE):
                result = await self._invoke(
                    entry.name,
                    "get_by_genre",
                    lambda t: entry.adapter.get_by_genre(genre, page, token=t),
                    tok,
                )
            else:
                self.logger.debug("Using search for genre", source=entry.name, genre=genre)
                result = await self._invoke(
                    entry.name, "search", lambda t: entry.adapter.search(genre, page, token=t), tok
                )
            return self._label(result, entry.name)

        with LoggingContext(operation="get_anime_by_genre"):
            return await self._with_fallback(
                "get_anime_by_genre",
                run,
                lambda: SearchResult.empty(page),
                preferred=source,
                token=token,
            )

    async def get_random_anime(
        self, source: str | None = None, *, token: CancellationToken | None = None
    ) -> Anime | None:
        """Pick a random anime from the first trending pages of one source."""
        settings = self.settings.orchestrator

        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> Anime | None:
            pool, _ = await self._collect_pages(
                entry,
                "get_trending",
                range(1, settings.random_pages + 1),
                tok,
                stop_at=settings.random_pool_size,
            )
            if not pool:
                self.logger.warning("No anime for random selection", source=entry.name)
                return None
            return self.rng.choice(pool)

        with LoggingContext(operation="get_random_anime"):
            return await self._with_fallback(
                "get_random_anime", run, lambda: None, preferred=source, token=token
            )

    async def _collect_pages(
        self,
        entry: RegisteredSource,
        operation: str,
        pages: Iterable[int],
        token: CancellationToken | None,
        stop_at: int | None = None,
    ) -> tuple[list[Anime], int]:
        """
        Fetch listing pages sequentially from one source.

        A failing first page raises so the caller can fail over; a later
        failure ends the collection with what was gathered.
        """
        listing = getattr(entry.adapter, operation)
        items: list[Anime] = []
        fetched = 0
        for page in pages:
            try:
                result = await self._invoke(
                    entry.name, operation, lambda t, page=page: listing(page, token=t), token
                )
            except OperationCancelledError:
                raise
            except Exception:
                if fetched == 0:
                    raise
                break
            fetched += 1
            if not result.results:
                break
            items.extend(result.results)
            if stop_at is not None and len(items) >= stop_at:
                break
        return items, fetched

    async def get_filtered_anime(
        self, filters: BrowseFilters, *, token: CancellationToken | None = None
    ) -> BrowsePage:
        """
        Filter, sort and paginate trending listings locally.

        Fetches several trending pages from one source starting at the
        requested page, then applies type, genre, status and year filters.
        """
        settings = self.settings.orchestrator
        start = max(filters.page, 1)

        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> BrowsePage:
            items, _ = await self._collect_pages(
                entry, "get_trending", range(start, start + settings.filtered_pages), tok
            )
            filtered = sort_anime(
                apply_filters(items, filters), filters.sort or "rating", filters.order
            )
            result = paginate(filtered, filters.page, filters.limit or settings.filtered_page_size)
            result.source = entry.name
            return result

        with LoggingContext(operation="get_filtered_anime"):
            return await self._with_fallback(
                "get_filtered_anime", run, BrowsePage.empty, preferred=filters.source, token=token
            )

    async def browse_anime(
        self, filters: BrowseFilters, *, token: CancellationToken | None = None
    ) -> BrowsePage:
        """
        Browse with filters, sorting and pagination.

        A genre filter is answered natively by sources advertising the genre
        capability. Otherwise several listing pages of the selected source
        and one page from up to two other sources are prefetched
        concurrently (bounded by admission control), deduplicated, filtered,
        ordered and paginated locally. Catalog-only records are dropped.
        """
        limit = filters.limit or self.settings.orchestrator.browse_page_size or BROWSE_PAGE_SIZE

        async def run(entry: RegisteredSource, tok: CancellationToken | None) -> BrowsePage:
            if filters.genres and entry.supports(Capability.BY_GENRE):
                native = await self._invoke(
                    entry.name,
                    "get_by_genre",
                    lambda t: entry.adapter.get_by_genre(filters.genres[0], filters.page, token=t),
                    tok,
                )
                if native.results:
                    return BrowsePage(
                        anime=self._streamable(native.results),
                        total_pages=native.total_pages,
                        has_next_page=native.has_next_page,
                        total_results=native.total_results or len(native.results),
                        source=entry.name,
                    )

            items = await self._prefetch(entry, filters, tok)
            listed = order_listing(
                apply_filters(deduplicate_results(items), filters),
                filters.sort,
                filters.order,
                self.rng,
            )
            result = paginate(listed, filters.page, limit)
            result.anime = self._streamable(result.anime)
            result.source = entry.name
            return result

        with LoggingContext(operation="browse_anime"):
            return await self._with_fallback(
                "browse_anime", run, BrowsePage.empty, preferred=filters.source, token=token
            )

    async def _prefetch(
        self, entry: RegisteredSource, filters: BrowseFilters, token: CancellationToken | None
    ) -> list[Anime]:
        sort = filters.sort or "popularity"
        operation = "get_latest" if sort == "recently_released" else "get_trending"
        page = max(filters.page, 1)
        primary_pages = 3 if sort == "shuffle" else 2

        requests: list[tuple[RegisteredSource, int]] = [
            (entry, page + offset) for offset in range(primary_pages)
        ]
        if entry.name not in self.registry.isolated:
            others = self.registry.candidates(exclude=[entry.name])
            requests.extend((other, page) for other in others[:2])

        async def fetch(source: RegisteredSource, number: int) -> list[Anime]:
            listing = getattr(source.adapter, operation)
            result = await self._invoke(
                source.name, operation, lambda t: listing(number, token=t), token
            )
            return result.results

        outcomes = await asyncio.gather(
            *(fetch(source, number) for source, number in requests), return_exceptions=True
        )

        items: list[Anime] = []
        errors: list[BaseException] = []
        for outcome in outcomes:
            if isinstance(outcome, OperationCancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                errors.append(outcome)
                continue
            items.extend(outcome)

        if not items and len(errors) == len(outcomes) and errors:
            raise errors[0]
        return items

    def _streamable(self, items: list[Anime]) -> list[Anime]:
        return [
            anime
            for anime in items
            if anime.id and (not self.router.is_catalog_id(anime.id) or anime.streaming_id)
        ]

    # ----- catalog enrichment --------------------------------------------

    async def _ensure_lookup_table(self, token: CancellationToken | None) -> None:
        if self.lookup_table.is_fresh:
            return
        entry = self.registry.select()
        if entry is None:
            self.logger.warning("No available source for lookup table")
            return
        try:
            items, _ = await self._collect_pages(
                entry,
                "get_trending",
                range(1, self.settings.orchestrator.lookup_pages + 1),
                token,
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            self.logger.warning("Lookup table build failed", source=entry.name, error=str(e))
            return
        self.lookup_table.build(items)

    def _enrich(self, match: Anime, details: Anime) -> Anime:
        return replace(
            match,
            genres=details.genres,
            rating=details.rating or match.rating,
            year=details.year or match.year,
            streaming_id=match.id,
        )

    async def get_genre_catalog(
        self, genre: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        """
        Genre listing from the metadata catalog, matched to streaming entries.

        Each catalog entry is looked up in the normalized-title table first.
        When at most ``title_search_limit`` entries miss, each is matched by
        a live title search; remaining misses keep their catalog record.
        Without a catalog the source genre listing is returned.
        """
        if self.catalog is None:
            return await self.get_anime_by_genre(genre, page, token=token)

        with LoggingContext(operation="get_genre_catalog"):
            await self._ensure_lookup_table(token)
            try:
                listing = await self._catalog_call(
                    "search_by_genre",
                    lambda c, t: c.search_by_genre(
                        genre, page, self.settings.catalog.genre_page_size, token=t
                    ),
                    token,
                )
            except OperationCancelledError:
                raise
            except Exception as e:
                self.logger.warning("Catalog genre listing failed", genre=genre, error=str(e))
                return SearchResult.empty(page, source=CATALOG_NAME)

            enriched: list[Anime] = []
            misses: list[int] = []
            for details in listing.results:
                match = self.lookup_table.lookup(details.title)
                if match is not None:
                    enriched.append(self._enrich(match, details))
                else:
                    misses.append(len(enriched))
                    enriched.append(replace(details, streaming_id=None, source=CATALOG_NAME))

            limit = self.settings.orchestrator.title_search_limit
            if 0 < len(misses) <= limit:
                for index in misses:
                    details = enriched[index]
                    match = await self.find_streaming_anime_by_title(details.title, token=token)
                    if match is not None:
                        enriched[index] = self._enrich(match, details)
            elif misses:
                self.logger.info(
                    "Skipping title search for misses", misses=len(misses), limit=limit
                )

            matched = sum(1 for anime in enriched if anime.streaming_id)
            self.logger.info(
                "Genre catalog enriched",
                genre=genre,
                results=len(enriched),
                matched=matched,
                catalog_only=len(enriched) - matched,
            )
            listing.results = enriched
            return listing

    async def find_streaming_anime_by_title(
        self, title: str, *, token: CancellationToken | None = None
    ) -> Anime | None:
        """
        Find the streaming entry best matching a catalog title.

        Search results are cached per title for a short window.
        """
        if not title:
            return None
        key = " ".join(title.lower().split())
        cached = self._title_cache.get(key)
        now = self.time_provider.now()
        if cached is not None and now - cached[0] < self.settings.orchestrator.title_cache_ttl:
            return find_best_match(title, cached[1])

        entry = next(
            (
                self.registry.get(name)
                for name in self.settings.orchestrator.title_search_sources
                if self.registry.is_available(name)
            ),
            None,
        ) or self.registry.select()
        if entry is None:
            return None

        try:
            result = await self._invoke(
                entry.name, "search", lambda t: entry.adapter.search(title, 1, token=t), token
            )
        except OperationCancelledError:
            raise
        except Exception as e:
            self.logger.warning("Title search failed", title=title, source=entry.name, error=str(e))
            return None

        self._title_cache[key] = (now, list(result.results))
        match = find_best_match(title, result.results)
        if match is None:
            self.logger.debug(SourceEvents.MATCH_MISSED, title=title, source=entry.name)
        else:
            self.logger.debug(SourceEvents.MATCH_FOUND, title=title, match_id=match.id)
        return match

    # ----- health and inspection -------------------------------------------

    async def check_all_health(self) -> dict[str, SourceHealth]:
        """Run one health cycle now."""
        return await self.monitor.check_all()

    def get_health_status(self) -> list[SourceHealth]:
        return self.registry.health()

    def set_preferred_source(self, name: str) -> bool:
        """Move a source to the front of the priority order."""
        return self.registry.promote(name)

    def get_source_status(self) -> list[dict[str, Any]]:
        return self.registry.status()

    def inspect(self) -> dict[str, Any]:
        """Read-only operational snapshot: sources, circuits, admission, health loop."""
        return {
            "priority": self.registry.priority_order,
            "sources": self.registry.status(),
            "circuits": self.invoker.breakers.snapshot(),
            "admission": self.invoker.admission.stats(),
            "health_monitor": {
                "running": self.monitor.running,
                "cycles": self.monitor.cycles,
                "interval": self.monitor.interval,
            },
            "lookup_table": {
                "entries": len(self.lookup_table),
                "fresh": self.lookup_table.is_fresh,
            },
        }


__all__ = ["SourceManager", "MAX_DISPATCHES"]

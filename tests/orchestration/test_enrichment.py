"""SourceManager catalog enrichment, browsing and lifecycle."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from anime_sources.manager import SourceManager
from anime_sources.resilience import CircuitState
from anime_sources.settings import Settings
from anime_sources.sources import HttpSource, MockSource
from anime_sources.types import Anime, BrowseFilters, Capability, Episode, HealthStatus, SearchResult


def catalog_record(catalog_id: int, title: str, **fields) -> Anime:
    return Anime(id=f"anilist-{catalog_id}", title=title, source="AniList", **fields)


def fake_catalog(listing: list[Anime] | None = None, details: Anime | None = None) -> MagicMock:
    catalog = MagicMock()
    catalog.search_by_genre = AsyncMock(
        return_value=SearchResult(results=list(listing or []), total_pages=2, source="AniList")
    )
    catalog.get_by_id = AsyncMock(return_value=details)
    return catalog


@pytest.fixture
def streaming_source() -> MockSource:
    return MockSource(
        "HiAnime",
        catalog=[
            Anime(id="hianime-aot-2", title="Attack on Titan Season 2", rating=8.5),
            Anime(id="hianime-naruto-677", title="Naruto (2002)", rating=7.9),
            Anime(id="hianime-naruto-shippuden-355", title="Naruto: Shippuden", rating=8.2),
        ],
    )


@pytest.mark.asyncio
class TestGenreCatalog:
    """Test catalog listings matched to streaming entries."""

    async def test_lookup_table_matches_titles(self, test_settings, time_provider, streaming_source):
        catalog = fake_catalog(
            [
                catalog_record(16498, "Attack on Titan", genres=["Action", "Drama"], rating=84, year=2013),
                catalog_record(20, "Naruto", genres=["Action"], rating=79, year=2002),
            ]
        )
        manager = SourceManager(
            [streaming_source], settings=test_settings, time_provider=time_provider, catalog=catalog
        )

        result = await manager.get_genre_catalog("Action")

        aot, naruto = result.results
        assert aot.id == "hianime-aot-2"
        assert aot.streaming_id == "hianime-aot-2"
        assert aot.genres == ["Action", "Drama"]
        assert aot.rating == 84
        assert naruto.id == "hianime-naruto-677"
        assert result.total_pages == 2
        catalog.search_by_genre.assert_awaited_once()
        assert streaming_source.call_count("search") == 0

    async def test_misses_fall_back_to_title_search(self, test_settings, time_provider):
        def search(query, page):
            if query == "Monster":
                return SearchResult(results=[Anime(id="hianime-monster-37", title="Monster")])
            return SearchResult()

        source = MockSource(
            "HiAnime",
            catalog=[Anime(id="hianime-aot-2", title="Attack on Titan Season 2")],
            responses={"search": search},
        )
        catalog = fake_catalog([catalog_record(19, "Monster"), catalog_record(457, "Mushishi")])
        manager = SourceManager([source], settings=test_settings, time_provider=time_provider, catalog=catalog)

        monster, mushishi = (await manager.get_genre_catalog("Mystery")).results

        assert monster.id == "hianime-monster-37"
        assert monster.streaming_id == "hianime-monster-37"
        assert mushishi.id == "anilist-457"
        assert mushishi.streaming_id is None
        assert source.call_count("search") == 2

    async def test_too_many_misses_skip_title_search(self, time_provider, streaming_source):
        settings = Settings(
            reliability={"max_attempts": 1},
            health={"enabled": False},
            catalog={"enabled": False},
            orchestrator={"title_search_limit": 1},
        )
        catalog = fake_catalog([catalog_record(1, "Monster"), catalog_record(2, "Mushishi")])
        manager = SourceManager(
            [streaming_source], settings=settings, time_provider=time_provider, catalog=catalog
        )

        result = await manager.get_genre_catalog("Mystery")

        assert [a.id for a in result.results] == ["anilist-1", "anilist-2"]
        assert streaming_source.call_count("search") == 0

    async def test_lookup_table_reused_while_fresh(self, test_settings, time_provider, streaming_source):
        manager = SourceManager(
            [streaming_source], settings=test_settings, time_provider=time_provider, catalog=fake_catalog()
        )

        await manager.get_genre_catalog("Action")
        await manager.get_genre_catalog("Drama")
        first_build = streaming_source.call_count("get_trending")

        time_provider.advance(test_settings.orchestrator.lookup_ttl)
        await manager.get_genre_catalog("Action")

        assert first_build == 2
        assert streaming_source.call_count("get_trending") == 4

    async def test_catalog_failure_is_empty(self, test_settings, time_provider, streaming_source):
        catalog = fake_catalog()
        catalog.search_by_genre.side_effect = ConnectionError("catalog down")
        manager = SourceManager(
            [streaming_source], settings=test_settings, time_provider=time_provider, catalog=catalog
        )

        result = await manager.get_genre_catalog("Action", page=3)

        assert result.results == []
        assert result.source == "AniList"
        assert result.current_page == 3

    async def test_without_catalog_uses_sources(self, test_settings, time_provider, naruto_catalog):
        source = MockSource("HiAnime", catalog=naruto_catalog, capabilities=[Capability.BY_GENRE])
        manager = SourceManager([source], settings=test_settings, time_provider=time_provider)

        result = await manager.get_genre_catalog("Adventure")

        assert [a.title for a in result.results] == ["Naruto: Shippuden"]


@pytest.mark.asyncio
class TestCatalogIdentifiers:
    """Test anilist- identifiers resolved through title matching."""

    async def test_get_anime_merges_catalog_details(self, test_settings, time_provider, naruto_catalog):
        details = catalog_record(20, "Naruto", genres=["Action", "Comedy"], rating=79, studios=["Pierrot"])
        source = MockSource("HiAnime", catalog=naruto_catalog)
        manager = SourceManager(
            [source], settings=test_settings, time_provider=time_provider, catalog=fake_catalog(details=details)
        )

        anime = await manager.get_anime("anilist-20")

        assert anime.id == "hianime-naruto-677"
        assert anime.streaming_id == "hianime-naruto-677"
        assert anime.genres == ["Action", "Comedy"]
        assert anime.studios == ["Pierrot"]

    async def test_get_anime_without_match_keeps_catalog_record(self, test_settings, time_provider):
        details = catalog_record(19, "Monster")
        manager = SourceManager(
            [MockSource("HiAnime")],
            settings=test_settings,
            time_provider=time_provider,
            catalog=fake_catalog(details=details),
        )

        anime = await manager.get_anime("anilist-19")

        assert anime.id == "anilist-19"
        assert anime.streaming_id is None

    async def test_title_matches_are_cached(self, test_settings, time_provider, naruto_catalog):
        source = MockSource("HiAnime", catalog=naruto_catalog)
        manager = SourceManager(
            [source],
            settings=test_settings,
            time_provider=time_provider,
            catalog=fake_catalog(details=catalog_record(20, "Naruto")),
        )

        await manager.get_anime("anilist-20")
        await manager.get_anime("anilist-20")
        assert source.call_count("search") == 1

        time_provider.advance(test_settings.orchestrator.title_cache_ttl)
        await manager.get_anime("anilist-20")
        assert source.call_count("search") == 2

    async def test_non_latin_titles_cached_separately(self, test_settings, time_provider):
        source = MockSource(
            "HiAnime",
            catalog=[
                Anime(id="hianime-aot", title="進撃の巨人"),
                Anime(id="hianime-kny", title="鬼滅の刃"),
            ],
        )
        manager = SourceManager([source], settings=test_settings, time_provider=time_provider)

        first = await manager.find_streaming_anime_by_title("進撃の巨人")
        second = await manager.find_streaming_anime_by_title("鬼滅の刃")
        again = await manager.find_streaming_anime_by_title(" 進撃の巨人 ")

        assert first.id == "hianime-aot"
        assert second.id == "hianime-kny"
        assert again.id == "hianime-aot"
        assert source.call_count("search") == 2

    async def test_get_episodes_resolves_streaming_id(self, test_settings, time_provider, naruto_catalog):
        source = MockSource(
            "HiAnime",
            catalog=naruto_catalog,
            responses={"get_episodes": lambda anime_id: [Episode(id=f"{anime_id}?ep=1", number=1)]},
        )
        manager = SourceManager(
            [source],
            settings=test_settings,
            time_provider=time_provider,
            catalog=fake_catalog(details=catalog_record(20, "Naruto")),
        )

        episodes = await manager.get_episodes("anilist-20")

        assert episodes[0].id == "hianime-naruto-677?ep=1"

    async def test_unresolvable_catalog_id(self, test_settings, time_provider):
        manager = SourceManager(
            [MockSource("HiAnime")],
            settings=test_settings,
            time_provider=time_provider,
            catalog=fake_catalog(details=None),
        )

        assert await manager.get_anime("anilist-404") is None
        assert await manager.get_episodes("anilist-404") == []
        assert await manager.get_anime("anilist-abc") is None


@pytest.mark.asyncio
class TestBrowse:
    """Test prefetching, filtering and pagination across sources."""

    async def test_prefetch_combines_sources_and_dedupes(self, test_settings, time_provider):
        primary = MockSource(
            "HiAnime",
            page_size=2,
            catalog=[
                Anime(id="hianime-1", title="Bleach", type="TV"),
                Anime(id="hianime-2", title="Akira", type="Movie"),
                Anime(id="hianime-3", title="Monster", type="TV"),
            ],
        )
        other = MockSource(
            "Gogoanime",
            catalog=[
                Anime(id="gogoanime-bleach", title="Bleach", type="TV"),
                Anime(id="gogoanime-mushishi", title="Mushishi", type="TV"),
            ],
        )
        isolated = MockSource("WatchHentai", catalog=[Anime(id="hh-1", title="Other", type="TV")])
        manager = SourceManager(
            [primary, other, isolated], settings=test_settings, time_provider=time_provider
        )

        page = await manager.browse_anime(BrowseFilters(type="tv"))

        assert [a.id for a in page.anime] == ["hianime-1", "hianime-3", "gogoanime-mushishi"]
        assert page.source == "HiAnime"
        assert primary.call_count("get_trending") == 2
        assert other.call_count("get_trending") == 1
        assert isolated.call_count() == 0

    async def test_recently_released_uses_latest(self, test_settings, time_provider):
        source = MockSource(
            "HiAnime",
            catalog=[Anime(id="a", title="Old", year=1998), Anime(id="b", title="New", year=2023)],
        )
        manager = SourceManager([source], settings=test_settings, time_provider=time_provider)

        page = await manager.browse_anime(BrowseFilters(sort="recently_released"))

        assert [a.id for a in page.anime] == ["b", "a"]
        assert source.call_count("get_latest") == 2
        assert source.call_count("get_trending") == 0

    async def test_genre_answered_natively(self, test_settings, time_provider, naruto_catalog):
        source = MockSource("HiAnime", catalog=naruto_catalog, capabilities=[Capability.BY_GENRE])
        manager = SourceManager([source], settings=test_settings, time_provider=time_provider)

        page = await manager.browse_anime(BrowseFilters(genres=["Adventure"]))

        assert [a.title for a in page.anime] == ["Naruto: Shippuden"]
        assert source.call_count("get_trending") == 0

    async def test_catalog_only_records_dropped(self, test_settings, time_provider):
        source = MockSource(
            "HiAnime",
            catalog=[
                Anime(id="anilist-1", title="Unmatched"),
                Anime(id="anilist-2", title="Matched", streaming_id="hianime-2"),
                Anime(id="hianime-3", title="Streaming"),
            ],
        )
        manager = SourceManager([source], settings=test_settings, time_provider=time_provider)

        page = await manager.browse_anime(BrowseFilters())

        assert [a.id for a in page.anime] == ["anilist-2", "hianime-3"]

    async def test_failing_primary_pages_keep_other_sources(self, test_settings, time_provider, naruto_catalog):
        broken = MockSource("HiAnime", responses={"get_trending": ConnectionError("down")})
        healthy = MockSource("Gogoanime", catalog=naruto_catalog)
        manager = SourceManager([broken, healthy], settings=test_settings, time_provider=time_provider)

        page = await manager.browse_anime(BrowseFilters())

        assert page.source == "HiAnime"
        assert len(page.anime) == 3
        assert manager.registry.is_available("HiAnime")

    async def test_all_prefetch_failures_fail_over(self, test_settings, time_provider, naruto_catalog):
        broken = MockSource("WatchHentai", responses={"get_trending": ConnectionError("down")})
        healthy = MockSource("Gogoanime", catalog=naruto_catalog)
        manager = SourceManager([broken, healthy], settings=test_settings, time_provider=time_provider)

        page = await manager.browse_anime(BrowseFilters(limit=2, source="WatchHentai"))

        assert page.source == "Gogoanime"
        assert len(page.anime) == 2
        assert page.has_next_page
        assert not manager.registry.is_available("WatchHentai")
        assert healthy.call_count("get_trending") == 2

    async def test_everything_failing_is_empty_page(self, test_settings, time_provider):
        sources = [MockSource(n, responses={"get_trending": ConnectionError("down")}) for n in "AB"]
        manager = SourceManager(sources, settings=test_settings, time_provider=time_provider)

        page = await manager.browse_anime(BrowseFilters())

        assert page.anime == []
        assert page.source is None
        assert not manager.registry.is_available("A")
        assert not manager.registry.is_available("B")


@pytest.mark.asyncio
class TestLifecycleAndInspection:
    """Test construction, health and operational snapshots."""

    async def test_from_settings_builds_sources(self, time_provider):
        settings = Settings(
            health={"enabled": False},
            catalog={"enabled": False},
            orchestrator={"priority": ["Remote", "Local"]},
            sources=[
                {"type": "mock", "name": "Local", "catalog": [{"id": "local-1", "title": "Naruto"}]},
                {"name": "Remote", "base_url": "http://localhost:4000/api", "id_prefix": "remote-"},
            ],
        )
        manager = SourceManager.from_settings(settings, time_provider=time_provider)

        assert manager.registry.names == ["Local", "Remote"]
        assert manager.registry.priority_order == ["Remote", "Local"]
        remote = manager.registry.get("Remote").adapter
        assert isinstance(remote, HttpSource)
        assert remote._http_client is manager.http.get_client()
        assert manager.catalog is None
        await manager.close()

    async def test_reliability_settings_reach_breakers(self, time_provider):
        settings = Settings(
            reliability={"max_attempts": 1, "failure_threshold": 2, "reset_timeout": 60.0},
            admission={"max_concurrent": 3, "max_queue": 7},
            health={"enabled": False},
            catalog={"enabled": False},
        )
        a = MockSource("A", responses={"search": ConnectionError("down")})
        manager = SourceManager([a], settings=settings, time_provider=time_provider)

        for _ in range(2):
            manager.registry.set_available("A", True)
            await manager.search("naruto")

        breaker = manager.invoker.breakers.get("A")
        assert breaker.snapshot()["failure_threshold"] == 2
        assert breaker.state == CircuitState.OPEN

        time_provider.advance(30.0)
        assert breaker.state == CircuitState.OPEN
        time_provider.advance(31.0)
        assert breaker.state == CircuitState.HALF_OPEN

        stats = manager.invoker.admission.stats()
        assert (stats["max_concurrent"], stats["max_queue"]) == (3, 7)

    async def test_catalog_client_created_when_enabled(self, time_provider):
        manager = SourceManager(settings=Settings(health={"enabled": False}), time_provider=time_provider)
        assert manager.catalog is not None
        assert manager.catalog.url == "https://graphql.anilist.co"
        await manager.close()

    async def test_context_manager_runs_initial_health_check(self):
        settings = Settings(catalog={"enabled": False})
        down = MockSource("Down", healthy=False)
        manager = SourceManager([MockSource("Up"), down], settings=settings)

        async with manager:
            assert manager.monitor.running
            assert not manager.registry.is_available("Down")
        assert not manager.monitor.running

    async def test_check_all_health(self, test_settings, time_provider):
        manager = SourceManager(
            [MockSource("Up"), MockSource("Down", healthy=False)],
            settings=test_settings,
            time_provider=time_provider,
        )

        snapshot = await manager.check_all_health()

        assert snapshot["Down"].status == HealthStatus.OFFLINE
        assert {h.name: h.status for h in manager.get_health_status()}["Up"] == HealthStatus.ONLINE

    async def test_set_preferred_source(self, test_settings, time_provider):
        a = MockSource("A")
        b = MockSource("B", catalog=[Anime(id="b-1", title="Naruto")])
        manager = SourceManager([a, b], settings=test_settings, time_provider=time_provider)

        assert manager.set_preferred_source("B") is True
        assert manager.set_preferred_source("Z") is False

        result = await manager.search("naruto")
        assert result.source == "B"
        assert a.call_count() == 0
        assert {row["name"]: row["priority"] for row in manager.get_source_status()} == {"A": 1, "B": 0}

    async def test_inspect(self, test_settings, time_provider):
        a = MockSource("A", responses={"search": ConnectionError("down")})
        manager = SourceManager([a, MockSource("B")], settings=test_settings, time_provider=time_provider)
        await manager.search("naruto")

        snapshot = manager.inspect()

        assert snapshot["priority"] == ["A", "B"]
        assert {row["name"]: row["available"] for row in snapshot["sources"]} == {"A": False, "B": True}
        circuits = {c["name"]: c for c in snapshot["circuits"]}
        assert circuits["A"]["failure_count"] == 1
        assert circuits["A"]["state"] == "closed"
        assert snapshot["admission"]["in_flight"] == 0
        assert snapshot["health_monitor"] == {"running": False, "cycles": 0, "interval": 120.0}
        assert snapshot["lookup_table"] == {"entries": 0, "fresh": False}

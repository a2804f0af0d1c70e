"""
Mock Source Adapter

In-memory adapter returning predefined content without network requests.
Useful for tests and local development. Each operation can be scripted with
a value, an exception to raise, or a callable computing the response.
"""

import asyncio
from typing import Any, Callable, Iterable

from ..resilience.cancellation import CancellationToken
from ..types import (
    Anime,
    Capability,
    Episode,
    EpisodeServer,
    SearchResult,
    StreamingData,
    TopAnime,
)
from .base import BaseSource


class MockSource(BaseSource):
    """
    Scriptable in-memory source.

    Attributes:
        catalog: Anime returned by listing operations and searched by title
        responses: Operation name → value, exception, or callable(*args)
        delay: Simulated latency in seconds
        healthy: Result of health_check()
        calls: Log of (operation, args) tuples in call order

    Examples:
        >>> source = MockSource("A", catalog=[Anime(id="a-1", title="Naruto")])
        >>> (await source.search("naruto")).results[0].title
        'Naruto'

        Failing search:
        >>> source = MockSource("A", responses={"search": ConnectionError("down")})

        With optional capabilities:
        >>> source = MockSource("A", capabilities=[Capability.STREAMING_LINKS])
    """

    def __init__(
        self,
        name: str,
        *,
        catalog: Iterable[Anime] | None = None,
        responses: dict[str, Any] | None = None,
        capabilities: Iterable[Capability | str] = (),
        delay: float = 0.0,
        healthy: bool = True,
        page_size: int = 20,
    ):
        super().__init__(name)
        self.catalog = [self._own(anime) for anime in (catalog or [])]
        self.responses = dict(responses or {})
        self.capabilities = frozenset(Capability(cap) for cap in capabilities)
        self.delay = delay
        self.healthy = healthy
        self.page_size = page_size
        self.calls: list[tuple[str, tuple[Any, ...]]] = []

    def _own(self, anime: Anime | dict[str, Any]) -> Anime:
        if isinstance(anime, dict):
            anime = Anime.from_dict(anime)
        anime.source = anime.source or self.name
        return anime

    def call_count(self, operation: str | None = None) -> int:
        """Number of recorded calls, optionally for one operation."""
        if operation is None:
            return len(self.calls)
        return sum(1 for name, _ in self.calls if name == operation)

    async def _respond(
        self,
        operation: str,
        args: tuple[Any, ...],
        token: CancellationToken | None,
        default: Callable[[], Any],
    ) -> Any:
        self.calls.append((operation, args))
        if self.delay > 0:
            self.logger.debug("Simulating delay", delay=self.delay, operation=operation)
            await asyncio.sleep(self.delay)
        if token is not None:
            token.raise_if_cancelled()

        if operation not in self.responses:
            return default()
        response = self.responses[operation]
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            response = response(*args)
            if asyncio.iscoroutine(response):
                response = await response
        return response

    def _page(self, items: list[Anime], page: int) -> SearchResult:
        start = (page - 1) * self.page_size
        chunk = items[start:start + self.page_size]
        total_pages = max(1, -(-len(items) // self.page_size)) if items else 0
        return SearchResult(
            results=list(chunk),
            total_pages=total_pages,
            current_page=page,
            has_next_page=page < total_pages,
            source=self.name,
            total_results=len(items),
        )

    async def search(
        self, query: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        needle = query.lower()
        return await self._respond(
            "search",
            (query, page),
            token,
            lambda: self._page([a for a in self.catalog if needle in a.title.lower()], page),
        )

    async def get_by_id(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> Anime | None:
        return await self._respond(
            "get_by_id",
            (anime_id,),
            token,
            lambda: next((a for a in self.catalog if a.id == anime_id), None),
        )

    async def get_episodes(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> list[Episode]:
        return await self._respond("get_episodes", (anime_id,), token, list)

    async def get_trending(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        return await self._respond(
            "get_trending", (page,), token, lambda: self._page(self.catalog, page)
        )

    async def get_latest(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        return await self._respond(
            "get_latest", (page,), token, lambda: self._page(list(reversed(self.catalog)), page)
        )

    async def get_top_rated(
        self, page: int = 1, limit: int = 10, *, token: CancellationToken | None = None
    ) -> list[TopAnime]:
        def ranked() -> list[TopAnime]:
            ordered = sorted(self.catalog, key=lambda a: a.rating or 0, reverse=True)
            start = (page - 1) * limit
            return [
                TopAnime(rank=start + i + 1, anime=anime)
                for i, anime in enumerate(ordered[start:start + limit])
            ]

        return await self._respond("get_top_rated", (page, limit), token, ranked)

    async def get_by_genre(
        self, genre: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        wanted = genre.lower()
        return await self._respond(
            "get_by_genre",
            (genre, page),
            token,
            lambda: self._page(
                [a for a in self.catalog if wanted in (g.lower() for g in a.genres)], page
            ),
        )

    async def get_episode_servers(
        self, episode_id: str, *, token: CancellationToken | None = None
    ) -> list[EpisodeServer]:
        return await self._respond("get_episode_servers", (episode_id,), token, list)

    async def get_streaming_links(
        self,
        episode_id: str,
        server: str | None = None,
        category: str = "sub",
        *,
        token: CancellationToken | None = None,
    ) -> StreamingData:
        return await self._respond(
            "get_streaming_links", (episode_id, server, category), token, StreamingData
        )

    async def health_check(self, *, token: CancellationToken | None = None) -> bool:
        return await self._respond("health_check", (), token, lambda: self.healthy)

    def get_identifier(self) -> str:
        return f"mock://{self.name}"


__all__ = ["MockSource"]

"""
HTTP JSON Source Adapter

Generic adapter for content providers reachable through a JSON HTTP API
(self-hosted scraper APIs and similar). Each operation maps to a URL
template; optional capabilities are advertised only for the templates that
are configured.
"""

from typing import Any
from urllib.parse import quote

import httpx

from ..exceptions import SourceCallError
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


DEFAULT_ENDPOINTS: dict[str, str] = {
    "search": "/search?q={query}&page={page}",
    "get_by_id": "/anime/{id}",
    "get_episodes": "/anime/{id}/episodes",
    "get_trending": "/trending?page={page}",
    "get_latest": "/latest?page={page}",
    "get_top_rated": "/top-rated?page={page}&limit={limit}",
    "health_check": "/health",
}

OPTIONAL_ENDPOINTS: dict[str, Capability] = {
    "get_streaming_links": Capability.STREAMING_LINKS,
    "get_episode_servers": Capability.EPISODE_SERVERS,
    "get_by_genre": Capability.BY_GENRE,
}


class HttpSource(BaseSource):
    """
    Source adapter backed by a JSON HTTP API.

    Identifiers are exchanged with callers in prefixed form
    (``{id_prefix}{raw_id}``); the prefix is stripped before calling the API
    and added to every id in responses.

    Attributes:
        base_url: API root URL
        endpoints: Operation name → URL template (relative to base_url)
        id_prefix: Prefix identifying this source's ids (e.g. "hianime-")
        envelope: Optional key wrapping every response payload (e.g. "data")
        timeout: Per-request timeout in seconds

    Examples:
        >>> source = HttpSource(
        ...     name="HiAnime",
        ...     base_url="https://api.example.com/hianime",
        ...     id_prefix="hianime-",
        ...     endpoints={
        ...         "get_streaming_links": "/episode/{episode_id}/sources?server={server}&category={category}",
        ...     },
        ... )
        >>> result = await source.search("naruto")
    """

    def __init__(
        self,
        name: str,
        base_url: str,
        *,
        endpoints: dict[str, str] | None = None,
        id_prefix: str = "",
        envelope: str | None = None,
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ):
        super().__init__(name)
        self.base_url = base_url.rstrip("/")
        self.endpoints = {**DEFAULT_ENDPOINTS, **(endpoints or {})}
        self.id_prefix = id_prefix
        self.envelope = envelope
        self.headers = headers or {}
        self._http_client = http_client
        self.timeout = timeout
        self.capabilities = frozenset(
            cap for op, cap in OPTIONAL_ENDPOINTS.items() if self.endpoints.get(op)
        )

    def bind_client(self, http_client: httpx.AsyncClient) -> None:
        """Attach a shared HTTP client if none was given at construction."""
        if self._http_client is None:
            self._http_client = http_client

    def _raw_id(self, value: str) -> str:
        if self.id_prefix and value.startswith(self.id_prefix):
            return value[len(self.id_prefix):]
        return value

    def _prefixed(self, value: Any) -> str:
        value = str(value)
        if not self.id_prefix or value.startswith(self.id_prefix):
            return value
        return f"{self.id_prefix}{value}"

    def _url(self, operation: str, **params: Any) -> str:
        template = self.endpoints.get(operation)
        if not template:
            raise SourceCallError(
                f"{self.name} has no endpoint for {operation}", source=self.name
            )
        quoted = {k: quote(str(v if v is not None else ""), safe="") for k, v in params.items()}
        return f"{self.base_url}{template.format(**quoted)}"

    async def _get(
        self, operation: str, token: CancellationToken | None = None, **params: Any
    ) -> Any:
        if token is not None:
            token.raise_if_cancelled()

        if self._http_client is None:
            raise SourceCallError(f"{self.name} has no HTTP client bound", source=self.name)

        url = self._url(operation, **params)
        self.logger.debug("Requesting source API", operation=operation, url=url)
        try:
            response = await self._http_client.get(url, headers=self.headers, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise SourceCallError(
                f"{self.name} returned HTTP {e.response.status_code} for {operation}",
                source=self.name,
                status_code=e.response.status_code,
                cause=e,
            ) from e
        except httpx.RequestError as e:
            raise SourceCallError(
                f"{self.name} request failed for {operation}: {e.__class__.__name__}",
                source=self.name,
                cause=e,
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise SourceCallError(
                f"{self.name} returned invalid JSON for {operation}", source=self.name, cause=e
            ) from e
        if self.envelope and isinstance(payload, dict):
            payload = payload.get(self.envelope, payload)
        return payload

    def _anime(self, data: dict[str, Any]) -> Anime:
        anime = Anime.from_dict(data)
        anime.id = self._prefixed(anime.id)
        anime.source = anime.source or self.name
        return anime

    def _search_result(self, payload: Any, page: int) -> SearchResult:
        if isinstance(payload, list):
            payload = {"results": payload, "currentPage": page}
        result = SearchResult.from_dict(
            {**payload, "results": []}, source=self.name
        )
        result.results = [self._anime(item) for item in payload.get("results") or []]
        result.current_page = result.current_page or page
        return result

    async def search(
        self, query: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        payload = await self._get("search", token, query=query, page=page)
        return self._search_result(payload, page)

    async def get_by_id(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> Anime | None:
        payload = await self._get("get_by_id", token, id=self._raw_id(anime_id))
        if not payload:
            return None
        return self._anime(payload)

    async def get_episodes(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> list[Episode]:
        payload = await self._get("get_episodes", token, id=self._raw_id(anime_id))
        if isinstance(payload, dict):
            payload = payload.get("episodes") or []
        episodes = [Episode.from_dict(item) for item in payload]
        for episode in episodes:
            episode.id = self._prefixed(episode.id)
        return episodes

    async def get_trending(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        payload = await self._get("get_trending", token, page=page)
        return self._search_result(payload, page)

    async def get_latest(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        payload = await self._get("get_latest", token, page=page)
        return self._search_result(payload, page)

    async def get_top_rated(
        self, page: int = 1, limit: int = 10, *, token: CancellationToken | None = None
    ) -> list[TopAnime]:
        payload = await self._get("get_top_rated", token, page=page, limit=limit)
        if isinstance(payload, dict):
            payload = payload.get("results") or []
        return [
            TopAnime(rank=int(item["rank"]), anime=self._anime(item["anime"]))
            for item in payload
        ]

    async def get_by_genre(
        self, genre: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        payload = await self._get("get_by_genre", token, genre=genre, page=page)
        return self._search_result(payload, page)

    async def get_episode_servers(
        self, episode_id: str, *, token: CancellationToken | None = None
    ) -> list[EpisodeServer]:
        payload = await self._get(
            "get_episode_servers", token, episode_id=self._raw_id(episode_id)
        )
        if isinstance(payload, dict):
            payload = payload.get("servers") or []
        return [EpisodeServer.from_dict(item) for item in payload]

    async def get_streaming_links(
        self,
        episode_id: str,
        server: str | None = None,
        category: str = "sub",
        *,
        token: CancellationToken | None = None,
    ) -> StreamingData:
        payload = await self._get(
            "get_streaming_links",
            token,
            episode_id=self._raw_id(episode_id),
            server=server or "",
            category=category,
        )
        return StreamingData.from_dict(payload or {}, source=self.name)

    async def health_check(self, *, token: CancellationToken | None = None) -> bool:
        await self._get("health_check", token)
        return True

    def get_identifier(self) -> str:
        return self.base_url


__all__ = ["HttpSource", "DEFAULT_ENDPOINTS", "OPTIONAL_ENDPOINTS"]

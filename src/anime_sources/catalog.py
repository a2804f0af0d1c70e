"""
Metadata Catalog Client

Client for the AniList GraphQL API, used as a higher-fidelity catalog for
genre listings and ``anilist-`` identifiers. Responses are cached in memory
for a fixed window.
"""

import json
import re
from typing import Any

import httpx

from .exceptions import CatalogError
from .log_config import get_context_logger
from .resilience.cancellation import CancellationToken
from .routing import CATALOG_PREFIX
from .time_provider import RealtimeTimeProvider, TimeProvider
from .types import Anime, SearchResult


CATALOG_NAME = "AniList"
DEFAULT_CATALOG_URL = "https://graphql.anilist.co"
DEFAULT_CACHE_TTL = 600.0

FORMAT_MAPPING = {
    "TV": "TV",
    "MOVIE": "Movie",
    "OVA": "OVA",
    "ONA": "ONA",
    "SPECIAL": "Special",
}

STATUS_MAPPING = {
    "FINISHED": "Completed",
    "RELEASING": "Ongoing",
    "NOT_YET_RELEASED": "Upcoming",
    "CANCELLED": "Completed",
}

MEDIA_FIELDS = """
    id
    title { romaji english native }
    format
    status
    description
    startDate { year }
    season
    episodes
    averageScore
    genres
    studios { nodes { name } }
    coverImage { large medium }
    isAdult
"""

PAGE_INFO = "pageInfo { currentPage lastPage hasNextPage perPage }"

_HTML_TAG = re.compile(r"<[^>]*>")


def media_to_anime(media: dict[str, Any]) -> Anime:
    """Map an AniList ``Media`` object to an Anime record."""
    title = media.get("title") or {}
    cover = media.get("coverImage") or {}
    image = cover.get("large") or cover.get("medium")
    description = _HTML_TAG.sub("", media.get("description") or "").strip()
    studios = (media.get("studios") or {}).get("nodes") or []
    season = media.get("season")

    return Anime(
        id=f"{CATALOG_PREFIX}{media['id']}",
        title=title.get("english") or title.get("romaji") or "",
        title_japanese=title.get("native"),
        image=image,
        cover=image,
        description=description or "No description available.",
        type=FORMAT_MAPPING.get(media.get("format") or "", "TV"),
        status=STATUS_MAPPING.get(media.get("status") or "", "Completed"),
        rating=media.get("averageScore"),
        episodes=media.get("episodes") or 0,
        genres=list(media.get("genres") or []),
        studios=[studio["name"] for studio in studios if studio.get("name")],
        season=season.lower() if season else None,
        year=(media.get("startDate") or {}).get("year"),
        source=CATALOG_NAME,
    )


class CatalogClient:
    """
    AniList GraphQL client.

    Attributes:
        url: GraphQL endpoint
        cache_ttl: Seconds a response stays cached

    Examples:
        >>> catalog = CatalogClient(http_client)
        >>> page = await catalog.search_by_genre("Action", page=1, per_page=50)
        >>> anime = await catalog.get_by_id(16498)
        >>> anime.id
        'anilist-16498'
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        url: str = DEFAULT_CATALOG_URL,
        cache_ttl: float = DEFAULT_CACHE_TTL,
        timeout: float = 10.0,
        time_provider: TimeProvider | None = None,
    ):
        self._http_client = http_client
        self.url = url
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self.time_provider = time_provider or RealtimeTimeProvider()
        self.logger = get_context_logger("catalog_client")
        self._cache: dict[str, tuple[float, Any]] = {}

    name = CATALOG_NAME

    def bind_client(self, http_client: httpx.AsyncClient) -> None:
        if self._http_client is None:
            self._http_client = http_client

    def clear_cache(self) -> None:
        self._cache.clear()

    async def query(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        token: CancellationToken | None = None,
    ) -> dict[str, Any]:
        """
        Execute a GraphQL query and return its ``data`` object.

        Raises:
            CatalogError: On HTTP failure, invalid JSON or GraphQL errors
        """
        variables = variables or {}
        cache_key = f"{query}:{json.dumps(variables, sort_keys=True)}"
        cached = self._cache.get(cache_key)
        if cached is not None and cached[0] > self.time_provider.now():
            return cached[1]

        if token is not None:
            token.raise_if_cancelled()
        if self._http_client is None:
            raise CatalogError("Catalog client has no HTTP client bound")

        try:
            response = await self._http_client.post(
                self.url,
                json={"query": query, "variables": variables},
                headers={"Content-Type": "application/json", "Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise CatalogError(
                f"Catalog returned HTTP {e.response.status_code}",
                status_code=e.response.status_code,
            ) from e
        except httpx.RequestError as e:
            raise CatalogError(f"Catalog request failed: {e.__class__.__name__}") from e
        except ValueError as e:
            raise CatalogError("Catalog returned invalid JSON") from e

        if payload.get("errors"):
            messages = [err.get("message", str(err)) for err in payload["errors"]]
            raise CatalogError("Catalog query failed", context={"errors": messages})

        data = payload.get("data") or {}
        self._cache[cache_key] = (self.time_provider.now() + self.cache_ttl, data)
        return data

    def _page(self, data: dict[str, Any], page: int) -> SearchResult:
        page_data = data.get("Page") or {}
        info = page_data.get("pageInfo") or {}
        results = [media_to_anime(media) for media in page_data.get("media") or []]
        return SearchResult(
            results=results,
            total_pages=info.get("lastPage") or 1,
            current_page=page,
            has_next_page=bool(info.get("hasNextPage")),
            source=CATALOG_NAME,
        )

    async def search_by_genre(
        self,
        genre: str,
        page: int = 1,
        per_page: int = 20,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        """
        List anime in a genre; comma-separated genres match any of them.

        An empty first page retries the query as a tag search.
        """
        genres = [g.strip() for g in genre.split(",") if g.strip()] or [genre]
        if len(genres) > 1:
            query = (
                "query ($genreIn: [String], $page: Int, $perPage: Int) {"
                " Page(page: $page, perPage: $perPage) {"
                f" media(genre_in: $genreIn, type: ANIME, isAdult: false) {{ {MEDIA_FIELDS} }}"
                f" {PAGE_INFO} }} }}"
            )
            variables: dict[str, Any] = {"genreIn": genres, "page": page, "perPage": per_page}
        else:
            query = (
                "query ($genre: String, $page: Int, $perPage: Int) {"
                " Page(page: $page, perPage: $perPage) {"
                f" media(genre: $genre, type: ANIME, isAdult: false) {{ {MEDIA_FIELDS} }}"
                f" {PAGE_INFO} }} }}"
            )
            variables = {"genre": genres[0], "page": page, "perPage": per_page}

        result = self._page(await self.query(query, variables, token=token), page)
        if not result.results and page == 1:
            self.logger.debug("Genre returned nothing, retrying as tag", genre=genres[0])
            return await self.search_by_tag(genres[0], page, per_page, token=token)
        return result

    async def search_by_tag(
        self,
        tag: str,
        page: int = 1,
        per_page: int = 20,
        *,
        token: CancellationToken | None = None,
    ) -> SearchResult:
        query = (
            "query ($tag: String, $page: Int, $perPage: Int) {"
            " Page(page: $page, perPage: $perPage) {"
            f" media(tag: $tag, type: ANIME, isAdult: false) {{ {MEDIA_FIELDS} }}"
            f" {PAGE_INFO} }} }}"
        )
        data = await self.query(query, {"tag": tag, "page": page, "perPage": per_page}, token=token)
        return self._page(data, page)

    async def get_by_id(
        self, catalog_id: int, *, token: CancellationToken | None = None
    ) -> Anime | None:
        query = f"query ($id: Int) {{ Media(id: $id, type: ANIME) {{ {MEDIA_FIELDS} }} }}"
        media = (await self.query(query, {"id": catalog_id}, token=token)).get("Media")
        return media_to_anime(media) if media else None

    async def search_by_title(
        self, title: str, *, token: CancellationToken | None = None
    ) -> Anime | None:
        query = f"query ($search: String) {{ Media(search: $search, type: ANIME) {{ {MEDIA_FIELDS} }} }}"
        media = (await self.query(query, {"search": title}, token=token)).get("Media")
        return media_to_anime(media) if media else None

    async def get_genre_collection(self, *, token: CancellationToken | None = None) -> list[str]:
        data = await self.query("query { GenreCollection }", token=token)
        return list(data.get("GenreCollection") or [])


__all__ = [
    "CatalogClient",
    "media_to_anime",
    "CATALOG_NAME",
    "DEFAULT_CATALOG_URL",
    "DEFAULT_CACHE_TTL",
    "FORMAT_MAPPING",
    "STATUS_MAPPING",
]

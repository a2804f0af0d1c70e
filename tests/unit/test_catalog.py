"""Unit tests for the AniList catalog client."""

import json

import httpx
import pytest

from anime_sources.catalog import CatalogClient, media_to_anime
from anime_sources.exceptions import CatalogError


NARUTO = {
    "id": 20,
    "title": {"romaji": "NARUTO", "english": "Naruto", "native": "ナルト"},
    "format": "TV",
    "status": "FINISHED",
    "description": "<b>Naruto</b> Uzumaki wants to be Hokage.<br>",
    "startDate": {"year": 2002},
    "season": "FALL",
    "episodes": 220,
    "averageScore": 79,
    "genres": ["Action", "Adventure"],
    "studios": {"nodes": [{"name": "Pierrot"}]},
    "coverImage": {"large": "https://img.test/naruto-l.jpg", "medium": "https://img.test/naruto-m.jpg"},
    "isAdult": False,
}


def page_payload(media: list[dict], last_page: int = 1) -> dict:
    return {
        "data": {
            "Page": {
                "media": media,
                "pageInfo": {"currentPage": 1, "lastPage": last_page, "hasNextPage": last_page > 1},
            }
        }
    }


class CatalogServer:
    """MockTransport handler recording GraphQL requests."""

    def __init__(self, responder):
        self.responder = responder
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        return self.responder(body)


def make_client(responder, time_provider) -> tuple[CatalogClient, CatalogServer]:
    server = CatalogServer(responder)
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(server))
    return CatalogClient(http_client, time_provider=time_provider), server


class TestMediaToAnime:
    """Test AniList media mapping."""

    def test_full_record(self):
        anime = media_to_anime(NARUTO)

        assert anime.id == "anilist-20"
        assert anime.title == "Naruto"
        assert anime.title_japanese == "ナルト"
        assert anime.description == "Naruto Uzumaki wants to be Hokage."
        assert anime.type == "TV"
        assert anime.status == "Completed"
        assert anime.rating == 79
        assert anime.year == 2002
        assert anime.season == "fall"
        assert anime.studios == ["Pierrot"]
        assert anime.image == anime.cover == "https://img.test/naruto-l.jpg"
        assert anime.source == "AniList"

    def test_sparse_record_defaults(self):
        anime = media_to_anime({"id": 1, "title": {"romaji": "Akira"}, "format": "MOVIE", "status": "RELEASING"})

        assert anime.title == "Akira"
        assert anime.type == "Movie"
        assert anime.status == "Ongoing"
        assert anime.description == "No description available."
        assert anime.episodes == 0
        assert anime.season is None


@pytest.mark.asyncio
class TestCatalogClient:
    """Test queries, caching and error mapping."""

    async def test_search_by_genre(self, time_provider):
        catalog, server = make_client(lambda body: httpx.Response(200, json=page_payload([NARUTO], 4)), time_provider)

        result = await catalog.search_by_genre("Action", page=1, per_page=50)

        assert result.source == "AniList"
        assert result.total_pages == 4
        assert result.has_next_page
        assert result.results[0].id == "anilist-20"
        assert server.requests[0]["variables"] == {"genre": "Action", "page": 1, "perPage": 50}

    async def test_multiple_genres_use_genre_in(self, time_provider):
        catalog, server = make_client(lambda body: httpx.Response(200, json=page_payload([NARUTO])), time_provider)

        await catalog.search_by_genre("Action, Adventure")

        assert server.requests[0]["variables"]["genreIn"] == ["Action", "Adventure"]
        assert "genre_in" in server.requests[0]["query"]

    async def test_empty_genre_retries_as_tag(self, time_provider):
        def respond(body):
            if "tag" in body["variables"]:
                return httpx.Response(200, json=page_payload([NARUTO]))
            return httpx.Response(200, json=page_payload([]))

        catalog, server = make_client(respond, time_provider)

        result = await catalog.search_by_genre("Ninja")

        assert len(server.requests) == 2
        assert server.requests[1]["variables"]["tag"] == "Ninja"
        assert result.results[0].title == "Naruto"

    async def test_responses_are_cached(self, time_provider):
        catalog, server = make_client(lambda body: httpx.Response(200, json={"data": {"Media": NARUTO}}), time_provider)

        await catalog.get_by_id(20)
        await catalog.get_by_id(20)
        assert len(server.requests) == 1

        time_provider.advance(catalog.cache_ttl)
        await catalog.get_by_id(20)
        assert len(server.requests) == 2

    async def test_missing_media(self, time_provider):
        catalog, _ = make_client(lambda body: httpx.Response(200, json={"data": {"Media": None}}), time_provider)
        assert await catalog.search_by_title("Nothing") is None

    async def test_genre_collection(self, time_provider):
        catalog, _ = make_client(
            lambda body: httpx.Response(200, json={"data": {"GenreCollection": ["Action", "Drama"]}}),
            time_provider,
        )
        assert await catalog.get_genre_collection() == ["Action", "Drama"]

    async def test_http_error(self, time_provider):
        catalog, _ = make_client(lambda body: httpx.Response(429, json={}), time_provider)

        with pytest.raises(CatalogError) as exc_info:
            await catalog.get_by_id(20)
        assert exc_info.value.status_code == 429

    async def test_graphql_errors(self, time_provider):
        catalog, _ = make_client(
            lambda body: httpx.Response(200, json={"errors": [{"message": "Invalid genre"}]}),
            time_provider,
        )

        with pytest.raises(CatalogError, match="query failed"):
            await catalog.get_genre_collection()

    async def test_unbound_client(self, time_provider):
        catalog = CatalogClient(time_provider=time_provider)
        with pytest.raises(CatalogError, match="no HTTP client"):
            await catalog.get_genre_collection()

"""
Content and Health Data Types

Dataclasses shared by source adapters, the resilience layer and the
SourceManager façade. Adapters may return plain dicts (JSON payloads); the
``from_dict`` constructors accept both camelCase and snake_case keys.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first present, non-None value among keys."""
    for key in keys:
        value = data.get(key)
        if value is not None:
            return value
    return default


class Capability(str, Enum):
    """Optional source capabilities, resolved once at registration."""

    STREAMING_LINKS = "streaming_links"
    EPISODE_SERVERS = "episode_servers"
    BY_GENRE = "by_genre"


class HealthStatus(str, Enum):
    """Health probe outcome."""

    ONLINE = "online"
    OFFLINE = "offline"
    DEGRADED = "degraded"


class ServerType(str, Enum):
    """Episode server audio category."""

    SUB = "sub"
    DUB = "dub"
    RAW = "raw"


@dataclass
class Anime:
    """
    Catalog entry for a single anime.

    Attributes:
        id: Source-prefixed identifier (e.g. ``hianime-one-piece-100``)
        title: Display title
        source: Name of the source that produced the record
        streaming_id: Identifier of the matched streaming entry when the
            record came from the metadata catalog
    """

    id: str
    title: str
    title_japanese: str | None = None
    image: str | None = None
    cover: str | None = None
    description: str | None = None
    type: str | None = None
    status: str | None = None
    rating: float | None = None
    episodes: int | None = None
    genres: list[str] = field(default_factory=list)
    studios: list[str] = field(default_factory=list)
    season: str | None = None
    year: int | None = None
    source: str | None = None
    streaming_id: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Anime":
        """Create an Anime from an adapter payload."""
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            title_japanese=_pick(data, "title_japanese", "titleJapanese"),
            image=data.get("image"),
            cover=data.get("cover"),
            description=data.get("description"),
            type=data.get("type"),
            status=data.get("status"),
            rating=data.get("rating"),
            episodes=data.get("episodes"),
            genres=list(data.get("genres") or []),
            studios=list(data.get("studios") or []),
            season=data.get("season"),
            year=data.get("year"),
            source=data.get("source"),
            streaming_id=_pick(data, "streaming_id", "streamingId"),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a plain dictionary."""
        return asdict(self)


@dataclass
class Episode:
    """Single episode of an anime."""

    id: str
    number: int
    title: str | None = None
    is_filler: bool = False
    has_sub: bool = True
    has_dub: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Episode":
        return cls(
            id=str(data["id"]),
            number=int(data.get("number") or 0),
            title=data.get("title"),
            is_filler=bool(_pick(data, "is_filler", "isFiller", default=False)),
            has_sub=bool(_pick(data, "has_sub", "hasSub", default=True)),
            has_dub=bool(_pick(data, "has_dub", "hasDub", default=False)),
        )


@dataclass
class SearchResult:
    """
    Paginated list of anime returned by search and listing operations.

    Aggregating operations also fill the diagnostic fields: which sources
    contributed, which failed (with their error message) and free-form
    messages for sources that returned nothing.
    """

    results: list[Anime] = field(default_factory=list)
    total_pages: int = 0
    current_page: int = 1
    has_next_page: bool = False
    source: str = "none"
    total_results: int | None = None
    contributing_sources: list[str] = field(default_factory=list)
    failed_sources: list[dict[str, str]] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @classmethod
    def empty(cls, page: int = 1, source: str = "none") -> "SearchResult":
        """Typed empty result returned when every source is exhausted."""
        return cls(results=[], total_pages=0, current_page=page, has_next_page=False, source=source)

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str | None = None) -> "SearchResult":
        results = [
            item if isinstance(item, Anime) else Anime.from_dict(item)
            for item in data.get("results") or []
        ]
        return cls(
            results=results,
            total_pages=int(_pick(data, "total_pages", "totalPages", default=0)),
            current_page=int(_pick(data, "current_page", "currentPage", default=1)),
            has_next_page=bool(_pick(data, "has_next_page", "hasNextPage", default=False)),
            source=source or data.get("source") or "none",
            total_results=_pick(data, "total_results", "totalResults"),
        )

    def __len__(self) -> int:
        return len(self.results)


@dataclass
class TopAnime:
    """Ranked entry of a top-rated listing."""

    rank: int
    anime: Anime

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TopAnime":
        anime = data["anime"]
        return cls(
            rank=int(data["rank"]),
            anime=anime if isinstance(anime, Anime) else Anime.from_dict(anime),
        )


@dataclass
class EpisodeServer:
    """Streaming server offering an episode."""

    name: str
    url: str = ""
    type: ServerType = ServerType.SUB

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EpisodeServer":
        return cls(
            name=data["name"],
            url=data.get("url") or "",
            type=ServerType(data.get("type") or "sub"),
        )


DEFAULT_EPISODE_SERVERS: tuple[tuple[str, ServerType], ...] = (
    ("hd-1", ServerType.SUB),
    ("hd-2", ServerType.SUB),
)


def default_episode_servers() -> list[EpisodeServer]:
    """Fallback server list used when no source returns any server."""
    return [EpisodeServer(name=name, type=kind) for name, kind in DEFAULT_EPISODE_SERVERS]


@dataclass
class VideoSource:
    """Playable video URL."""

    url: str
    quality: str | None = None
    is_m3u8: bool = False


@dataclass
class Subtitle:
    """Subtitle track."""

    url: str
    lang: str
    label: str | None = None


@dataclass
class StreamingData:
    """
    Resolved streaming links for an episode.

    An instance with no ``sources`` is the typed empty result returned when no
    source could resolve the episode.
    """

    sources: list[VideoSource] = field(default_factory=list)
    subtitles: list[Subtitle] = field(default_factory=list)
    headers: dict[str, str] = field(default_factory=dict)
    intro: dict[str, int] | None = None
    outro: dict[str, int] | None = None
    source: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: str | None = None) -> "StreamingData":
        return cls(
            sources=[
                VideoSource(
                    url=item["url"],
                    quality=item.get("quality"),
                    is_m3u8=bool(_pick(item, "is_m3u8", "isM3U8", default=False)),
                )
                for item in data.get("sources") or []
            ],
            subtitles=[
                Subtitle(url=item["url"], lang=item.get("lang") or "", label=item.get("label"))
                for item in data.get("subtitles") or []
            ],
            headers=dict(data.get("headers") or {}),
            intro=data.get("intro"),
            outro=data.get("outro"),
            source=source or data.get("source"),
        )

    @property
    def is_empty(self) -> bool:
        return not self.sources


@dataclass
class SourceHealth:
    """Result of the most recent health probe for one source."""

    name: str
    status: HealthStatus = HealthStatus.ONLINE
    latency: float | None = None
    last_check: float | None = None
    error: str | None = None

    @property
    def is_available(self) -> bool:
        return self.status != HealthStatus.OFFLINE

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data


@dataclass
class BrowseFilters:
    """
    Filter, sort and pagination parameters for browse operations.

    Attributes:
        sort: One of rating, year, title, episodes, popularity, trending,
            recently_released, shuffle
        order: ``asc`` or ``desc``
        limit: Page size; ``None`` selects the operation default
    """

    type: str | None = None
    genres: list[str] = field(default_factory=list)
    status: str | None = None
    year: int | None = None
    sort: str | None = None
    order: str = "desc"
    page: int = 1
    limit: int | None = None
    source: str | None = None


__all__ = [
    "Capability",
    "HealthStatus",
    "ServerType",
    "Anime",
    "Episode",
    "SearchResult",
    "TopAnime",
    "EpisodeServer",
    "DEFAULT_EPISODE_SERVERS",
    "default_episode_servers",
    "VideoSource",
    "Subtitle",
    "StreamingData",
    "SourceHealth",
    "BrowseFilters",
]

"""
Content Source Protocol and Base Class

Defines the capability-set interface every source adapter exposes. Mandatory
operations are part of the protocol; optional operations are detected once
when the source is registered and recorded as Capability flags, so callers
never probe for methods per call.
"""

from abc import ABC, abstractmethod
from typing import Any, Iterable, Protocol

from ..exceptions import SourceConfigError
from ..log_config import get_context_logger
from ..resilience.cancellation import CancellationToken
from ..types import Anime, Capability, Episode, SearchResult, TopAnime


MANDATORY_OPERATIONS: tuple[str, ...] = (
    "search",
    "get_by_id",
    "get_episodes",
    "get_trending",
    "get_latest",
    "get_top_rated",
    "health_check",
)

OPTIONAL_OPERATIONS: dict[Capability, str] = {
    Capability.STREAMING_LINKS: "get_streaming_links",
    Capability.EPISODE_SERVERS: "get_episode_servers",
    Capability.BY_GENRE: "get_by_genre",
}


class ContentSource(Protocol):
    """
    Protocol for anime content sources.

    Every method accepts a keyword ``token`` the adapter may check at its own
    suspension points; the resilience layer also cancels the running task.

    Optional operations, detected at registration:
        get_streaming_links(episode_id, server=None, category="sub", *, token=None) -> StreamingData
        get_episode_servers(episode_id, *, token=None) -> list[EpisodeServer]
        get_by_genre(genre, page=1, *, token=None) -> SearchResult

    Examples:
        >>> class MySource:
        ...     name = "MySource"
        ...     async def search(self, query, page=1, *, token=None):
        ...         return SearchResult(results=[...])
        ...     ...
    """

    name: str

    async def search(
        self, query: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult: ...

    async def get_by_id(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> Anime | None: ...

    async def get_episodes(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> list[Episode]: ...

    async def get_trending(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult: ...

    async def get_latest(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult: ...

    async def get_top_rated(
        self, page: int = 1, limit: int = 10, *, token: CancellationToken | None = None
    ) -> list[TopAnime]: ...

    async def health_check(self, *, token: CancellationToken | None = None) -> bool: ...


class BaseSource(ABC):
    """
    Base class for source adapters.

    Subclasses implement the mandatory operations and may add any of the
    optional ones. A subclass can also set ``capabilities`` explicitly to
    restrict what is advertised.
    """

    capabilities: Iterable[Capability] | None = None

    def __init__(self, name: str | None = None):
        self.name = name or self.__class__.__name__
        self.logger = get_context_logger(f"anime_source.{self.name}")

    @abstractmethod
    async def search(
        self, query: str, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        pass

    @abstractmethod
    async def get_by_id(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> Anime | None:
        pass

    @abstractmethod
    async def get_episodes(
        self, anime_id: str, *, token: CancellationToken | None = None
    ) -> list[Episode]:
        pass

    @abstractmethod
    async def get_trending(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        pass

    @abstractmethod
    async def get_latest(
        self, page: int = 1, *, token: CancellationToken | None = None
    ) -> SearchResult:
        pass

    @abstractmethod
    async def get_top_rated(
        self, page: int = 1, limit: int = 10, *, token: CancellationToken | None = None
    ) -> list[TopAnime]:
        pass

    @abstractmethod
    async def health_check(self, *, token: CancellationToken | None = None) -> bool:
        pass

    def get_identifier(self) -> str:
        """Identifier for logging/debugging."""
        return self.name


def validate_source(source: Any) -> None:
    """
    Check that ``source`` implements every mandatory operation.

    Raises:
        SourceConfigError: If the name or an operation is missing
    """
    name = getattr(source, "name", None)
    if not name:
        raise SourceConfigError("Source must have a non-empty name", config_key="name")
    missing = [op for op in MANDATORY_OPERATIONS if not callable(getattr(source, op, None))]
    if missing:
        raise SourceConfigError(
            f"Source {name} is missing mandatory operations: {', '.join(missing)}",
            config_key="operations",
        )


def resolve_capabilities(source: Any) -> frozenset[Capability]:
    """
    Determine the optional capabilities of a source, once.

    An explicit ``capabilities`` attribute wins; otherwise the presence of
    each optional method decides.
    """
    declared = getattr(source, "capabilities", None)
    if declared is not None:
        capabilities = frozenset(Capability(cap) for cap in declared)
        for cap in capabilities:
            if not callable(getattr(source, OPTIONAL_OPERATIONS[cap], None)):
                raise SourceConfigError(
                    f"Source {source.name} declares {cap.value} without implementing "
                    f"{OPTIONAL_OPERATIONS[cap]}",
                    config_key="capabilities",
                )
        return capabilities

    return frozenset(
        cap
        for cap, method in OPTIONAL_OPERATIONS.items()
        if callable(getattr(source, method, None))
    )


__all__ = [
    "ContentSource",
    "BaseSource",
    "MANDATORY_OPERATIONS",
    "OPTIONAL_OPERATIONS",
    "validate_source",
    "resolve_capabilities",
]

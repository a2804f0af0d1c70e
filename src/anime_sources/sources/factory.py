"""Source factory: build adapters from configuration entries."""

from typing import Any, Union

import httpx

from ..exceptions import SourceConfigError
from ..types import Anime
from .base import ContentSource
from .http import HttpSource
from .mock import MockSource


def create_source(
    source: Union[dict[str, Any], ContentSource],
    http_client: httpx.AsyncClient | None = None,
) -> ContentSource:
    """
    Factory function to create a source from a config dict.

    Adapter objects are returned as-is. Dicts select the adapter with
    ``type`` ("http" by default, or "mock").

    Args:
        source: Dict config or adapter instance
        http_client: Shared client for HTTP adapters

    Returns:
        ContentSource: Adapter instance

    Raises:
        SourceConfigError: If the config is invalid

    Examples:
        >>> source = create_source({
        ...     "name": "HiAnime",
        ...     "base_url": "https://api.example.com/hianime",
        ...     "id_prefix": "hianime-",
        ... })

        >>> create_source({"type": "mock", "name": "Local"})
    """
    if not isinstance(source, dict):
        if callable(getattr(source, "search", None)):
            return source
        raise SourceConfigError(
            f"Source must be a dict or an adapter, got {type(source).__name__}"
        )

    name = source.get("name")
    if not name:
        raise SourceConfigError(f"Source config must have a 'name': {source}", config_key="name")

    kind = source.get("type", "http")
    if kind == "mock":
        return MockSource(
            name,
            catalog=[Anime.from_dict(item) for item in source.get("catalog") or []],
            capabilities=source.get("capabilities") or (),
            delay=float(source.get("delay", 0.0)),
            healthy=bool(source.get("healthy", True)),
        )

    if kind == "http":
        base_url = source.get("base_url") or source.get("url")
        if not base_url:
            raise SourceConfigError(
                f"HTTP source {name} must have 'base_url' or 'url'", config_key="base_url"
            )
        return HttpSource(
            name,
            base_url,
            endpoints=source.get("endpoints"),
            id_prefix=source.get("id_prefix", ""),
            envelope=source.get("envelope"),
            headers=source.get("headers"),
            http_client=http_client,
            timeout=float(source.get("timeout", 10.0)),
        )

    raise SourceConfigError(f"Unknown source type '{kind}' for {name}", config_key="type")


__all__ = ["create_source"]

"""HTTP client manager for connection pooling and lifecycle management."""

from dataclasses import dataclass, field
from typing import Any, Optional

import httpx


DEFAULT_USER_AGENT = "anime-sources/1.0"


@dataclass
class HttpClientConfig:
    """Connection settings shared by HTTP sources and the catalog client."""

    timeout: float = 10.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    keepalive_expiry: float = 5.0
    verify_ssl: bool = True
    follow_redirects: bool = True
    headers: dict[str, str] = field(default_factory=lambda: {"User-Agent": DEFAULT_USER_AGENT})

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "HttpClientConfig":
        data = dict(data or {})
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in data.items() if k in known})


class HttpClientManager:
    """
    Owns the pooled httpx.AsyncClient used by one SourceManager.

    The client is created lazily on first use and closed with ``close()``.
    Passing an existing client makes the manager borrow it; a borrowed client
    is never closed by the manager.
    """

    def __init__(
        self,
        config: HttpClientConfig | None = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or HttpClientConfig()
        self._client = client
        self._owns_client = client is None

    def get_client(self) -> httpx.AsyncClient:
        """Get or create the pooled HTTP client."""
        if self._client is None:
            cfg = self.config
            self._client = httpx.AsyncClient(
                timeout=cfg.timeout,
                limits=httpx.Limits(
                    max_connections=cfg.max_connections,
                    max_keepalive_connections=cfg.max_keepalive_connections,
                    keepalive_expiry=cfg.keepalive_expiry,
                ),
                verify=cfg.verify_ssl,
                follow_redirects=cfg.follow_redirects,
                headers=cfg.headers,
            )
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None


__all__ = ["HttpClientConfig", "HttpClientManager", "DEFAULT_USER_AGENT"]

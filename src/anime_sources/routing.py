"""
Identifier Routing

Content and episode identifiers carry a source prefix (``hianime-one-piece-100``).
The router maps prefixes to the source that issued them, with an optional
designated backup per prefix, and converts identifiers between sources.
"""

from dataclasses import dataclass
from typing import Any, Callable, Iterable


CATALOG_PREFIX = "anilist-"


@dataclass(frozen=True)
class RouteRule:
    """Prefix → source mapping with an optional backup source."""

    prefix: str
    source: str
    backup: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RouteRule":
        return cls(
            prefix=str(data["prefix"]).lower(),
            source=data["source"],
            backup=data.get("backup"),
        )


DEFAULT_ROUTES: tuple[RouteRule, ...] = (
    RouteRule("hianime-", "HiAnimeDirect", backup="HiAnime"),
    RouteRule("9anime-", "9Anime"),
    RouteRule("aniwave-", "Aniwave"),
    RouteRule("animeflv-", "AnimeFLV"),
    RouteRule("kaido-", "Kaido"),
    RouteRule("hanime-", "WatchHentai"),
    RouteRule("hh-", "WatchHentai"),
    RouteRule("watchhentai-", "WatchHentai"),
    RouteRule("gogoanime-", "Gogoanime"),
    RouteRule("zoro-", "Zoro"),
    RouteRule("animepahe-", "AnimePahe"),
)


class IdRouter:
    """
    Prefix routing table.

    Prefixes are matched case-insensitively; the longest matching prefix
    wins. The canonical prefix of a source is the first prefix routed to it
    (as primary or backup), so ``build_source_id("one-piece-100", "HiAnime")``
    yields ``hianime-one-piece-100``.

    Examples:
        >>> router = IdRouter()
        >>> router.match("hianime-one-piece-100").source
        'HiAnimeDirect'
        >>> router.extract_raw_id("hianime-one-piece-100")
        'one-piece-100'
        >>> router.route("hianime-x", is_available=lambda name: name == "HiAnime")
        'HiAnime'
    """

    def __init__(
        self,
        routes: Iterable[RouteRule | dict[str, Any]] | None = None,
        *,
        catalog_prefix: str = CATALOG_PREFIX,
    ):
        rules = [
            rule if isinstance(rule, RouteRule) else RouteRule.from_dict(rule)
            for rule in (DEFAULT_ROUTES if routes is None else routes)
        ]
        self.catalog_prefix = catalog_prefix.lower()
        self._rules = sorted(rules, key=lambda rule: len(rule.prefix), reverse=True)

        self._canonical: dict[str, str] = {}
        for rule in rules:
            self._canonical.setdefault(rule.source, rule.prefix)
            if rule.backup:
                self._canonical.setdefault(rule.backup, rule.prefix)

    @property
    def rules(self) -> list[RouteRule]:
        return list(self._rules)

    def match(self, content_id: str) -> RouteRule | None:
        lowered = content_id.lower()
        for rule in self._rules:
            if lowered.startswith(rule.prefix):
                return rule
        return None

    def is_catalog_id(self, content_id: str) -> bool:
        return content_id.lower().startswith(self.catalog_prefix)

    def has_known_prefix(self, content_id: str) -> bool:
        return self.match(content_id) is not None

    def route(self, content_id: str, is_available: Callable[[str], bool]) -> str | None:
        """
        Resolve the source for an identifier.

        Returns the mapped source if available, else the prefix's backup if
        available, else None so the caller falls back to priority selection.
        """
        rule = self.match(content_id)
        if rule is None:
            return None
        if is_available(rule.source):
            return rule.source
        if rule.backup and is_available(rule.backup):
            return rule.backup
        return None

    def extract_raw_id(self, content_id: str) -> str:
        rule = self.match(content_id)
        if rule is None:
            return content_id
        return content_id[len(rule.prefix):]

    def catalog_id(self, content_id: str) -> str | None:
        """Numeric catalog id of an ``anilist-`` identifier, or None."""
        if not self.is_catalog_id(content_id):
            return None
        raw = content_id[len(self.catalog_prefix):]
        return raw if raw.isdigit() else None

    def prefix_for(self, source: str) -> str | None:
        return self._canonical.get(source)

    def build_source_id(self, raw_id: str, source: str) -> str:
        """Prefix ``raw_id`` with the canonical prefix of ``source``."""
        return f"{self._canonical.get(source, '')}{raw_id}"


__all__ = ["IdRouter", "RouteRule", "DEFAULT_ROUTES", "CATALOG_PREFIX"]

"""
Browse Helpers

Local filtering, sorting and pagination applied to listings fetched from a
source, for the filtered-listing and browse operations.
"""

import math
import random
from dataclasses import dataclass, field
from typing import Any, Iterable

from .types import Anime, BrowseFilters


FILTERED_PAGE_SIZE = 20
BROWSE_PAGE_SIZE = 25

FIELD_SORTS = ("rating", "year", "title", "episodes")
LISTING_SORTS = ("popularity", "trending", "recently_released", "shuffle")


@dataclass
class BrowsePage:
    """One page of a locally filtered listing."""

    anime: list[Anime] = field(default_factory=list)
    total_pages: int = 0
    has_next_page: bool = False
    total_results: int = 0
    source: str | None = None

    @classmethod
    def empty(cls) -> "BrowsePage":
        return cls()

    def to_dict(self) -> dict[str, Any]:
        return {
            "anime": [anime.to_dict() for anime in self.anime],
            "total_pages": self.total_pages,
            "has_next_page": self.has_next_page,
            "total_results": self.total_results,
            "source": self.source,
        }


def _same(value: str | None, wanted: str) -> bool:
    return value is not None and value.lower() == wanted.lower()


def apply_filters(items: Iterable[Anime], filters: BrowseFilters) -> list[Anime]:
    """
    Keep the records matching every set filter.

    Type and status compare case-insensitively; a record matches the genre
    filter if any of its genres contains any requested genre.
    """
    filtered = list(items)
    if filters.type:
        filtered = [a for a in filtered if _same(a.type, filters.type)]
    if filters.genres:
        wanted = [g.lower() for g in filters.genres]
        filtered = [
            a for a in filtered
            if any(w in genre.lower() for genre in a.genres for w in wanted)
        ]
    if filters.status:
        filtered = [a for a in filtered if _same(a.status, filters.status)]
    if filters.year:
        filtered = [a for a in filtered if a.year == filters.year]
    return filtered


def sort_anime(items: list[Anime], sort: str | None = "rating", order: str = "desc") -> list[Anime]:
    """
    Sort by rating, year, title or episodes.

    ``desc`` puts the highest rating, year and episode count first and the
    title sort in alphabetical order; ``asc`` reverses either. Unknown sort
    keys sort by rating.
    """
    if sort == "title":
        ordered = sorted(items, key=lambda a: (a.title or "").lower())
    else:
        attr = sort if sort in ("year", "episodes") else "rating"
        ordered = sorted(items, key=lambda a: getattr(a, attr) or 0, reverse=True)
    if order == "asc":
        ordered.reverse()
    return ordered


def shuffle(items: list[Anime], rng: random.Random | None = None) -> list[Anime]:
    shuffled = list(items)
    (rng or random.Random()).shuffle(shuffled)
    return shuffled


def order_listing(
    items: list[Anime],
    sort: str | None,
    order: str = "desc",
    rng: random.Random | None = None,
) -> list[Anime]:
    """
    Apply a browse sort.

    popularity and trending keep the listing order; recently_released sorts
    by year, newest first; shuffle randomizes; field sorts go through
    ``sort_anime``.
    """
    sort = sort or "popularity"
    if sort in ("popularity", "trending"):
        return list(items)
    if sort == "recently_released":
        return sorted(items, key=lambda a: a.year or 0, reverse=True)
    if sort == "shuffle":
        return shuffle(items, rng)
    return sort_anime(items, sort, order)


def paginate(items: list[Anime], page: int = 1, limit: int = FILTERED_PAGE_SIZE) -> BrowsePage:
    page = max(page, 1)
    start = (page - 1) * limit
    total = len(items)
    return BrowsePage(
        anime=items[start:start + limit],
        total_pages=math.ceil(total / limit),
        has_next_page=start + limit < total,
        total_results=total,
    )


__all__ = [
    "BrowsePage",
    "apply_filters",
    "sort_anime",
    "shuffle",
    "order_listing",
    "paginate",
    "FILTERED_PAGE_SIZE",
    "BROWSE_PAGE_SIZE",
    "FIELD_SORTS",
    "LISTING_SORTS",
]

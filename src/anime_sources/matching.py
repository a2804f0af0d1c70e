"""
Title Matching

Title normalization, the normalized-title lookup table used to correlate
catalog entries with streaming entries, token-overlap similarity scoring and
completeness-based deduplication.
"""

import re
from typing import Iterable

from .events import SourceEvents
from .log_config import get_context_logger
from .routing import CATALOG_PREFIX
from .time_provider import RealtimeTimeProvider, TimeProvider
from .types import Anime


logger = get_context_logger("matching")

DEFAULT_LOOKUP_TTL = 3600.0

_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")
_FORMAT_SUFFIX = re.compile(r"\s+(movie|ova|ona|special|tv|series)$", re.IGNORECASE)
_SEASON_SUFFIX = re.compile(r"\s+(season|s)\s*\d+$", re.IGNORECASE)
_ORDINAL_SEASON_SUFFIX = re.compile(r"\s+\d+(st|nd|rd|th)\s+season$", re.IGNORECASE)
_YEAR_SUFFIX = re.compile(r"\s*\(?\d{4}\)?\s*$")
_PART = re.compile(r"\s*-?\s*(part|cour)\s*\d+", re.IGNORECASE)
_ORDINAL_ARC = re.compile(r"\s*-?\s*\d+(st|nd|rd|th)\s*(season|arc|cour)", re.IGNORECASE)
_LEADING_THE = re.compile(r"^the\s+", re.IGNORECASE)
_LEADING_A = re.compile(r"^a\s+", re.IGNORECASE)
_ROMAN = (
    (re.compile(r"\s+ii$", re.IGNORECASE), " 2"),
    (re.compile(r"\s+iii$", re.IGNORECASE), " 3"),
    (re.compile(r"\s+iv$", re.IGNORECASE), " 4"),
    (re.compile(r"\s+v$", re.IGNORECASE), " 5"),
)
_ORDINAL = re.compile(r"(\d+)(st|nd|rd|th)", re.IGNORECASE)

_SEASON_ANYWHERE = re.compile(r"\s*season\s*\d*", re.IGNORECASE)
_PART_ANYWHERE = re.compile(r"\s*-?\s*part\s*\d*", re.IGNORECASE)


def normalize_title(title: str | None) -> str:
    """
    Normalize a title for lookup and deduplication.

    Examples:
        >>> normalize_title("Attack on Titan Season 2")
        'attack on titan'
        >>> normalize_title("Naruto (2002)")
        'naruto'
        >>> normalize_title("The Rising of the Shield Hero II")
        'rising of the shield hero 2'
    """
    if not title:
        return ""

    text = _SPACES.sub(" ", _NON_WORD.sub(" ", title.lower())).strip()
    text = _FORMAT_SUFFIX.sub("", text)
    text = _SEASON_SUFFIX.sub("", text)
    text = _ORDINAL_SEASON_SUFFIX.sub("", text)
    text = _YEAR_SUFFIX.sub("", text)
    text = _PART.sub("", text, count=1)
    text = _ORDINAL_ARC.sub("", text, count=1)
    text = _LEADING_THE.sub("", text)
    text = _LEADING_A.sub("", text)
    for pattern, replacement in _ROMAN:
        text = pattern.sub(replacement, text)
    text = _ORDINAL.sub(r"\1", text)
    return text.strip()


def title_variations(title: str | None) -> list[str]:
    """
    Lookup keys for ``title`` in decreasing order of specificity.

    The first key is the normalized title; the rest strip one more marker
    each (format word, year, season, leading "the", part number). Keys of
    two characters or fewer are dropped.
    """
    normalized = normalize_title(title)
    candidates = [
        normalized,
        _FORMAT_SUFFIX.sub("", normalized),
        _YEAR_SUFFIX.sub("", normalized),
        _SEASON_ANYWHERE.sub("", normalized),
        _LEADING_THE.sub("", normalized),
        _PART_ANYWHERE.sub("", normalized),
        _ORDINAL_ARC.sub("", normalized),
    ]

    variations: list[str] = []
    for candidate in candidates:
        candidate = _SPACES.sub(" ", candidate).strip()
        if len(candidate) > 2 and candidate not in variations:
            variations.append(candidate)
    return variations


class LookupTable:
    """
    Normalized title → Anime index with a freshness window.

    The first record indexed under a key keeps it, so build the table from
    the most relevant listing first.

    Examples:
        >>> table = LookupTable()
        >>> table.build([Anime(id="hianime-aot-2", title="Attack on Titan Season 2")])
        1
        >>> table.lookup("Attack on Titan").id
        'hianime-aot-2'
    """

    def __init__(self, ttl: float = DEFAULT_LOOKUP_TTL, time_provider: TimeProvider | None = None):
        self.ttl = ttl
        self.time_provider = time_provider or RealtimeTimeProvider()
        self._index: dict[str, Anime] = {}
        self._built_at: float | None = None

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    @property
    def is_built(self) -> bool:
        return self._built_at is not None

    @property
    def is_fresh(self) -> bool:
        return self._built_at is not None and self.time_provider.now() - self._built_at < self.ttl

    def _add(self, key: str, anime: Anime) -> None:
        if key:
            self._index.setdefault(key, anime)

    def build(self, items: Iterable[Anime]) -> int:
        """
        Rebuild the index from ``items``.

        Returns:
            Number of records indexed
        """
        self._index = {}
        count = 0
        for anime in items:
            count += 1
            normalized = normalize_title(anime.title)
            self._add(normalized, anime)

            japanese = normalize_title(anime.title_japanese)
            if japanese != normalized:
                self._add(japanese, anime)

            no_year = _YEAR_SUFFIX.sub("", normalized).strip()
            if no_year != normalized:
                self._add(no_year, anime)

            no_season = _SPACES.sub(" ", _SEASON_ANYWHERE.sub("", normalized)).strip()
            if no_season != normalized and len(no_season) > 5:
                self._add(no_season, anime)

        self._built_at = self.time_provider.now()
        logger.info(SourceEvents.LOOKUP_TABLE_BUILT, records=count, keys=len(self._index))
        return count

    def lookup(self, title: str) -> Anime | None:
        """Return the indexed record for the first matching title variation."""
        for key in title_variations(title):
            match = self._index.get(key)
            if match is not None:
                return match
        return None

    def clear(self) -> None:
        self._index = {}
        self._built_at = None


def _similarity_text(value: str) -> str:
    return _SPACES.sub(" ", _NON_WORD.sub(" ", value.lower())).strip()


def calculate_similarity(first: str, second: str) -> float:
    """
    Similarity score in [0, 1] between two titles.

    Exact match scores 1.0; when one contains the other the score is the
    length ratio; otherwise the share of overlapping words longer than two
    characters.
    """
    a = _similarity_text(first)
    b = _similarity_text(second)
    if not a or not b:
        return 0.0
    if a == b:
        return 1.0
    if a in b or b in a:
        shorter, longer = sorted((a, b), key=len)
        return len(shorter) / len(longer)

    words_a = [w for w in a.split() if len(w) > 2]
    words_b = [w for w in b.split() if len(w) > 2]
    if not words_a or not words_b:
        return 0.0
    matches = [w for w in words_a if any(w in other or other in w for other in words_b)]
    return len(matches) / max(len(words_a), len(words_b))


def find_best_match(title: str, candidates: list[Anime]) -> Anime | None:
    """
    Pick the candidate whose title best matches ``title``.

    A lone candidate must score above 0.5; otherwise the best score must
    exceed 0.4.
    """
    if not candidates:
        return None

    if len(candidates) == 1:
        return candidates[0] if calculate_similarity(title, candidates[0].title) > 0.5 else None

    best: Anime | None = None
    best_score = 0.0
    for anime in candidates:
        score = calculate_similarity(title, anime.title)
        if score > best_score:
            best, best_score = anime, score
    return best if best_score > 0.4 else None


def completeness_score(anime: Anime) -> int:
    """How much metadata a record carries; streaming-ready ids score extra."""
    score = 0
    if anime.description and len(anime.description) > 50:
        score += 3
    if anime.genres:
        score += 2
    if anime.rating and anime.rating > 0:
        score += 2
    if anime.episodes and anime.episodes > 0:
        score += 1
    if anime.year and anime.year > 0:
        score += 1
    if anime.studios:
        score += 1
    if anime.cover or anime.image:
        score += 1
    if anime.id and not anime.id.startswith(CATALOG_PREFIX):
        score += 2
    return score


def deduplicate_results(results: Iterable[Anime]) -> list[Anime]:
    """
    Drop duplicate ids and duplicate normalized titles.

    A later record with the same normalized title replaces the kept one only
    when its completeness score is higher by more than 2. Output keeps the
    position of the first occurrence.
    """
    by_title: dict[str, Anime] = {}
    seen_ids: set[str] = set()
    total = 0

    for anime in results:
        total += 1
        if anime.id in seen_ids:
            continue
        key = normalize_title(anime.title) or anime.id
        existing = by_title.get(key)
        if existing is None:
            by_title[key] = anime
            seen_ids.add(anime.id)
        elif completeness_score(anime) > completeness_score(existing) + 2:
            seen_ids.discard(existing.id)
            seen_ids.add(anime.id)
            by_title[key] = anime

    logger.debug("Deduplicated results", original_count=total, unique_count=len(by_title))
    return list(by_title.values())


__all__ = [
    "normalize_title",
    "title_variations",
    "LookupTable",
    "calculate_similarity",
    "find_best_match",
    "completeness_score",
    "deduplicate_results",
    "DEFAULT_LOOKUP_TTL",
]

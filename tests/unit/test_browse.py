"""Unit tests for local filtering, sorting and pagination."""

import random

from anime_sources.browse import apply_filters, order_listing, paginate, sort_anime
from anime_sources.types import Anime, BrowseFilters


def listing() -> list[Anime]:
    return [
        Anime(id="a", title="Bleach", type="TV", status="Finished", rating=7.8, year=2004,
              episodes=366, genres=["Action", "Supernatural"]),
        Anime(id="b", title="Akira", type="Movie", status="Finished", rating=8.0, year=1988,
              episodes=1, genres=["Sci-Fi"]),
        Anime(id="c", title="Chainsaw Man", type="tv", status="Airing", rating=8.5, year=2022,
              episodes=12, genres=["Action", "Dark Fantasy"]),
        Anime(id="d", title="Daily Lives", type="TV", status="Finished", year=2012, genres=["Comedy"]),
    ]


class TestApplyFilters:
    """Test record filters."""

    def test_type_is_case_insensitive(self):
        result = apply_filters(listing(), BrowseFilters(type="TV"))
        assert [a.id for a in result] == ["a", "c", "d"]

    def test_genre_substring_match_any(self):
        result = apply_filters(listing(), BrowseFilters(genres=["fantasy", "sci"]))
        assert [a.id for a in result] == ["b", "c"]

    def test_status_and_year_combined(self):
        result = apply_filters(listing(), BrowseFilters(status="finished", year=2004))
        assert [a.id for a in result] == ["a"]

    def test_no_filters_keeps_everything(self):
        assert len(apply_filters(listing(), BrowseFilters())) == 4


class TestSorting:
    """Test field sorts and browse orderings."""

    def test_rating_desc_puts_unrated_last(self):
        assert [a.id for a in sort_anime(listing(), "rating")] == ["c", "b", "a", "d"]

    def test_rating_asc(self):
        assert [a.id for a in sort_anime(listing(), "rating", "asc")] == ["d", "a", "b", "c"]

    def test_title_desc_is_alphabetical(self):
        assert [a.id for a in sort_anime(listing(), "title")] == ["b", "a", "c", "d"]

    def test_unknown_sort_falls_back_to_rating(self):
        assert sort_anime(listing(), "bogus") == sort_anime(listing(), "rating")

    def test_listing_sorts_keep_order(self):
        items = listing()
        assert order_listing(items, "popularity") == items
        assert order_listing(items, None) == items

    def test_recently_released(self):
        assert [a.id for a in order_listing(listing(), "recently_released")] == ["c", "d", "a", "b"]

    def test_shuffle_is_seeded(self):
        first = order_listing(listing(), "shuffle", rng=random.Random(7))
        second = order_listing(listing(), "shuffle", rng=random.Random(7))
        assert [a.id for a in first] == [a.id for a in second]
        assert sorted(a.id for a in first) == ["a", "b", "c", "d"]

    def test_field_sort_through_order_listing(self):
        assert [a.id for a in order_listing(listing(), "year", "asc")] == ["b", "a", "d", "c"]


class TestPaginate:
    """Test page slicing."""

    def test_first_page(self):
        items = [Anime(id=str(n), title=str(n)) for n in range(45)]
        page = paginate(items, 1, 20)
        assert len(page.anime) == 20
        assert page.total_pages == 3
        assert page.has_next_page
        assert page.total_results == 45

    def test_last_page(self):
        items = [Anime(id=str(n), title=str(n)) for n in range(45)]
        page = paginate(items, 3, 20)
        assert [a.id for a in page.anime] == [str(n) for n in range(40, 45)]
        assert not page.has_next_page

    def test_out_of_range_and_empty(self):
        assert paginate([Anime(id="a", title="a")], 5, 20).anime == []
        empty = paginate([], 1, 20)
        assert empty.total_pages == 0
        assert not empty.has_next_page

    def test_page_below_one_is_first_page(self):
        items = [Anime(id=str(n), title=str(n)) for n in range(3)]
        assert paginate(items, 0, 2).anime == items[:2]

    def test_to_dict(self):
        page = paginate([Anime(id="a", title="A")], 1, 20)
        page.source = "HiAnime"
        data = page.to_dict()
        assert data["source"] == "HiAnime"
        assert data["anime"][0]["id"] == "a"

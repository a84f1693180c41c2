"""
Tests for filtered discovery.
"""

from __future__ import annotations

from datetime import date

import pytest

from watchroom.models import DiscoverFilters, MediaSummary, MediaType
from watchroom.services.discover import (
    build_discover_params,
    filtered_search,
    matches_filters,
    sort_locally,
)


def _item(media_id, *, genres=(), rating=5.0, released="2015-06-01", popularity=1.0):
    return MediaSummary(
        id=media_id,
        media_type=MediaType.MOVIE,
        title=f"t{media_id}",
        genre_ids=list(genres),
        rating=rating,
        release_date=released,
        popularity=popularity,
    )


class TestBuildDiscoverParams:

    def test_movie_defaults(self):
        params = build_discover_params(DiscoverFilters(), MediaType.MOVIE)
        assert params["sort_by"] == "popularity.desc"
        assert params["primary_release_date.gte"] == "1900-01-01"
        assert params["primary_release_date.lte"] == f"{date.today().year}-12-31"
        assert params["vote_average.gte"] == 0.0
        assert params["include_adult"] is False
        assert "with_genres" not in params

    def test_tv_uses_first_air_date(self):
        filters = DiscoverFilters(genre_ids=[18, 80], year_from=2000, year_to=2010, rating_min=7.5)
        params = build_discover_params(filters, MediaType.TV, page=3)
        assert params["with_genres"] == "18,80"
        assert params["first_air_date.gte"] == "2000-01-01"
        assert params["first_air_date.lte"] == "2010-12-31"
        assert params["vote_average.gte"] == 7.5
        assert params["page"] == 3
        assert "primary_release_date.gte" not in params


class TestMatchesFilters:

    def test_genres_must_all_match(self):
        filters = DiscoverFilters(genre_ids=[28, 878])
        assert matches_filters(_item(1, genres=[28, 878, 12]), filters)
        assert not matches_filters(_item(2, genres=[28]), filters)

    def test_rating_range(self):
        filters = DiscoverFilters(rating_min=6.0, rating_max=8.0)
        assert matches_filters(_item(1, rating=7.0), filters)
        assert not matches_filters(_item(2, rating=8.5), filters)

    def test_year_range(self):
        filters = DiscoverFilters(year_from=2010, year_to=2012)
        assert matches_filters(_item(1, released="2011-01-01"), filters)
        assert not matches_filters(_item(2, released="2015-01-01"), filters)

    def test_undated_titles(self):
        assert matches_filters(_item(1, released=None), DiscoverFilters())
        assert not matches_filters(_item(1, released=None), DiscoverFilters(year_from=2000))


def test_sort_locally():
    items = [_item(1, rating=6.0), _item(2, rating=9.0), _item(3, rating=7.0)]
    assert [i.id for i in sort_locally(items, "vote_average.desc")] == [2, 3, 1]
    assert [i.id for i in sort_locally(items, "vote_average.asc")] == [1, 3, 2]
    assert [i.id for i in sort_locally(items, "revenue.desc")] == [1, 2, 3]


@pytest.fixture
def mock_tmdb(monkeypatch):
    calls = {"search": [], "discover": []}

    async def _search(category, query, page=1, *, include_adult=False):
        calls["search"].append(category)
        if category == "movie":
            rows = [
                {"id": 1, "title": "Star Trek", "genre_ids": [878], "vote_average": 7.0, "release_date": "2009-05-06"},
                {"id": 2, "title": "Star Wars", "genre_ids": [12], "vote_average": 8.6, "release_date": "1977-05-25"},
                {"id": 3, "title": "Stardust", "genre_ids": [878, 14], "vote_average": 7.6, "release_date": "2007-08-09"},
            ]
        else:
            rows = [{"id": 1, "name": "Star Trek: TNG", "genre_ids": [878], "vote_average": 8.2, "first_air_date": "1987-09-28"}]
        return {"results": rows}

    async def _discover(media_type, params):
        calls["discover"].append((media_type, params))
        return {"results": [{"id": 10, "title": "Found", "name": "Found"}]}

    monkeypatch.setattr("watchroom.services.discover.search", _search)
    monkeypatch.setattr("watchroom.services.discover.discover", _discover)
    return calls


@pytest.mark.asyncio
async def test_text_query_filters_search_results_locally(mock_tmdb):
    filters = DiscoverFilters(genre_ids=[878], sort_by="vote_average.desc")
    result = await filtered_search("star", filters)
    assert [m.id for m in result.movies] == [3, 1]
    assert [s.title for s in result.tv_shows] == ["Star Trek: TNG"]
    assert mock_tmdb["discover"] == []
    assert sorted(mock_tmdb["search"]) == ["movie", "tv"]


@pytest.mark.asyncio
async def test_no_text_uses_discover(mock_tmdb):
    result = await filtered_search("  ", DiscoverFilters(genre_ids=[35]))
    assert mock_tmdb["search"] == []
    assert {mt for mt, _ in mock_tmdb["discover"]} == {MediaType.MOVIE, MediaType.TV}
    assert all(params["with_genres"] == "35" for _, params in mock_tmdb["discover"])
    assert result.movies[0].media_type == MediaType.MOVIE
    assert result.tv_shows[0].media_type == MediaType.TV

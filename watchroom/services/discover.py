"""
Watchroom — Filtered discovery

Takes DiscoverFilters (genres, year range, rating range, sort, adult flag)
and an optional text query and returns movie and TV results.

TMDB's /discover endpoints take filters but no text, and /search takes
text but no genre or rating filters. With a text query we search and
then apply the filters locally; without one we hand the filters to
/discover directly.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from watchroom.clients.tmdb import discover, search, to_media_list
from watchroom.models import DiscoverFilters, FilteredResults, MediaSummary, MediaType

logger = logging.getLogger(__name__)

_DATE_FIELDS: Dict[MediaType, str] = {
    MediaType.MOVIE: "primary_release_date",
    MediaType.TV: "first_air_date",
}


def _year_to(filters: DiscoverFilters) -> int:
    return filters.year_to or date.today().year


# ── Build params dict ─────────────────────────────────────


def build_discover_params(filters: DiscoverFilters, media_type: MediaType, page: int = 1) -> Dict[str, Any]:
    """Convert DiscoverFilters into TMDB /discover/{movie,tv} parameters."""
    date_field = _DATE_FIELDS[media_type]
    params: Dict[str, Any] = {
        "sort_by": filters.sort_by,
        "vote_average.gte": filters.rating_min,
        "vote_average.lte": filters.rating_max,
        "include_adult": filters.include_adult,
        "page": page,
        f"{date_field}.gte": f"{filters.year_from}-01-01",
        f"{date_field}.lte": f"{_year_to(filters)}-12-31",
    }
    if filters.genre_ids:
        params["with_genres"] = ",".join(str(g) for g in filters.genre_ids)
    return params


# ── Local filtering for text searches ─────────────────────


def matches_filters(item: MediaSummary, filters: DiscoverFilters) -> bool:
    if filters.genre_ids and not set(filters.genre_ids).issubset(item.genre_ids):
        return False
    if not filters.rating_min <= item.rating <= filters.rating_max:
        return False
    if item.release_date is not None:
        if not filters.year_from <= item.release_date.year <= _year_to(filters):
            return False
    elif filters.year_from > 1900 or filters.year_to is not None:
        # an explicit year range excludes undated titles
        return False
    return True


_LOCAL_SORT_FIELDS: Dict[str, str] = {
    "popularity": "popularity",
    "vote_average": "rating",
    "primary_release_date": "release_date",
    "release_date": "release_date",
    "first_air_date": "release_date",
}


def sort_locally(items: List[MediaSummary], sort_by: str) -> List[MediaSummary]:
    """Apply a TMDB-style `field.direction` sort to already-fetched items."""
    field, _, direction = sort_by.partition(".")
    attr = _LOCAL_SORT_FIELDS.get(field)
    if attr is None:
        return list(items)

    def key(item: MediaSummary) -> Any:
        value = getattr(item, attr)
        if attr == "release_date":
            return value.isoformat() if value else ""
        return value or 0.0

    return sorted(items, key=key, reverse=direction != "asc")


# ── Public interface ──────────────────────────────────────


async def filtered_search(query: str, filters: Optional[DiscoverFilters] = None) -> FilteredResults:
    """Movies and TV shows matching `filters`, optionally narrowed by `query`."""
    filters = filters or DiscoverFilters()
    text = query.strip()

    if text:
        movie_page, tv_page = await asyncio.gather(
            search("movie", text, include_adult=filters.include_adult),
            search("tv", text, include_adult=filters.include_adult),
        )
        movies = [m for m in to_media_list(movie_page.get("results", []), MediaType.MOVIE) if matches_filters(m, filters)]
        tv_shows = [s for s in to_media_list(tv_page.get("results", []), MediaType.TV) if matches_filters(s, filters)]
        movies = sort_locally(movies, filters.sort_by)
        tv_shows = sort_locally(tv_shows, filters.sort_by)
    else:
        movie_page, tv_page = await asyncio.gather(
            discover(MediaType.MOVIE, build_discover_params(filters, MediaType.MOVIE)),
            discover(MediaType.TV, build_discover_params(filters, MediaType.TV)),
        )
        movies = to_media_list(movie_page.get("results", []), MediaType.MOVIE)
        tv_shows = to_media_list(tv_page.get("results", []), MediaType.TV)

    logger.info(
        "Filtered search %r: %d movies, %d tv shows", text, len(movies), len(tv_shows)
    )
    return FilteredResults(movies=movies, tv_shows=tv_shows)

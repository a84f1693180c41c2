"""
Watchroom — TMDB Client (External Media Source)

Design patterns:
  - Repository: abstracts TMDB API behind a clean interface
  - Singleton: shared httpx client with connection pooling
  - Semaphore: bounded concurrent requests for fan-out callers
  - Adapter: normalizes raw rows into MediaSummary / PersonSummary

Async HTTP client for TMDB API v3. Query-string authenticated, JSON only.
Failures are raised as TMDBError and never retried here; callers decide
whether the user re-triggers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import httpx

from watchroom.cache import ExpiringCache
from watchroom.config import settings
from watchroom.models import MediaPage, MediaSummary, MediaType, PersonSummary

logger = logging.getLogger(__name__)

POSTER_SIZES: Dict[str, str] = {
    "tiny": "w92",
    "small": "w154",
    "medium": "w185",
    "large": "w342",
    "xlarge": "w500",
    "xxlarge": "w780",
    "original": "original",
}

BACKDROP_SIZES: Dict[str, str] = {
    "small": "w300",
    "medium": "w780",
    "large": "w1280",
    "original": "original",
}

LIST_CATEGORIES: Dict[MediaType, tuple] = {
    MediaType.MOVIE: ("popular", "top_rated", "upcoming"),
    MediaType.TV: ("popular", "top_rated", "on_the_air"),
}

SEARCH_CATEGORIES = ("movie", "tv", "person", "multi")
DETAIL_APPENDS = "videos,credits,similar,watch/providers"


class TMDBError(Exception):
    """A TMDB call failed (non-2xx response or transport error)."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


# ── Shared client ─────────────────────────────────────────

_client: Optional[httpx.AsyncClient] = None


async def get_client() -> httpx.AsyncClient:
    global _client
    if _client is None or _client.is_closed:
        timeout = settings.request_timeout_seconds
        _client = httpx.AsyncClient(
            base_url=settings.tmdb_base_url,
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(timeout, connect=min(timeout, 10.0)),
        )
    return _client


async def close_client() -> None:
    global _client
    if _client and not _client.is_closed:
        await _client.aclose()
        _client = None


# ── Bounded request ───────────────────────────────────────

_RATE_SEMAPHORE = asyncio.Semaphore(settings.max_concurrent_requests)


async def _request(path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """GET `path` with auth params; None-valued params are dropped."""
    query: Dict[str, Any] = {
        **settings.tmdb_auth_params,
        "language": settings.tmdb_language,
    }
    for key, value in (params or {}).items():
        if value is not None:
            query[key] = value

    client = await get_client()
    async with _RATE_SEMAPHORE:
        try:
            resp = await client.get(path, params=query)
        except httpx.HTTPError as exc:
            logger.warning("TMDB transport error on %s: %s", path, exc)
            raise TMDBError(f"TMDb request failed: {exc}") from exc

    if resp.status_code >= 400:
        logger.warning("TMDB %s → %d", path, resp.status_code)
        raise TMDBError(
            f"TMDb API Error: {resp.status_code} - {resp.reason_phrase}",
            status_code=resp.status_code,
        )
    return resp.json()


# ── Normalizers ───────────────────────────────────────────


def to_media_summary(raw: Dict[str, Any], media_type: Optional[MediaType] = None) -> MediaSummary:
    """Build a MediaSummary from a list/search/detail row.

    `media_type` is required unless the row carries its own (trending, multi).
    """
    kind = media_type or MediaType(raw["media_type"])
    genre_ids = raw.get("genre_ids")
    if genre_ids is None:
        genre_ids = [g["id"] for g in raw.get("genres", []) if isinstance(g, dict) and "id" in g]
    return MediaSummary(
        id=raw["id"],
        media_type=kind,
        title=raw.get("title") or raw.get("name") or "",
        poster_path=raw.get("poster_path"),
        rating=raw.get("vote_average"),
        popularity=raw.get("popularity") or 0.0,
        release_date=raw.get("release_date") or raw.get("first_air_date"),
        genre_ids=genre_ids,
    )


def to_person_summary(raw: Dict[str, Any]) -> PersonSummary:
    return PersonSummary(
        id=raw["id"],
        name=raw.get("name") or "",
        profile_path=raw.get("profile_path"),
        known_for_department=raw.get("known_for_department"),
        popularity=raw.get("popularity") or 0.0,
    )


def to_media_list(rows: List[Dict[str, Any]], media_type: Optional[MediaType] = None) -> List[MediaSummary]:
    """Normalize rows, skipping people and rows of unknown type."""
    items: List[MediaSummary] = []
    for row in rows:
        kind = media_type
        if kind is None:
            if row.get("media_type") not in (MediaType.MOVIE.value, MediaType.TV.value):
                continue
            kind = MediaType(row["media_type"])
        items.append(to_media_summary(row, kind))
    return items


def to_media_page(data: Dict[str, Any], media_type: Optional[MediaType] = None) -> MediaPage:
    return MediaPage(
        results=to_media_list(data.get("results", []), media_type),
        page=data.get("page", 1),
        total_pages=data.get("total_pages", 1),
    )


# ── Image URLs ────────────────────────────────────────────


def image_url(path: Optional[str], size: str) -> str:
    if not path:
        return settings.image_placeholder
    return f"{settings.tmdb_image_base}/{size}{path}"


def poster_url(path: Optional[str], size: str = POSTER_SIZES["large"]) -> str:
    return image_url(path, size)


def backdrop_url(path: Optional[str], size: str = BACKDROP_SIZES["large"]) -> str:
    return image_url(path, size)


# ── Public helpers ────────────────────────────────────────


async def get_trending(media_type: str = "all", window: str = "week") -> Dict[str, Any]:
    """Raw trending page. `media_type` is all/movie/tv/person, `window` day/week."""
    return await _request(f"/trending/{media_type}/{window}")


async def get_list(media_type: MediaType, category: str, page: int = 1) -> Dict[str, Any]:
    """Popular / top-rated / upcoming (movie) / on-the-air (tv) lists."""
    if category not in LIST_CATEGORIES[media_type]:
        raise ValueError(f"Unknown {media_type.value} list: {category}")
    return await _request(f"/{media_type.value}/{category}", {"page": page})


async def get_details(media_type: MediaType, media_id: int) -> Dict[str, Any]:
    """Full details with videos, credits, similar titles and providers attached."""
    return await _request(
        f"/{media_type.value}/{media_id}",
        {"append_to_response": DETAIL_APPENDS},
    )


async def search(category: str, query: str, page: int = 1, *, include_adult: bool = False) -> Dict[str, Any]:
    if category not in SEARCH_CATEGORIES:
        raise ValueError(f"Unknown search category: {category}")
    return await _request(
        f"/search/{category}",
        {"query": query, "page": page, "include_adult": include_adult},
    )


async def search_movies(query: str, page: int = 1) -> List[Dict[str, Any]]:
    data = await search("movie", query, page)
    return data.get("results", [])


async def search_tv(query: str, page: int = 1) -> List[Dict[str, Any]]:
    data = await search("tv", query, page)
    return data.get("results", [])


async def search_people(query: str, page: int = 1) -> List[Dict[str, Any]]:
    data = await search("person", query, page)
    return data.get("results", [])


async def discover(media_type: MediaType, params: Dict[str, Any]) -> Dict[str, Any]:
    """Execute /discover/{movie,tv} with the given filters."""
    return await _request(f"/discover/{media_type.value}", params)


_genre_cache: ExpiringCache[str, Dict[int, str]] = ExpiringCache(settings.genre_cache_ttl_seconds)


async def get_genre_list(media_type: MediaType) -> Dict[int, str]:
    """Return {genre_id: genre_name}. Cached for 24 h."""
    ckey = f"genres:{media_type.value}:{settings.tmdb_language}"
    cached = _genre_cache.get(ckey)
    if cached is not None:
        logger.debug("TMDB cache HIT: %s", ckey)
        return cached

    data = await _request(f"/genre/{media_type.value}/list")
    mapping = {g["id"]: g["name"] for g in data.get("genres", [])}
    _genre_cache.put(ckey, mapping)
    return mapping


async def get_all_genres() -> Dict[int, str]:
    """Movie and TV genres merged; ids shared by both lists appear once."""
    movie_genres, tv_genres = await asyncio.gather(
        get_genre_list(MediaType.MOVIE),
        get_genre_list(MediaType.TV),
    )
    merged = dict(movie_genres)
    for genre_id, name in tv_genres.items():
        merged.setdefault(genre_id, name)
    return merged


def clear_genre_cache() -> None:
    _genre_cache.clear()

"""
Watchroom — Recommendation Engine

Design patterns:
  - Strategy: favorites-first seed selection with watched fallback
  - Parallel Aggregator: title details and discover calls run concurrently
  - Fallback: trending content stands in when personalization fails

Produces three lists from a user's list memberships:
  personal     similar titles of up to 3 seeds per media type, by rating
  genre_based  discover-by-genre on the top 3 weighted genres, by popularity
  trending     this week's trending titles, independent of history

Every set, map and dedup step keys on MediaKey (id + media type).
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Set

from watchroom.clients.account_store import AccountStore
from watchroom.clients.tmdb import (
    discover,
    get_details,
    get_trending,
    to_media_list,
    to_media_summary,
)
from watchroom.config import settings
from watchroom.models import (
    ListMembership,
    ListType,
    MediaKey,
    MediaSummary,
    MediaType,
    RecommendationResult,
    RecommendationState,
)

logger = logging.getLogger(__name__)

FAVORITE_WEIGHT = 2
WATCHED_WEIGHT = 1
TRENDING_ERROR_MESSAGE = "Could not load recommendations. Please try again."

Partition = Dict[ListType, Dict[MediaType, List[ListMembership]]]


# ── Pure helpers ─────────────────────────────────────────


def partition_memberships(memberships: Iterable[ListMembership]) -> Partition:
    """Group by list type then media type, most recently added first."""
    partition: Partition = {
        list_type: {media_type: [] for media_type in MediaType} for list_type in ListType
    }
    ordered = sorted(
        memberships,
        key=lambda m: m.added_at.timestamp() if m.added_at else float("-inf"),
        reverse=True,
    )
    for membership in ordered:
        partition[membership.list_type][membership.media_type].append(membership)
    return partition


def select_seed_ids(partition: Partition, media_type: MediaType, limit: int) -> List[int]:
    """Favorite ids if any exist for the media type, otherwise watched ids."""
    source = partition[ListType.FAVORITE][media_type] or partition[ListType.WATCHED][media_type]
    seeds: List[int] = []
    for membership in source:
        if membership.media_id not in seeds:
            seeds.append(membership.media_id)
        if len(seeds) == limit:
            break
    return seeds


def tracked_keys(partition: Partition) -> Set[MediaKey]:
    return {
        membership.key
        for by_type in partition.values()
        for rows in by_type.values()
        for membership in rows
    }


def filter_candidates(
    candidates: Iterable[MediaSummary],
    exclude: Set[MediaKey],
    *,
    sort_field: str,
    limit: int,
) -> List[MediaSummary]:
    """Drop excluded keys, keep the first of each key, stable sort desc, truncate."""
    seen: Set[MediaKey] = set()
    kept: List[MediaSummary] = []
    for item in candidates:
        if item.key in exclude or item.key in seen:
            continue
        seen.add(item.key)
        kept.append(item)
    kept.sort(key=lambda item: getattr(item, sort_field) or 0.0, reverse=True)
    return kept[:limit]


def compute_genre_affinity(
    genres_by_key: Dict[MediaKey, Sequence[int]],
    favorite_keys: Set[MediaKey],
) -> Counter:
    """Weighted genre counts; each title counts once, favorites weigh double."""
    affinity: Counter = Counter()
    for key, genre_ids in genres_by_key.items():
        weight = FAVORITE_WEIGHT if key in favorite_keys else WATCHED_WEIGHT
        for genre_id in genre_ids:
            affinity[genre_id] += weight
    return affinity


def top_genres(affinity: Counter, n: int) -> List[int]:
    return [genre_id for genre_id, _ in affinity.most_common(n)]


# ── Engine ───────────────────────────────────────────────


class RecommendationEngine:
    """One engine per active view; `state` follows idle → loading → ready*."""

    def __init__(
        self,
        store: Optional[AccountStore],
        *,
        list_size: int = settings.recommendation_list_size,
        seed_limit: int = settings.recommendation_seed_limit,
        top_genre_count: int = settings.top_genre_count,
    ) -> None:
        self._store = store
        self.list_size = list_size
        self.seed_limit = seed_limit
        self.top_genre_count = top_genre_count
        self.state = RecommendationState.IDLE

    async def run(self, user_id: Optional[str]) -> RecommendationResult:
        """Build all lists. Anonymous users (None) only get trending."""
        self.state = RecommendationState.LOADING

        personal_task = None
        if user_id is not None and self._store is not None:
            personal_task = asyncio.ensure_future(self._personalized(user_id))

        try:
            trending = await self._trending()
        except Exception as exc:
            logger.error("Trending fallback failed: %s", exc, exc_info=True)
            result = RecommendationResult(
                state=RecommendationState.ERROR,
                error=TRENDING_ERROR_MESSAGE,
            )
            if personal_task is not None:
                (personal,) = await asyncio.gather(personal_task, return_exceptions=True)
                if isinstance(personal, RecommendationResult):
                    result = personal.model_copy(
                        update={"state": result.state, "error": result.error}
                    )
                else:
                    logger.warning("Personalized recommendations also failed: %s", personal)
            self.state = result.state
            return result

        if personal_task is None:
            self.state = RecommendationState.READY
            return RecommendationResult(state=self.state, trending=trending)

        try:
            personal = await personal_task
        except Exception:
            logger.warning("Personalized recommendations failed; using trending only", exc_info=True)
            self.state = RecommendationState.READY_WITH_FALLBACK
            return RecommendationResult(state=self.state, trending=trending)

        self.state = RecommendationState.READY
        return personal.model_copy(update={"state": self.state, "trending": trending})

    # ── Pipeline steps ────────────────────────────────────

    async def _personalized(self, user_id: str) -> RecommendationResult:
        memberships = await self._store.list_memberships(user_id)
        partition = partition_memberships(memberships)
        exclude = tracked_keys(partition)

        favorites = {m.key for rows in partition[ListType.FAVORITE].values() for m in rows}
        seeds = [
            MediaKey(media_id, media_type)
            for media_type in MediaType
            for media_id in select_seed_ids(partition, media_type, self.seed_limit)
        ]

        details = await self._fetch_details(_ordered_keys(partition))

        candidates: List[MediaSummary] = []
        for key in seeds:
            detail = details.get(key)
            if not detail:
                continue
            similar = (detail.get("similar") or {}).get("results", [])
            candidates.extend(to_media_summary(row, key.media_type) for row in similar)

        personal = filter_candidates(candidates, exclude, sort_field="rating", limit=self.list_size)

        genres_by_key = {
            key: [g["id"] for g in detail.get("genres", []) if "id" in g]
            for key, detail in details.items()
        }
        genres = top_genres(compute_genre_affinity(genres_by_key, favorites), self.top_genre_count)
        genre_based = await self._genre_based(genres, exclude) if genres else []

        logger.info(
            "Recommendations for %s: %d seeds, %d candidates, %d personal, genres=%s",
            user_id, len(seeds), len(candidates), len(personal), genres,
        )
        return RecommendationResult(personal=personal, genre_based=genre_based, top_genres=genres)

    async def _fetch_details(self, keys: List[MediaKey]) -> Dict[MediaKey, dict]:
        """Fetch details (with similar titles) per key; failures are skipped."""
        results = await asyncio.gather(
            *[get_details(key.media_type, key.id) for key in keys],
            return_exceptions=True,
        )
        details: Dict[MediaKey, dict] = {}
        for key, result in zip(keys, results):
            if isinstance(result, Exception):
                logger.warning("Could not fetch details for %s: %s", key, result)
                continue
            details[key] = result
        return details

    async def _genre_based(self, genre_ids: List[int], exclude: Set[MediaKey]) -> List[MediaSummary]:
        params = {
            "with_genres": ",".join(str(g) for g in genre_ids),
            "sort_by": "popularity.desc",
            "page": 1,
        }
        movie_page, tv_page = await asyncio.gather(
            discover(MediaType.MOVIE, params),
            discover(MediaType.TV, params),
        )
        merged = to_media_list(movie_page.get("results", []), MediaType.MOVIE) + to_media_list(
            tv_page.get("results", []), MediaType.TV
        )
        return filter_candidates(merged, exclude, sort_field="popularity", limit=self.list_size)

    async def _trending(self) -> List[MediaSummary]:
        data = await get_trending("all", "week")
        return to_media_list(data.get("results", []))[: self.list_size]


def _ordered_keys(partition: Partition) -> List[MediaKey]:
    """Favorite then watched titles, movies before tv, each key once."""
    ordered: List[MediaKey] = []
    seen: Set[MediaKey] = set()
    for list_type in (ListType.FAVORITE, ListType.WATCHED):
        for media_type in MediaType:
            for membership in partition[list_type][media_type]:
                if membership.key not in seen:
                    seen.add(membership.key)
                    ordered.append(membership.key)
    return ordered

"""
Watchroom — Search Aggregator

Design patterns:
  - Debounce: only the last keystroke of a burst triggers a search
  - Cache Aside: exact-query results are reused for 10 minutes
  - Fan-out / Fan-in: movie, TV and person searches run concurrently and
    are joined all-or-nothing
  - Generation stamping: a completion is applied only if its query is
    still the active one

One aggregator instance belongs to one view (or one live connection).
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from watchroom.cache import ExpiringCache
from watchroom.clients.tmdb import (
    search_movies,
    search_people,
    search_tv,
    to_media_summary,
    to_person_summary,
)
from watchroom.config import settings
from watchroom.debounce import DebouncedAction
from watchroom.models import MediaType, SearchPayload, SearchResults

logger = logging.getLogger(__name__)

SEARCH_ERROR_MESSAGE = "Failed to search. Please try again."

SearchFetcher = Callable[[str], Awaitable[SearchPayload]]
ResultsListener = Callable[[SearchResults], None]


async def fetch_search_payload(query: str) -> SearchPayload:
    """Query the three categories concurrently; any failure fails the whole call."""
    movies, tv_shows, people = await asyncio.gather(
        search_movies(query),
        search_tv(query),
        search_people(query),
    )
    return SearchPayload(
        movies=[to_media_summary(m, MediaType.MOVIE) for m in movies],
        tv_shows=[to_media_summary(s, MediaType.TV) for s in tv_shows],
        people=[to_person_summary(p) for p in people],
    )


class SearchAggregator:
    def __init__(
        self,
        *,
        fetcher: Optional[SearchFetcher] = None,
        cache: Optional[ExpiringCache[str, SearchPayload]] = None,
        debounce_seconds: Optional[float] = None,
        on_change: Optional[ResultsListener] = None,
    ) -> None:
        self._fetch = fetcher or fetch_search_payload
        self._cache = cache if cache is not None else ExpiringCache(settings.search_cache_ttl_seconds)
        delay = settings.search_debounce_ms / 1000 if debounce_seconds is None else debounce_seconds
        self._debouncer = DebouncedAction(delay)
        self._on_change = on_change
        self._results = SearchResults()
        self._active_query = ""
        self._generation = 0

    # ── Public interface ──────────────────────────────────

    @property
    def query(self) -> str:
        return self._active_query

    def get_results(self) -> SearchResults:
        return self._results

    def clear_cache(self) -> None:
        self._cache.clear()

    def set_query(self, text: str) -> None:
        """Keystroke entry point. Must be called from within the event loop."""
        generation = self._activate(text)
        if not text.strip():
            self._debouncer.cancel()
            self._publish(SearchResults(query=text))
            return

        self._publish(self._results.model_copy(update={"query": text, "is_loading": True, "error": None}))
        self._debouncer.schedule(lambda: self._run(text, generation))

    async def search(self, text: str) -> SearchResults:
        """Immediate, non-debounced search (cache still applies)."""
        generation = self._activate(text)
        self._debouncer.cancel()
        if not text.strip():
            self._publish(SearchResults(query=text))
            return self._results
        await self._run(text, generation)
        return self._results

    async def settle(self) -> None:
        """Wait for any debounced or in-flight search to complete."""
        await self._debouncer.drain()

    def close(self) -> None:
        """Drop the pending search and stop publishing; the owner went away."""
        self._debouncer.cancel()
        self._generation += 1
        self._on_change = None

    # ── Internals ─────────────────────────────────────────

    def _activate(self, text: str) -> int:
        self._generation += 1
        self._active_query = text
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _run(self, query: str, generation: int) -> None:
        payload = self._cache.get(query)
        if payload is not None:
            logger.debug("Search cache HIT: %r", query)
        else:
            try:
                payload = await self._fetch(query)
            except Exception as exc:
                logger.warning("Search for %r failed: %s", query, exc, exc_info=True)
                if self._is_current(generation):
                    self._publish(SearchResults(query=query, error=SEARCH_ERROR_MESSAGE))
                return
            self._cache.put(query, payload)

        if not self._is_current(generation):
            logger.debug("Discarding stale results for %r", query)
            return

        self._publish(
            SearchResults(
                query=query,
                movies=payload.movies,
                tv_shows=payload.tv_shows,
                people=payload.people,
            )
        )

    def _publish(self, results: SearchResults) -> None:
        self._results = results
        if self._on_change is not None:
            self._on_change(results)

"""
Tests for the search aggregator.
"""

from __future__ import annotations

import asyncio

import pytest

from watchroom.cache import ExpiringCache
from watchroom.clients.tmdb import TMDBError
from watchroom.models import MediaSummary, MediaType, PersonSummary, SearchPayload
from watchroom.services.search import (
    SEARCH_ERROR_MESSAGE,
    SearchAggregator,
    fetch_search_payload,
)


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def _payload(query: str) -> SearchPayload:
    return SearchPayload(
        movies=[MediaSummary(id=1, media_type=MediaType.MOVIE, title=f"{query} movie")],
        tv_shows=[MediaSummary(id=1, media_type=MediaType.TV, title=f"{query} show")],
        people=[PersonSummary(id=7, name=f"{query} person")],
    )


class RecordingFetcher:
    def __init__(self, fail: bool = False) -> None:
        self.calls = []
        self.fail = fail

    async def __call__(self, query: str) -> SearchPayload:
        self.calls.append(query)
        if self.fail:
            raise TMDBError("TMDb API Error: 500 - Internal Server Error", status_code=500)
        return _payload(query)


# ── Immediate search ──────────────────────────────────────


@pytest.mark.asyncio
async def test_search_returns_all_three_categories():
    aggregator = SearchAggregator(fetcher=RecordingFetcher())
    results = await aggregator.search("dune")
    assert results.query == "dune"
    assert results.movies[0].title == "dune movie"
    assert results.tv_shows[0].media_type == MediaType.TV
    assert results.people[0].name == "dune person"
    assert not results.is_loading
    assert results.error is None


@pytest.mark.asyncio
async def test_cache_hit_skips_fetch():
    fetcher = RecordingFetcher()
    aggregator = SearchAggregator(fetcher=fetcher)
    await aggregator.search("dune")
    await aggregator.search("dune")
    assert fetcher.calls == ["dune"]


@pytest.mark.asyncio
async def test_cache_expires_after_ttl():
    clock = FakeClock()
    fetcher = RecordingFetcher()
    aggregator = SearchAggregator(fetcher=fetcher, cache=ExpiringCache(600, clock=clock))
    await aggregator.search("dune")
    clock.now = 601
    await aggregator.search("dune")
    assert fetcher.calls == ["dune", "dune"]


@pytest.mark.asyncio
async def test_cache_key_is_exact_text():
    fetcher = RecordingFetcher()
    aggregator = SearchAggregator(fetcher=fetcher)
    await aggregator.search("Dune")
    await aggregator.search("dune")
    assert fetcher.calls == ["Dune", "dune"]


@pytest.mark.asyncio
async def test_empty_query_clears_without_fetching():
    fetcher = RecordingFetcher()
    aggregator = SearchAggregator(fetcher=fetcher)
    await aggregator.search("dune")
    results = await aggregator.search("   ")
    assert fetcher.calls == ["dune"]
    assert results.movies == [] and results.people == []
    assert not results.is_loading
    assert results.error is None


@pytest.mark.asyncio
async def test_failure_sets_error_and_is_not_cached():
    fetcher = RecordingFetcher(fail=True)
    aggregator = SearchAggregator(fetcher=fetcher)
    results = await aggregator.search("dune")
    assert results.error == SEARCH_ERROR_MESSAGE
    assert results.movies == [] and results.tv_shows == [] and results.people == []
    assert not results.is_empty

    fetcher.fail = False
    results = await aggregator.search("dune")
    assert results.error is None
    assert fetcher.calls == ["dune", "dune"]


@pytest.mark.asyncio
async def test_nothing_found_is_empty_not_error():
    async def _nothing(query):
        return SearchPayload()

    aggregator = SearchAggregator(fetcher=_nothing)
    results = await aggregator.search("zzzzqx")
    assert results.is_empty
    assert results.error is None


# ── Debounced keystrokes ──────────────────────────────────


@pytest.mark.asyncio
async def test_burst_of_keystrokes_fetches_last_query_only():
    fetcher = RecordingFetcher()
    states = []
    aggregator = SearchAggregator(fetcher=fetcher, debounce_seconds=0.02, on_change=states.append)

    aggregator.set_query("q1")
    aggregator.set_query("q2")
    aggregator.set_query("q3")
    assert aggregator.get_results().is_loading
    await aggregator.settle()

    assert fetcher.calls == ["q3"]
    final = aggregator.get_results()
    assert final.query == "q3"
    assert not final.is_loading
    assert final.movies[0].title == "q3 movie"
    assert states[0].is_loading


@pytest.mark.asyncio
async def test_clearing_cancels_pending_search():
    fetcher = RecordingFetcher()
    aggregator = SearchAggregator(fetcher=fetcher, debounce_seconds=0.02)
    aggregator.set_query("dune")
    aggregator.set_query("")
    await aggregator.settle()
    assert fetcher.calls == []
    assert aggregator.get_results().query == ""
    assert not aggregator.get_results().is_loading


@pytest.mark.asyncio
async def test_stale_response_is_discarded():
    release_first = asyncio.Event()
    first_started = asyncio.Event()

    async def _fetch(query):
        if query == "first":
            first_started.set()
            await release_first.wait()
        return _payload(query)

    aggregator = SearchAggregator(fetcher=_fetch, debounce_seconds=0)
    aggregator.set_query("first")
    await first_started.wait()

    aggregator.set_query("second")
    await asyncio.sleep(0.01)
    assert aggregator.get_results().query == "second"

    release_first.set()
    await aggregator.settle()

    results = aggregator.get_results()
    assert results.query == "second"
    assert results.movies[0].title == "second movie"


@pytest.mark.asyncio
async def test_stale_failure_does_not_overwrite_current_results():
    release_first = asyncio.Event()
    first_started = asyncio.Event()

    async def _fetch(query):
        if query == "first":
            first_started.set()
            await release_first.wait()
            raise TMDBError("boom")
        return _payload(query)

    aggregator = SearchAggregator(fetcher=_fetch, debounce_seconds=0)
    aggregator.set_query("first")
    await first_started.wait()
    aggregator.set_query("second")
    await asyncio.sleep(0.01)
    release_first.set()
    await aggregator.settle()

    assert aggregator.get_results().error is None
    assert aggregator.get_results().query == "second"


@pytest.mark.asyncio
async def test_close_stops_publishing():
    fetcher = RecordingFetcher()
    states = []
    aggregator = SearchAggregator(fetcher=fetcher, debounce_seconds=0.02, on_change=states.append)
    aggregator.set_query("dune")
    aggregator.close()
    await aggregator.settle()
    assert fetcher.calls == []
    assert len(states) == 1


# ── Fan-out ───────────────────────────────────────────────


@pytest.fixture
def mock_searches(monkeypatch):
    async def _movies(query, page=1):
        return [{"id": 1, "title": "Dune", "vote_average": 8.0, "release_date": "2021-09-15"}]

    async def _tv(query, page=1):
        return [{"id": 1, "name": "Dune: Prophecy", "first_air_date": "2024-11-17"}]

    async def _people(query, page=1):
        return [{"id": 9, "name": "Denis Villeneuve", "known_for_department": "Directing"}]

    monkeypatch.setattr("watchroom.services.search.search_movies", _movies)
    monkeypatch.setattr("watchroom.services.search.search_tv", _tv)
    monkeypatch.setattr("watchroom.services.search.search_people", _people)


@pytest.mark.asyncio
async def test_fetch_payload_normalizes_rows(mock_searches):
    payload = await fetch_search_payload("dune")
    assert payload.movies[0].key == (1, MediaType.MOVIE)
    assert payload.tv_shows[0].key == (1, MediaType.TV)
    assert payload.tv_shows[0].title == "Dune: Prophecy"
    assert payload.people[0].known_for_department == "Directing"


@pytest.mark.asyncio
async def test_fetch_payload_is_all_or_nothing(mock_searches, monkeypatch):
    async def _broken(query, page=1):
        raise TMDBError("TMDb API Error: 503 - Service Unavailable", status_code=503)

    monkeypatch.setattr("watchroom.services.search.search_people", _broken)
    with pytest.raises(TMDBError):
        await fetch_search_payload("dune")


@pytest.mark.asyncio
async def test_malformed_row_surfaces_generic_error(mock_searches, monkeypatch):
    async def _people_without_id(query, page=1):
        return [{"name": "Nobody"}]

    monkeypatch.setattr("watchroom.services.search.search_people", _people_without_id)
    aggregator = SearchAggregator(debounce_seconds=0)
    aggregator.set_query("dune")
    await aggregator.settle()

    results = aggregator.get_results()
    assert not results.is_loading
    assert results.error == SEARCH_ERROR_MESSAGE

    immediate = await SearchAggregator().search("dune")
    assert immediate.error == SEARCH_ERROR_MESSAGE

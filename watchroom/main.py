"""
Watchroom — FastAPI Application

REST endpoints for catalog browsing, search, lists, sharing and rooms;
a WebSocket for as-you-type search and SSE for recommendations.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sse_starlette.sse import EventSourceResponse

from watchroom import clients
from watchroom.cache import ExpiringCache
from watchroom.clients import tmdb
from watchroom.clients.account_store import (
    AccountStore,
    AccountStoreError,
    DuplicateRecordError,
    PermissionDeniedError,
    RecordNotFoundError,
    create_supabase_client,
)
from watchroom.clients.tmdb import TMDBError
from watchroom.config import settings
from watchroom.models import (
    AddToListRequest,
    AddToListResponse,
    CreateRoomRequest,
    DiscoverRequest,
    FilteredResults,
    ListType,
    MediaPage,
    MediaType,
    Profile,
    ProfileUpdate,
    RecommendationResult,
    RecommendationState,
    Room,
    RoomDetail,
    SearchPayload,
    SearchResults,
    SharedListResponse,
    ShareLinkRequest,
    ShareLinkResponse,
    SortKey,
    WatchlistResponse,
)
from watchroom.services import rooms, watchlist
from watchroom.services.discover import filtered_search
from watchroom.services.recommendations import RecommendationEngine
from watchroom.services.search import SearchAggregator

logger = logging.getLogger(__name__)


# ── Lifespan: startup/shutdown ────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down shared resources."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    )
    logger.info("📺 Watchroom starting up…")
    logger.info("   TMDB: %s", settings.tmdb_base_url)
    logger.info("   Supabase: %s", settings.supabase_url or "not configured")

    # Pre-cache genre lists
    try:
        genres = await tmdb.get_all_genres()
        logger.info("   Cached %d TMDB genres", len(genres))
    except TMDBError as exc:
        logger.warning("   Could not pre-cache genres: %s", exc)

    yield  # app runs here

    logger.info("📺 Watchroom shutting down…")
    await clients.close_clients()


# ── App instance ──────────────────────────────────────────

app = FastAPI(
    title="Watchroom",
    version="1.0.0",
    description="Movie & TV discovery with shared lists and watch rooms",
    lifespan=lifespan,
)

# CORS for frontend dev
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Logging middleware ────────────────────────────────────


@app.middleware("http")
async def log_requests(request: Request, call_next):
    t0 = time.perf_counter()
    response = await call_next(request)
    elapsed = (time.perf_counter() - t0) * 1000
    logger.info(
        "%s %s → %d (%.0f ms)",
        request.method,
        request.url.path,
        response.status_code,
        elapsed,
    )
    return response


# ── Error mapping ─────────────────────────────────────────


@app.exception_handler(TMDBError)
async def tmdb_error_handler(request: Request, exc: TMDBError):
    status = 404 if exc.not_found else 502
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(AccountStoreError)
async def account_store_error_handler(request: Request, exc: AccountStoreError):
    if isinstance(exc, RecordNotFoundError):
        status = 404
    elif isinstance(exc, PermissionDeniedError):
        status = 403
    elif isinstance(exc, DuplicateRecordError):
        status = 409
    else:
        logger.error("Account store failure on %s: %s", request.url.path, exc)
        status = 502
    return JSONResponse(status_code=status, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


# ── Dependencies ──────────────────────────────────────────

_bearer = HTTPBearer(auto_error=False)
_store: Optional[AccountStore] = None
_search_cache: ExpiringCache[str, SearchPayload] = ExpiringCache(settings.search_cache_ttl_seconds)


def get_optional_store() -> Optional[AccountStore]:
    """Shared account store, or None when Supabase is not configured."""
    global _store
    if _store is None and settings.supabase_configured:
        _store = AccountStore(create_supabase_client())
    return _store


def get_store(store: Optional[AccountStore] = Depends(get_optional_store)) -> AccountStore:
    if store is None:
        raise HTTPException(status_code=503, detail="Account store is not configured")
    return store


async def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    store: Optional[AccountStore] = Depends(get_optional_store),
) -> Optional[str]:
    if credentials is None or store is None:
        return None
    return await store.resolve_user_id(credentials.credentials)


async def get_current_user_id(
    store: AccountStore = Depends(get_store),
    user_id: Optional[str] = Depends(get_optional_user_id),
) -> str:
    # store first: an unconfigured account store is a 503, not a 401
    if user_id is None:
        raise HTTPException(
            status_code=401,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user_id


def get_search_aggregator() -> SearchAggregator:
    """Per-request aggregator sharing the process-wide query cache."""
    return SearchAggregator(cache=_search_cache)


# ── Health endpoint ───────────────────────────────────────


@app.get("/api/health")
async def health():
    """Health check — verifies TMDB connectivity and account store config."""
    status: Dict[str, Any] = {"status": "ok", "tmdb": "unknown"}
    try:
        genres = await tmdb.get_genre_list(MediaType.MOVIE)
        status["tmdb"] = "ok"
        status["tmdb_genres"] = len(genres)
    except TMDBError as exc:
        status["tmdb"] = f"error: {exc}"

    status["account_store"] = "configured" if settings.supabase_configured else "not configured"
    status["status"] = "ok" if status["tmdb"] == "ok" else "degraded"
    return status


# ── Catalog ───────────────────────────────────────────────


@app.get("/api/trending", response_model=MediaPage)
async def trending(
    media_type: str = Query(default="all", pattern="^(all|movie|tv)$"),
    window: str = Query(default="week", pattern="^(day|week)$"),
):
    data = await tmdb.get_trending(media_type, window)
    return tmdb.to_media_page(data, None if media_type == "all" else MediaType(media_type))


@app.get("/api/genres")
async def genres():
    """Movie and TV genres merged into one id → name list."""
    mapping = await tmdb.get_all_genres()
    return [{"id": genre_id, "name": name} for genre_id, name in sorted(mapping.items())]


# ── Search ────────────────────────────────────────────────


@app.get("/api/search", response_model=SearchResults)
async def search(
    q: str = Query(default="", max_length=500),
    aggregator: SearchAggregator = Depends(get_search_aggregator),
):
    """One-shot search across movies, TV shows and people."""
    return await aggregator.search(q)


@app.websocket("/api/search/live")
async def search_live(websocket: WebSocket):
    """
    As-you-type search. Each text frame replaces the query; every state
    change (loading, results, error) is pushed back as JSON.
    """
    await websocket.accept()
    updates: asyncio.Queue = asyncio.Queue()
    aggregator = SearchAggregator(cache=_search_cache, on_change=updates.put_nowait)

    async def sender() -> None:
        while True:
            results: SearchResults = await updates.get()
            await websocket.send_json(results.model_dump(mode="json"))

    send_task = asyncio.create_task(sender())
    try:
        while True:
            aggregator.set_query(await websocket.receive_text())
    except WebSocketDisconnect:
        logger.debug("Live search client disconnected")
    finally:
        aggregator.close()
        send_task.cancel()


@app.post("/api/discover", response_model=FilteredResults)
async def discover(body: DiscoverRequest):
    return await filtered_search(body.query, body.filters)


# ── Recommendations ──────────────────────────────────────


@app.get("/api/recommendations", response_model=RecommendationResult)
async def recommendations(
    user_id: Optional[str] = Depends(get_optional_user_id),
    store: Optional[AccountStore] = Depends(get_optional_store),
):
    """Personal, genre-based and trending lists; anonymous users get trending."""
    return await RecommendationEngine(store).run(user_id)


@app.get("/api/recommendations/stream")
async def recommendations_stream(
    user_id: Optional[str] = Depends(get_optional_user_id),
    store: Optional[AccountStore] = Depends(get_optional_store),
):
    """Recommendations as Server-Sent Events: status, recommendations, done."""
    engine = RecommendationEngine(store)

    async def event_generator() -> AsyncIterator[dict]:
        yield {"event": "status", "data": json.dumps({"state": RecommendationState.LOADING.value})}
        result = await engine.run(user_id)
        yield {"event": "recommendations", "data": result.model_dump_json()}
        yield {"event": "done", "data": json.dumps({"state": result.state.value})}

    return EventSourceResponse(event_generator())


# ── Lists ─────────────────────────────────────────────────


@app.get("/api/lists", response_model=WatchlistResponse)
async def get_lists(
    q: str = Query(default="", max_length=200),
    sort: SortKey = SortKey.LATEST,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    try:
        genre_names = await tmdb.get_all_genres()
    except TMDBError as exc:
        logger.warning("Genre names unavailable; filtering by title only: %s", exc)
        genre_names = None
    return await watchlist.load_watchlists(
        store, user_id, search_text=q, sort_key=sort, genre_names=genre_names
    )


@app.post("/api/lists", response_model=AddToListResponse)
async def add_to_list(
    body: AddToListRequest,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    added = await store.add_membership(user_id, body.media_id, body.media_type, body.list_type)
    return AddToListResponse(added=added, already_present=not added)


@app.delete("/api/lists/{list_type}/{media_type}/{media_id}")
async def remove_from_list(
    list_type: ListType,
    media_type: MediaType,
    media_id: int,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    await store.remove_membership(user_id, media_id, media_type, list_type)
    return {"status": "removed"}


@app.post("/api/lists/share", response_model=ShareLinkResponse)
async def share_list(body: ShareLinkRequest, user_id: str = Depends(get_current_user_id)):
    url = watchlist.build_share_url(
        settings.public_base_url,
        user_id,
        body.list_type,
        include_notes=body.include_notes,
        include_ratings=body.include_ratings,
    )
    return ShareLinkResponse(url=url, targets=watchlist.build_share_targets(body.list_type, url, body.message))


@app.get("/api/shared-list", response_model=SharedListResponse)
async def shared_list(
    request: Request,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    store: AccountStore = Depends(get_store),
):
    """Public view of a shared list (`?type=…&user=…`)."""
    params = watchlist.parse_share_params(request.query_params)
    return await watchlist.load_shared_list(store, params, viewer_id)


# ── Profile ───────────────────────────────────────────────


@app.get("/api/profile", response_model=Profile)
async def get_profile(user_id: str = Depends(get_current_user_id), store: AccountStore = Depends(get_store)):
    profile = await store.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@app.patch("/api/profile", response_model=Profile)
async def update_profile(
    body: ProfileUpdate,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    updates = body.model_dump(exclude_unset=True)
    if not updates:
        raise HTTPException(status_code=422, detail="No profile fields to update")
    return await store.update_profile(user_id, updates)


# ── Rooms ─────────────────────────────────────────────────


@app.get("/api/rooms", response_model=List[Room])
async def list_rooms(user_id: str = Depends(get_current_user_id), store: AccountStore = Depends(get_store)):
    return await store.list_user_rooms(user_id)


@app.post("/api/rooms", response_model=Room, status_code=201)
async def create_room(
    body: CreateRoomRequest,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    return await rooms.create_room(store, user_id, body)


@app.post("/api/rooms/join/{room_code}", response_model=RoomDetail)
async def join_room_by_code(
    room_code: str,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    return await rooms.join_room_by_code(store, room_code, user_id)


@app.get("/api/rooms/{room_id}", response_model=RoomDetail)
async def room_detail(
    room_id: str,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    return await rooms.get_room_detail(store, room_id, user_id)


@app.post("/api/rooms/{room_id}/join", response_model=RoomDetail)
async def join_room(
    room_id: str,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    return await rooms.join_room(store, room_id, user_id)


@app.delete("/api/rooms/{room_id}/membership")
async def leave_room(
    room_id: str,
    user_id: str = Depends(get_current_user_id),
    store: AccountStore = Depends(get_store),
):
    await rooms.leave_room(store, room_id, user_id)
    return {"status": "left"}


# ── Titles ────────────────────────────────────────────────
# Registered last: `/api/{media_type}/…` would otherwise shadow the routes above.


@app.get("/api/{media_type}/lists/{category}", response_model=MediaPage)
async def catalog_list(media_type: MediaType, category: str, page: int = Query(default=1, ge=1, le=500)):
    """Popular / top_rated / upcoming (movie) / on_the_air (tv)."""
    data = await tmdb.get_list(media_type, category, page)
    return tmdb.to_media_page(data, media_type)


@app.get("/api/{media_type}/{media_id}")
async def title_details(media_type: MediaType, media_id: int):
    """Full TMDB details plus the normalized summary and image URLs."""
    data = await tmdb.get_details(media_type, media_id)
    summary = tmdb.to_media_summary(data, media_type)
    return {
        "summary": summary.model_dump(mode="json"),
        "poster_url": tmdb.poster_url(data.get("poster_path")),
        "backdrop_url": tmdb.backdrop_url(data.get("backdrop_path")),
        "details": data,
    }

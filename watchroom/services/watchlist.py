"""
Watchroom — Watchlists & sharing

Design patterns:
  - Batch Processor: memberships are hydrated with title details in parallel
  - Builder: share URLs and social share targets

A user's to-watch / watched / favorite lists live in the account store as
bare (media id, media type, list type) rows; display needs TMDB details,
fetched fresh on every load. Titles whose details fail are left out.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote, urlencode

from watchroom.clients.account_store import AccountStore
from watchroom.clients.tmdb import get_details, to_media_summary
from watchroom.models import (
    ListMembership,
    ListType,
    MediaKey,
    MediaSummary,
    SharedListParams,
    SharedListResponse,
    SortKey,
    WatchlistResponse,
)
from watchroom.services.list_filter import filter_and_sort

logger = logging.getLogger(__name__)

LIST_LABELS: Dict[ListType, str] = {
    ListType.TO_WATCH: "To Watch",
    ListType.WATCHED: "Watched",
    ListType.FAVORITE: "Favorites",
}

SHARED_LIST_PATH = "/shared-list"


# ── Hydration ────────────────────────────────────────────


async def hydrate_memberships(memberships: Sequence[ListMembership]) -> Dict[MediaKey, MediaSummary]:
    """Fetch details once per distinct title; failures are logged and skipped."""
    keys: List[MediaKey] = []
    for membership in memberships:
        if membership.key not in keys:
            keys.append(membership.key)

    results = await asyncio.gather(
        *[get_details(key.media_type, key.id) for key in keys],
        return_exceptions=True,
    )

    hydrated: Dict[MediaKey, MediaSummary] = {}
    for key, result in zip(keys, results):
        if isinstance(result, Exception):
            logger.warning("Error fetching details for %s: %s", key, result)
            continue
        hydrated[key] = to_media_summary(result, key.media_type)
    logger.info("Hydrated %d / %d titles", len(hydrated), len(keys))
    return hydrated


async def load_watchlists(
    store: AccountStore,
    user_id: str,
    *,
    search_text: str = "",
    sort_key: SortKey = SortKey.LATEST,
    genre_names: Optional[Mapping[int, str]] = None,
) -> WatchlistResponse:
    """All three lists of a user, filtered and sorted for display."""
    memberships = await store.list_memberships(user_id)
    hydrated = await hydrate_memberships(memberships)

    grouped: Dict[ListType, List[MediaSummary]] = {list_type: [] for list_type in ListType}
    for membership in memberships:
        item = hydrated.get(membership.key)
        if item is not None and item not in grouped[membership.list_type]:
            grouped[membership.list_type].append(item)

    return WatchlistResponse(
        **{
            list_type.value: filter_and_sort(items, search_text, sort_key, genre_names=genre_names)
            for list_type, items in grouped.items()
        }
    )


# ── Sharing ──────────────────────────────────────────────


def build_share_url(
    base_url: str,
    user_id: str,
    list_type: ListType,
    *,
    include_notes: bool = True,
    include_ratings: bool = True,
) -> str:
    params = {"type": list_type.value, "user": user_id}
    if include_notes:
        params["notes"] = "true"
    if include_ratings:
        params["ratings"] = "true"
    return f"{base_url.rstrip('/')}{SHARED_LIST_PATH}?{urlencode(params)}"


def parse_share_params(query: Mapping[str, str]) -> SharedListParams:
    """Read the query string of a share link. Raises ValueError if incomplete."""
    user_id = (query.get("user") or "").strip()
    raw_type = (query.get("type") or "").strip()
    if not user_id or not raw_type:
        raise ValueError("Invalid share link")
    try:
        list_type = ListType(raw_type)
    except ValueError:
        raise ValueError(f"Unknown list type: {raw_type}") from None
    return SharedListParams(
        user_id=user_id,
        list_type=list_type,
        include_notes=query.get("notes") == "true",
        include_ratings=query.get("ratings") == "true",
    )


def share_message(list_type: ListType, url: str, custom_message: Optional[str] = None) -> str:
    if custom_message and custom_message.strip():
        return f"{custom_message.strip()}\n\n{url}"
    return f"I wanted to share my {LIST_LABELS[list_type]} list with you. Check it out here: {url}"


def build_share_targets(list_type: ListType, url: str, custom_message: Optional[str] = None) -> Dict[str, str]:
    """Email and social intents for a share link."""
    label = LIST_LABELS[list_type]
    subject = f"My {label} list"
    body = share_message(list_type, url, custom_message)
    text = f"Check out my {label} list!"
    return {
        "link": url,
        "email": f"mailto:?subject={quote(subject)}&body={quote(body)}",
        "facebook": f"https://www.facebook.com/sharer/sharer.php?u={quote(url, safe='')}&quote={quote(text)}",
        "twitter": f"https://twitter.com/intent/tweet?url={quote(url, safe='')}&text={quote(text)}",
    }


async def load_shared_list(
    store: AccountStore,
    params: SharedListParams,
    viewer_id: Optional[str] = None,
) -> SharedListResponse:
    """The owner's profile and one hydrated list. An empty list is not an error."""
    profile, memberships = await asyncio.gather(
        store.get_profile(params.user_id),
        store.list_memberships(params.user_id, params.list_type),
    )
    hydrated = await hydrate_memberships(memberships)
    items: List[MediaSummary] = []
    for membership in memberships:
        item = hydrated.get(membership.key)
        if item is not None and item not in items:
            items.append(item)
    return SharedListResponse(
        owner=profile,
        list_type=params.list_type,
        items=items,
        is_owner=viewer_id == params.user_id,
    )

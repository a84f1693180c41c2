"""
Watchroom — List Filter / Sort Utility

Pure transform applied to an in-memory list before rendering. Accepts
MediaSummary models or raw TMDB dicts; missing or malformed fields fall
back to sort-safe defaults instead of raising. The input is never mutated.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from watchroom.models import SortKey


def _field(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value not in (None, ""):
            return value
    return None


def _date_key(item: Any) -> str:
    value = _field(item, "release_date", "first_air_date")
    if isinstance(value, date):
        return value.isoformat()
    return value if isinstance(value, str) else ""


def _rating_key(item: Any) -> float:
    value = _field(item, "rating", "vote_average")
    try:
        return float(value) if value is not None else 0.0
    except (TypeError, ValueError):
        return 0.0


def _title_key(item: Any) -> str:
    value = _field(item, "title", "name")
    return str(value).casefold() if value is not None else ""


# key function, descending?
_SORTS: Dict[SortKey, Tuple[Callable[[Any], Any], bool]] = {
    SortKey.LATEST: (_date_key, True),
    SortKey.OLDEST: (_date_key, False),
    SortKey.RATING_HIGH: (_rating_key, True),
    SortKey.RATING_LOW: (_rating_key, False),
    SortKey.TITLE_ASC: (_title_key, False),
    SortKey.TITLE_DESC: (_title_key, True),
}


def genre_names_of(item: Any, genre_names: Optional[Mapping[int, str]] = None) -> List[str]:
    """Genre names from `genres` (names or {id, name}) or `genre_ids` + lookup."""
    names: List[str] = []
    for genre in _field(item, "genres") or []:
        if isinstance(genre, str):
            names.append(genre)
        elif isinstance(genre, Mapping) and genre.get("name"):
            names.append(str(genre["name"]))
    if genre_names:
        for genre_id in _field(item, "genre_ids") or []:
            name = genre_names.get(genre_id)
            if name:
                names.append(name)
    return names


def matches(item: Any, search_text: str, genre_names: Optional[Mapping[int, str]] = None) -> bool:
    needle = search_text.strip().casefold()
    if not needle:
        return True
    if needle in _title_key(item):
        return True
    return any(needle in name.casefold() for name in genre_names_of(item, genre_names))


def filter_and_sort(
    items: Sequence[Any],
    search_text: str = "",
    sort_key: Union[SortKey, str] = SortKey.LATEST,
    *,
    genre_names: Optional[Mapping[int, str]] = None,
) -> List[Any]:
    """Return a new, filtered and stably sorted list.

    Missing dates sort as "" (first when ascending, last when descending);
    missing ratings as 0; titles compare case-insensitively with `name`
    as fallback. An unknown sort key leaves the order unchanged.
    """
    filtered = [item for item in items if matches(item, search_text or "", genre_names)]
    try:
        key_fn, descending = _SORTS[SortKey(sort_key)]
    except ValueError:
        return filtered
    return sorted(filtered, key=key_fn, reverse=descending)

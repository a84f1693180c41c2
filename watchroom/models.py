"""
Watchroom — Pydantic Models

Shared data models used across the service layer and the API.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

from pydantic import BaseModel, Field, field_validator


# ── Enumerations ─────────────────────────────────────────


class MediaType(str, Enum):
    MOVIE = "movie"
    TV = "tv"


class ListType(str, Enum):
    TO_WATCH = "to_watch"
    WATCHED = "watched"
    FAVORITE = "favorite"


class RoomRole(str, Enum):
    ADMIN = "admin"
    MEMBER = "member"


class SortKey(str, Enum):
    LATEST = "latest"
    OLDEST = "oldest"
    RATING_HIGH = "rating-high"
    RATING_LOW = "rating-low"
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"


class RecommendationState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    READY_WITH_FALLBACK = "ready-with-fallback"
    ERROR = "error"


# ── Identity ─────────────────────────────────────────────


class MediaKey(NamedTuple):
    """Composite identity of a title. TMDB reuses ids across movie and tv."""

    id: int
    media_type: MediaType

    def __str__(self) -> str:
        return f"{self.media_type.value}-{self.id}"


# ── Media ────────────────────────────────────────────────


class MediaSummary(BaseModel):
    """A movie or TV show as consumed by search, lists and recommendations."""

    id: int
    media_type: MediaType
    title: str = ""
    poster_path: Optional[str] = None
    rating: float = Field(default=0.0, ge=0.0, le=10.0)
    popularity: float = 0.0
    release_date: Optional[date] = None
    genre_ids: List[int] = Field(default_factory=list)

    @field_validator("release_date", mode="before")
    @classmethod
    def _lenient_date(cls, value: Any) -> Optional[Any]:
        if not value:
            return None
        if isinstance(value, str):
            try:
                return date.fromisoformat(value[:10])
            except ValueError:
                return None
        return value

    @field_validator("rating", mode="before")
    @classmethod
    def _clamp_rating(cls, value: Any) -> float:
        try:
            rating = float(value or 0.0)
        except (TypeError, ValueError):
            return 0.0
        return min(max(rating, 0.0), 10.0)

    @property
    def key(self) -> MediaKey:
        return MediaKey(self.id, self.media_type)


class PersonSummary(BaseModel):
    id: int
    name: str = ""
    profile_path: Optional[str] = None
    known_for_department: Optional[str] = None
    popularity: float = 0.0


class MediaPage(BaseModel):
    results: List[MediaSummary] = Field(default_factory=list)
    page: int = 1
    total_pages: int = 1


# ── Account store records ────────────────────────────────


class ListMembership(BaseModel):
    id: Optional[str] = None
    user_id: str
    media_id: int
    media_type: MediaType
    list_type: ListType
    added_at: Optional[datetime] = None

    @property
    def key(self) -> MediaKey:
        return MediaKey(self.media_id, self.media_type)


class Profile(BaseModel):
    id: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    bio: Optional[str] = None
    favorite_genres: Optional[str] = None
    updated_at: Optional[datetime] = None


class Room(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    created_by: Optional[str] = None
    room_code: str
    is_private: bool = True
    created_at: Optional[datetime] = None


class RoomMember(BaseModel):
    id: Optional[str] = None
    room_id: Optional[str] = None
    user_id: str
    role: RoomRole = RoomRole.MEMBER
    joined_at: Optional[datetime] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None


# ── Search ───────────────────────────────────────────────


class SearchPayload(BaseModel):
    """Cached body of a three-category search."""

    movies: List[MediaSummary] = Field(default_factory=list)
    tv_shows: List[MediaSummary] = Field(default_factory=list)
    people: List[PersonSummary] = Field(default_factory=list)


class SearchResults(BaseModel):
    query: str = ""
    movies: List[MediaSummary] = Field(default_factory=list)
    tv_shows: List[MediaSummary] = Field(default_factory=list)
    people: List[PersonSummary] = Field(default_factory=list)
    is_loading: bool = False
    error: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        """True for a settled search that found nothing (not an error)."""
        return (
            not self.is_loading
            and self.error is None
            and not (self.movies or self.tv_shows or self.people)
        )


class DiscoverFilters(BaseModel):
    genre_ids: List[int] = Field(default_factory=list)
    year_from: int = Field(default=1900, ge=1800)
    year_to: Optional[int] = None
    rating_min: float = Field(default=0.0, ge=0.0, le=10.0)
    rating_max: float = Field(default=10.0, ge=0.0, le=10.0)
    sort_by: str = "popularity.desc"
    include_adult: bool = False


class FilteredResults(BaseModel):
    movies: List[MediaSummary] = Field(default_factory=list)
    tv_shows: List[MediaSummary] = Field(default_factory=list)


# ── Recommendations ──────────────────────────────────────


class RecommendationResult(BaseModel):
    state: RecommendationState = RecommendationState.IDLE
    personal: List[MediaSummary] = Field(default_factory=list)
    genre_based: List[MediaSummary] = Field(default_factory=list)
    trending: List[MediaSummary] = Field(default_factory=list)
    top_genres: List[int] = Field(default_factory=list)
    error: Optional[str] = None


# ── API Contract ─────────────────────────────────────────


class DiscoverRequest(BaseModel):
    query: str = Field(default="", max_length=500)
    filters: DiscoverFilters = Field(default_factory=DiscoverFilters)


class AddToListRequest(BaseModel):
    media_id: int
    media_type: MediaType
    list_type: ListType


class AddToListResponse(BaseModel):
    added: bool
    already_present: bool = False


class WatchlistResponse(BaseModel):
    to_watch: List[MediaSummary] = Field(default_factory=list)
    watched: List[MediaSummary] = Field(default_factory=list)
    favorite: List[MediaSummary] = Field(default_factory=list)


class ShareLinkRequest(BaseModel):
    list_type: ListType
    include_notes: bool = True
    include_ratings: bool = True
    message: Optional[str] = Field(default=None, max_length=1000)


class ShareLinkResponse(BaseModel):
    url: str
    targets: Dict[str, str] = Field(default_factory=dict)


class SharedListParams(BaseModel):
    user_id: str
    list_type: ListType
    include_notes: bool = False
    include_ratings: bool = False


class SharedListResponse(BaseModel):
    owner: Optional[Profile] = None
    list_type: ListType
    items: List[MediaSummary] = Field(default_factory=list)
    is_owner: bool = False


class ProfileUpdate(BaseModel):
    username: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = None
    bio: Optional[str] = Field(default=None, max_length=2000)
    favorite_genres: Optional[str] = Field(default=None, max_length=500)


class CreateRoomRequest(BaseModel):
    name: str = Field(..., max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    is_private: bool = True


class RoomDetail(BaseModel):
    room: Room
    members: List[RoomMember] = Field(default_factory=list)
    is_member: bool = False

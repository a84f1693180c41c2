"""
Watchroom — Account Store Client (Supabase)

Design patterns:
  - Repository: typed CRUD over profiles, user_lists, rooms, room_members
  - Async Facade: blocking PostgREST calls run in a worker thread
  - Error Translation: PostgREST codes become domain exceptions

Uniqueness (one membership per user/media/list, one row per room member)
is enforced by the database; duplicates surface as DuplicateRecordError
and the add_* helpers turn them into a non-fatal False.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from anyio import to_thread
from postgrest.exceptions import APIError

from watchroom.config import settings
from watchroom.models import (
    ListMembership,
    ListType,
    MediaType,
    Profile,
    Room,
    RoomMember,
    RoomRole,
)

logger = logging.getLogger(__name__)

PROFILES = "profiles"
USER_LISTS = "user_lists"
ROOMS = "rooms"
ROOM_MEMBERS = "room_members"

_MEMBER_COLUMNS = "id, room_id, user_id, role, joined_at, profiles:user_id(username, avatar_url)"
_MEMBER_ROOM_COLUMNS = "room_id, rooms:room_id(id, name, description, created_by, room_code, is_private, created_at)"


class AccountStoreError(Exception):
    """Unexpected failure talking to the account store."""


class DuplicateRecordError(AccountStoreError):
    pass


class PermissionDeniedError(AccountStoreError):
    pass


class RecordNotFoundError(AccountStoreError):
    pass


def _map_api_error(exc: APIError) -> AccountStoreError:
    # 23505 unique_violation, 42501 insufficient_privilege (RLS),
    # PGRST116 .single() matched zero rows
    code = getattr(exc, "code", None) or ""
    message = getattr(exc, "message", None) or str(exc)
    if code == "23505":
        return DuplicateRecordError(message)
    if code == "42501":
        return PermissionDeniedError(message)
    if code == "PGRST116":
        return RecordNotFoundError(message)
    return AccountStoreError(f"{code}: {message}" if code else message)


def create_supabase_client():
    """Build a service client from settings. Imported lazily so tests need no server."""
    from supabase import Client, create_client

    if not settings.supabase_configured:
        raise AccountStoreError("SUPABASE_URL and SUPABASE_KEY must be set")
    client: Client = create_client(settings.supabase_url, settings.supabase_key)
    return client


class AccountStore:
    def __init__(self, client) -> None:
        self.client = client

    # ---------- Execution ----------
    async def _run(self, fn, *args) -> Any:
        return await to_thread.run_sync(fn, *args)

    @staticmethod
    def _execute(query) -> List[Dict[str, Any]]:
        try:
            res = query.execute()
        except APIError as exc:
            raise _map_api_error(exc) from exc
        return res.data or []

    # ---------- Auth ----------
    async def resolve_user_id(self, token: str) -> Optional[str]:
        """Return the user id behind a Supabase access token, or None."""
        return await self._run(self._resolve_user_id_sync, token)

    def _resolve_user_id_sync(self, token: str) -> Optional[str]:
        try:
            resp = self.client.auth.get_user(token)
        except Exception as exc:
            logger.info("Token rejected by auth provider: %s", exc)
            return None
        user = getattr(resp, "user", None)
        return getattr(user, "id", None) if user else None

    # ---------- List memberships ----------
    async def list_memberships(
        self, user_id: str, list_type: Optional[ListType] = None
    ) -> List[ListMembership]:
        return await self._run(self._list_memberships_sync, user_id, list_type)

    def _list_memberships_sync(
        self, user_id: str, list_type: Optional[ListType]
    ) -> List[ListMembership]:
        query = self.client.table(USER_LISTS).select("*").eq("user_id", user_id)
        if list_type is not None:
            query = query.eq("list_type", list_type.value)
        rows = self._execute(query.order("added_at", desc=True))
        return [ListMembership(**row) for row in rows]

    async def add_membership(
        self, user_id: str, media_id: int, media_type: MediaType, list_type: ListType
    ) -> bool:
        """Insert a membership; False when it already exists."""
        return await self._run(self._add_membership_sync, user_id, media_id, media_type, list_type)

    def _add_membership_sync(
        self, user_id: str, media_id: int, media_type: MediaType, list_type: ListType
    ) -> bool:
        payload = {
            "user_id": user_id,
            "media_id": media_id,
            "media_type": media_type.value,
            "list_type": list_type.value,
        }
        try:
            self._execute(self.client.table(USER_LISTS).insert(payload))
        except DuplicateRecordError:
            logger.debug("Membership already present: %s", payload)
            return False
        return True

    async def remove_membership(
        self, user_id: str, media_id: int, media_type: MediaType, list_type: ListType
    ) -> None:
        await self._run(self._remove_membership_sync, user_id, media_id, media_type, list_type)

    def _remove_membership_sync(
        self, user_id: str, media_id: int, media_type: MediaType, list_type: ListType
    ) -> None:
        self._execute(
            self.client.table(USER_LISTS)
            .delete()
            .eq("user_id", user_id)
            .eq("media_id", media_id)
            .eq("media_type", media_type.value)
            .eq("list_type", list_type.value)
        )

    # ---------- Profiles ----------
    async def get_profile(self, user_id: str) -> Optional[Profile]:
        return await self._run(self._get_profile_sync, user_id)

    def _get_profile_sync(self, user_id: str) -> Optional[Profile]:
        rows = self._execute(
            self.client.table(PROFILES).select("*").eq("id", user_id).limit(1)
        )
        return Profile(**rows[0]) if rows else None

    async def update_profile(self, user_id: str, updates: Dict[str, Any]) -> Profile:
        return await self._run(self._update_profile_sync, user_id, updates)

    def _update_profile_sync(self, user_id: str, updates: Dict[str, Any]) -> Profile:
        payload = dict(updates)
        payload["updated_at"] = datetime.now(timezone.utc).isoformat()
        rows = self._execute(
            self.client.table(PROFILES).update(payload).eq("id", user_id)
        )
        if not rows:
            raise RecordNotFoundError("profile not found")
        return Profile(**rows[0])

    # ---------- Rooms ----------
    async def create_room(
        self,
        *,
        name: str,
        description: Optional[str],
        created_by: str,
        room_code: str,
        is_private: bool,
    ) -> Room:
        payload = {
            "name": name,
            "description": description,
            "created_by": created_by,
            "room_code": room_code,
            "is_private": is_private,
        }
        return await self._run(self._create_room_sync, payload)

    def _create_room_sync(self, payload: Dict[str, Any]) -> Room:
        rows = self._execute(self.client.table(ROOMS).insert(payload))
        if not rows:
            raise AccountStoreError("room insert returned no row")
        return Room(**rows[0])

    async def get_room(self, room_id: str) -> Optional[Room]:
        return await self._run(self._get_room_by_sync, "id", room_id)

    async def find_room_by_code(self, room_code: str) -> Optional[Room]:
        return await self._run(self._get_room_by_sync, "room_code", room_code.upper())

    def _get_room_by_sync(self, column: str, value: str) -> Optional[Room]:
        rows = self._execute(
            self.client.table(ROOMS).select("*").eq(column, value).limit(1)
        )
        return Room(**rows[0]) if rows else None

    async def list_user_rooms(self, user_id: str) -> List[Room]:
        return await self._run(self._list_user_rooms_sync, user_id)

    def _list_user_rooms_sync(self, user_id: str) -> List[Room]:
        rows = self._execute(
            self.client.table(ROOM_MEMBERS).select(_MEMBER_ROOM_COLUMNS).eq("user_id", user_id)
        )
        return [Room(**row["rooms"]) for row in rows if row.get("rooms")]

    async def add_room_member(self, room_id: str, user_id: str, role: RoomRole) -> bool:
        """Insert a member row; False when the user already belongs to the room."""
        return await self._run(self._add_room_member_sync, room_id, user_id, role)

    def _add_room_member_sync(self, room_id: str, user_id: str, role: RoomRole) -> bool:
        payload = {"room_id": room_id, "user_id": user_id, "role": role.value}
        try:
            self._execute(self.client.table(ROOM_MEMBERS).insert(payload))
        except DuplicateRecordError:
            return False
        return True

    async def remove_room_member(self, room_id: str, user_id: str) -> None:
        await self._run(self._remove_room_member_sync, room_id, user_id)

    def _remove_room_member_sync(self, room_id: str, user_id: str) -> None:
        self._execute(
            self.client.table(ROOM_MEMBERS)
            .delete()
            .eq("room_id", room_id)
            .eq("user_id", user_id)
        )

    async def list_room_members(self, room_id: str) -> List[RoomMember]:
        return await self._run(self._list_room_members_sync, room_id)

    def _list_room_members_sync(self, room_id: str) -> List[RoomMember]:
        rows = self._execute(
            self.client.table(ROOM_MEMBERS).select(_MEMBER_COLUMNS).eq("room_id", room_id)
        )
        members: List[RoomMember] = []
        for row in rows:
            profile = row.get("profiles") or {}
            members.append(
                RoomMember(
                    id=row.get("id"),
                    room_id=row.get("room_id") or room_id,
                    user_id=row["user_id"],
                    role=row.get("role") or RoomRole.MEMBER,
                    joined_at=row.get("joined_at"),
                    username=profile.get("username"),
                    avatar_url=profile.get("avatar_url"),
                )
            )
        return members

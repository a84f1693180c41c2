"""
Watchroom — Watch rooms

Rooms are shared spaces joined by id or by a 6-character code. The
creator is inserted as the room's admin.
"""

from __future__ import annotations

import logging
import secrets
import string
from typing import Optional

from watchroom.clients.account_store import (
    AccountStore,
    DuplicateRecordError,
    RecordNotFoundError,
)
from watchroom.models import CreateRoomRequest, Room, RoomDetail, RoomRole

logger = logging.getLogger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6
_CODE_ATTEMPTS = 3


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(length))


async def create_room(store: AccountStore, owner_id: str, request: CreateRoomRequest) -> Room:
    """Create a room and make its creator the admin. Raises ValueError without a name."""
    name = request.name.strip()
    if not name:
        raise ValueError("Room name is required")
    description = (request.description or "").strip() or None

    room: Optional[Room] = None
    for attempt in range(1, _CODE_ATTEMPTS + 1):
        try:
            room = await store.create_room(
                name=name,
                description=description,
                created_by=owner_id,
                room_code=generate_room_code(),
                is_private=request.is_private,
            )
            break
        except DuplicateRecordError:
            # room_code collision
            logger.info("Room code collision (attempt %d/%d)", attempt, _CODE_ATTEMPTS)
    if room is None:
        raise DuplicateRecordError("Could not allocate a unique room code")

    await store.add_room_member(room.id, owner_id, RoomRole.ADMIN)
    logger.info("Room %s created by %s (code %s)", room.id, owner_id, room.room_code)
    return room


async def get_room_detail(store: AccountStore, room_id: str, viewer_id: str) -> RoomDetail:
    room = await store.get_room(room_id)
    if room is None:
        raise RecordNotFoundError("Room not found")
    members = await store.list_room_members(room_id)
    return RoomDetail(
        room=room,
        members=members,
        is_member=any(m.user_id == viewer_id for m in members),
    )


async def join_room(store: AccountStore, room_id: str, user_id: str) -> RoomDetail:
    """Join as a member; joining twice is not an error."""
    room = await store.get_room(room_id)
    if room is None:
        raise RecordNotFoundError("Room not found")
    if not await store.add_room_member(room.id, user_id, RoomRole.MEMBER):
        logger.debug("User %s already in room %s", user_id, room.id)
    return await get_room_detail(store, room.id, user_id)


async def join_room_by_code(store: AccountStore, room_code: str, user_id: str) -> RoomDetail:
    room = await store.find_room_by_code(room_code.strip())
    if room is None:
        raise RecordNotFoundError("Room not found")
    return await join_room(store, room.id, user_id)


async def leave_room(store: AccountStore, room_id: str, user_id: str) -> None:
    await store.remove_room_member(room_id, user_id)

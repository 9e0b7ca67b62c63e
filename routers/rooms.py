from fastapi import APIRouter, Depends, HTTPException

from backend import RoomRegistry, validate_room_code
from constants import INVALID_ROOM_CODE_MESSAGE, ROOM_NOT_FOUND_MESSAGE
from dependencies import get_registry
from logging_config import get_logger
from schemas.rooms import RoomDetailsResponse, RoomUser

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


@rooms_router.get("/{room_code}", response_model=RoomDetailsResponse)
async def get_room_details(room_code: str, registry: RoomRegistry = Depends(get_registry)):
    """
    Look up a live room before opening the websocket.

    Returns:
    - room_code: Canonical (uppercase) room code
    - host_name: Display name of the host
    - user_count / users: Current members in join order
    - is_playing / current_time: Last playback state set by the host
    - has_subtitle: Whether the host has shared a subtitle file
    - created_at: Creation time in epoch milliseconds
    """
    logger.info(f"Room details request for {room_code}")

    if not validate_room_code(room_code):
        logger.warning(f"Room details failed: malformed room code {room_code!r}")
        raise HTTPException(status_code=400, detail=INVALID_ROOM_CODE_MESSAGE)

    room = await registry.get_room(room_code)
    if not room:
        logger.warning(f"Room details failed: Room {room_code} not found")
        raise HTTPException(status_code=404, detail=ROOM_NOT_FOUND_MESSAGE)

    async with room.lock:
        users = [
            RoomUser(id=user.id, username=user.username, is_host=user.is_host, is_ready=user.is_ready)
            for user in room.users.values()
        ]
        host = room.users.get(room.host_id)
        return RoomDetailsResponse(
            room_code=room.code,
            host_name=host.username if host else None,
            user_count=len(users),
            users=users,
            is_playing=room.is_playing,
            current_time=room.current_time,
            has_subtitle=room.subtitle_data is not None,
            created_at=room.created_at,
        )

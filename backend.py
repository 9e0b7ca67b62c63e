import asyncio
import html
import random
import re
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from constants import (
    DEFAULT_HOST_NAME,
    INVALID_ROOM_CODE_MESSAGE,
    MAX_USERNAME_LENGTH,
    ROOM_CODE_ALPHABET,
    ROOM_CODE_LENGTH,
    ROOM_CODE_PATTERN,
    ROOM_NOT_FOUND_MESSAGE,
)
from logging_config import get_logger

logger = get_logger(__name__)

_room_code_re = re.compile(ROOM_CODE_PATTERN)


class RoomError(Exception):
    """Base class for errors reported back to the requesting connection."""

    message = "Room error"

    def __init__(self, room_code: Any = None):
        super().__init__(f"{self.message}: {room_code!r}")
        self.room_code = room_code


class InvalidRoomCode(RoomError):
    message = INVALID_ROOM_CODE_MESSAGE


class RoomNotFound(RoomError):
    message = ROOM_NOT_FOUND_MESSAGE


def now_ms() -> int:
    return int(time.time() * 1000)


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def validate_room_code(room_code: Any) -> bool:
    return isinstance(room_code, str) and bool(_room_code_re.fullmatch(room_code))


def sanitize_username(username: Any) -> str:
    """Escape a display name so it is safe to render in other clients."""
    if not isinstance(username, str):
        return ""
    username = username.strip()[:MAX_USERNAME_LENGTH]
    return html.escape(username, quote=True)


@dataclass
class User:
    id: str
    username: str
    is_host: bool = False
    is_ready: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "isHost": self.is_host,
            "isReady": self.is_ready,
        }


@dataclass
class Room:
    code: str
    host_id: str
    users: Dict[str, User] = field(default_factory=dict)
    subtitle_data: Any = None
    subtitle_name: Optional[str] = None
    is_playing: bool = False
    current_time: float = 0.0
    last_sync_time: int = field(default_factory=now_ms)
    created_at: int = field(default_factory=now_ms)
    # Set once the room is torn down; handlers that raced the teardown must not touch it
    closed: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)

    def is_host(self, connection_id: str) -> bool:
        return connection_id == self.host_id

    def user_list(self) -> List[dict]:
        return [user.to_dict() for user in self.users.values()]

    def all_ready(self) -> bool:
        return all(user.is_ready for user in self.users.values())

    def member_ids(self, exclude: Optional[str] = None) -> List[str]:
        return [connection_id for connection_id in self.users if connection_id != exclude]

    def sync_to(self, current_time: float, is_playing: Optional[bool] = None):
        if is_playing is not None:
            self.is_playing = is_playing
        self.current_time = current_time
        self.last_sync_time = now_ms()


class RoomRegistry:
    """In-memory owner of every live room.

    The code -> room map and the connection -> room index are guarded by the
    registry lock. Methods that mutate a single room expect the caller to hold
    that room's lock, so a whole transition (state change plus the messages it
    produces) runs without interleaving. Lock order is room lock, then
    registry lock.
    """

    def __init__(self, code_generator: Callable[[], str] = generate_room_code):
        self.rooms: Dict[str, Room] = {}
        self.memberships: Dict[str, str] = {}
        self._generate_code = code_generator
        self._lock = asyncio.Lock()
        logger.info("Initializing in-memory RoomRegistry")

    async def create_room(self, connection_id: str, username: Any) -> Room:
        async with self._lock:
            room_code = self._generate_code()
            while room_code in self.rooms:
                logger.warning(f"Room code collision on {room_code}, generating another")
                room_code = self._generate_code()

            host = User(
                id=connection_id,
                username=sanitize_username(username) or DEFAULT_HOST_NAME,
                is_host=True,
            )
            room = Room(code=room_code, host_id=connection_id)
            room.users[connection_id] = host
            self.rooms[room_code] = room
            self.memberships[connection_id] = room_code

        logger.info(f"Room {room_code} created by {connection_id} ({host.username})")
        return room

    async def find_room(self, room_code: Any) -> Room:
        """Resolve a client supplied code, raising InvalidRoomCode or RoomNotFound."""
        if not validate_room_code(room_code):
            logger.info(f"Rejected malformed room code {room_code!r}")
            raise InvalidRoomCode(room_code)

        room = await self.get_room(room_code)
        if room is None:
            logger.info(f"Room {room_code} not found")
            raise RoomNotFound(room_code)
        return room

    async def join_room(self, room: Room, connection_id: str, username: Any) -> User:
        """Add a guest to ``room``. The caller holds ``room.lock``."""
        if room.closed:
            raise RoomNotFound(room.code)

        user = User(
            id=connection_id,
            username=sanitize_username(username) or f"User {len(room.users) + 1}",
        )
        room.users[connection_id] = user
        async with self._lock:
            self.memberships[connection_id] = room.code

        logger.info(f"User {connection_id} ({user.username}) joined room {room.code}")
        return user

    async def remove_user(self, room: Room, connection_id: str) -> Optional[User]:
        """Remove a member, destroying the room if it was the host.

        The caller holds ``room.lock``. Returns None when the connection was
        not a member, which makes repeated disconnects harmless.
        """
        if room.closed:
            return None
        user = room.users.pop(connection_id, None)
        if user is None:
            return None

        async with self._lock:
            if self.memberships.get(connection_id) == room.code:
                del self.memberships[connection_id]

            if room.is_host(connection_id):
                room.closed = True
                if self.rooms.get(room.code) is room:
                    del self.rooms[room.code]
                for member_id in room.users:
                    if self.memberships.get(member_id) == room.code:
                        del self.memberships[member_id]

        if room.closed:
            logger.info(f"Host {connection_id} left, room {room.code} destroyed ({len(room.users)} members notified)")
        else:
            logger.info(f"User {connection_id} left room {room.code} ({len(room.users)} remaining)")
        return user

    async def get_room(self, room_code: str) -> Optional[Room]:
        async with self._lock:
            return self.rooms.get(room_code.upper())

    async def room_for(self, connection_id: str) -> Optional[Room]:
        async with self._lock:
            room_code = self.memberships.get(connection_id)
            if room_code is None:
                return None
            return self.rooms.get(room_code)

    def room_count(self) -> int:
        return len(self.rooms)

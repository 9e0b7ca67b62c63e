from pydantic import BaseModel
from typing import Optional


class RoomUser(BaseModel):
    id: str
    username: str
    is_host: bool
    is_ready: bool


class RoomDetailsResponse(BaseModel):
    room_code: str
    host_name: Optional[str]
    user_count: int
    users: list[RoomUser]
    is_playing: bool
    current_time: float
    has_subtitle: bool
    created_at: int


class HealthResponse(BaseModel):
    status: str
    rooms: int
    connections: int

import json
from typing import Optional

from pydantic import ValidationError

import signaling
from backend import Room, RoomError, RoomNotFound, RoomRegistry, now_ms
from connections import ConnectionManager
from constants import HOST_LEFT_MESSAGE, MAX_MESSAGE_BYTES
from logging_config import get_logger
from schemas.messages import (
    ClientReady,
    CreateRoom,
    HostTimeUpdate,
    IceCandidate,
    JoinRoom,
    Pause,
    Play,
    RequestPeerList,
    Seek,
    ShareSubtitle,
    Skip,
    SubtitleText,
    WebRTCAnswer,
    WebRTCOffer,
    parse_client_message,
)

logger = get_logger(__name__)


class WatchPartySession:
    """Applies client events to room state and fans out the results.

    Every transition runs under the affected room's lock, including the
    messages it sends, so each room sees one event at a time. Requests that
    fail an authorization check are dropped without a reply.
    """

    def __init__(self, registry: RoomRegistry, connections: ConnectionManager):
        self.registry = registry
        self.connections = connections

    async def handle_frame(self, connection_id: str, data: str):
        """Decode one text frame and dispatch it. Malformed frames are dropped."""
        if len(data.encode("utf-8")) > MAX_MESSAGE_BYTES:
            logger.warning(f"Dropping oversized frame (over {MAX_MESSAGE_BYTES} bytes) from connection {connection_id}")
            return

        try:
            message = parse_client_message(json.loads(data))
        except json.JSONDecodeError:
            logger.warning(f"Dropping non-JSON frame from connection {connection_id}")
            return
        except ValidationError as e:
            logger.warning(f"Dropping invalid frame from connection {connection_id}: {e.error_count()} validation errors")
            logger.debug(f"Validation errors for connection {connection_id}: {e}")
            return

        await self.dispatch(connection_id, message)

    async def dispatch(self, connection_id: str, message):
        logger.debug(f"Dispatching {message.type} from connection {connection_id}")
        match message:
            case CreateRoom():
                await self.create_room(connection_id, message)
            case JoinRoom():
                await self.join_room(connection_id, message)
            case RequestPeerList():
                await signaling.send_peer_list(self.registry, self.connections, connection_id)
            case WebRTCOffer():
                await signaling.relay(self.connections, message.type, connection_id, message.target_id, message.offer)
            case WebRTCAnswer():
                await signaling.relay(self.connections, message.type, connection_id, message.target_id, message.answer)
            case IceCandidate():
                await signaling.relay(self.connections, message.type, connection_id, message.target_id, message.candidate)
            case ShareSubtitle():
                await self.share_subtitle(connection_id, message)
            case SubtitleText():
                await self.subtitle_text(connection_id, message)
            case ClientReady():
                await self.client_ready(connection_id)
            case Play():
                await self.play(connection_id, message.current_time)
            case Pause():
                await self.pause(connection_id, message.current_time)
            case Seek():
                await self.seek(connection_id, message.current_time)
            case HostTimeUpdate():
                await self.host_time_update(connection_id, message.current_time)
            case Skip():
                await self.skip(connection_id, message.offset)
            case _:
                logger.warning(f"No handler for {type(message).__name__} from connection {connection_id}")

    # --- Membership ---

    async def create_room(self, connection_id: str, message: CreateRoom):
        await self.leave(connection_id)
        room = await self.registry.create_room(connection_id, message.username)
        async with room.lock:
            await self.connections.send(connection_id, {
                "type": "room_created",
                "roomCode": room.code,
                "users": room.user_list(),
            })

    async def join_room(self, connection_id: str, message: JoinRoom):
        try:
            room = await self.registry.find_room(message.room_code)
        except RoomError as e:
            await self._send_error(connection_id, e)
            return

        await self.leave(connection_id)

        async with room.lock:
            try:
                user = await self.registry.join_room(room, connection_id, message.username)
            except RoomNotFound as e:
                await self._send_error(connection_id, e)
                return

            await self.connections.send(connection_id, {
                "type": "room_joined",
                "roomCode": room.code,
                "subtitleData": room.subtitle_data,
                "subtitleName": room.subtitle_name,
                "users": room.user_list(),
                "isPlaying": room.is_playing,
                "currentTime": room.current_time,
            })
            await self._broadcast_membership(room)
            # The host opens the peer connection, so it needs to hear about the newcomer
            await self.connections.send(room.host_id, {
                "type": "peer_joined",
                "peerId": connection_id,
                "username": user.username,
            })

    async def leave(self, connection_id: str):
        """Remove a connection from its room. Safe to call more than once."""
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            if room.closed:
                return
            user = await self.registry.remove_user(room, connection_id)
            if user is None:
                return

            if room.closed:
                await self.connections.multicast(room.member_ids(), {
                    "type": "room_closed",
                    "message": HOST_LEFT_MESSAGE,
                })
                return

            await self.connections.multicast(room.member_ids(), {
                "type": "user_list_update",
                "users": room.user_list(),
            })
            await self.connections.multicast(room.member_ids(), {
                "type": "peer_disconnected",
                "peerId": connection_id,
            })
            await self.connections.multicast(room.member_ids(), {
                "type": "ready_status",
                "allReady": room.all_ready(),
            })

    async def handle_disconnect(self, connection_id: str):
        await self.leave(connection_id)

    async def client_ready(self, connection_id: str):
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            user = room.users.get(connection_id)
            if room.closed or user is None:
                return
            user.is_ready = True
            logger.debug(f"User {connection_id} is ready in room {room.code}")
            await self._broadcast_membership(room)

    # --- Subtitles ---

    async def share_subtitle(self, connection_id: str, message: ShareSubtitle):
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            if not self._is_host(room, connection_id, message.type):
                return
            room.subtitle_data = message.subtitle_data
            room.subtitle_name = message.subtitle_name
            await self.connections.multicast(room.member_ids(exclude=connection_id), {
                "type": "subtitle_received",
                "subtitleData": message.subtitle_data,
                "subtitleName": message.subtitle_name,
            })
            logger.info(f"Subtitle {message.subtitle_name!r} shared in room {room.code}")

    async def subtitle_text(self, connection_id: str, message: SubtitleText):
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            if not self._is_host(room, connection_id, message.type):
                return
            await self.connections.multicast(room.member_ids(exclude=connection_id), {
                "type": "subtitle_text",
                "text": message.text,
            })

    # --- Playback ---

    async def play(self, connection_id: str, current_time: float):
        await self._apply_playback(connection_id, "play", "sync_play", current_time, is_playing=True, echo=True)

    async def pause(self, connection_id: str, current_time: float):
        await self._apply_playback(connection_id, "pause", "sync_pause", current_time, is_playing=False, echo=True)

    async def seek(self, connection_id: str, current_time: float):
        await self._apply_playback(connection_id, "seek", "sync_seek", current_time, is_playing=None, echo=False)

    async def host_time_update(self, connection_id: str, current_time: float):
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            if not self._is_host(room, connection_id, "host_time_update"):
                return
            if not room.is_playing:
                logger.debug(f"Ignoring host_time_update in paused room {room.code}")
                return
            room.sync_to(current_time)
            await self.connections.multicast(room.member_ids(exclude=connection_id), {
                "type": "time_check",
                "currentTime": current_time,
                "serverTimestamp": now_ms(),
            })

    async def skip(self, connection_id: str, offset: float):
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            if room.closed or room.is_host(connection_id):
                logger.debug(f"Ignoring skip from host {connection_id}")
                return
            # The host decides how to apply the skip and answers with its own seek/play
            await self.connections.send(room.host_id, {
                "type": "skip_request",
                "offset": offset,
                "from": connection_id,
            })

    async def _apply_playback(self, connection_id: str, action: str, event: str, current_time: float,
                              is_playing: Optional[bool], echo: bool):
        room = await self.registry.room_for(connection_id)
        if room is None:
            return

        async with room.lock:
            if not self._is_host(room, connection_id, action):
                return
            room.sync_to(current_time, is_playing=is_playing)
            recipients = room.member_ids() if echo else room.member_ids(exclude=connection_id)
            await self.connections.multicast(recipients, {
                "type": event,
                "currentTime": current_time,
                "serverTimestamp": now_ms(),
            })
            logger.debug(f"Room {room.code} {action} at {current_time} (playing={room.is_playing})")

    # --- Helpers ---

    def _is_host(self, room: Room, connection_id: str, action: str) -> bool:
        if room.closed or not room.is_host(connection_id):
            logger.debug(f"Ignoring {action} from non-host {connection_id} in room {room.code}")
            return False
        return True

    async def _broadcast_membership(self, room: Room):
        await self.connections.multicast(room.member_ids(), {
            "type": "user_list_update",
            "users": room.user_list(),
        })
        await self.connections.multicast(room.member_ids(), {
            "type": "ready_status",
            "allReady": room.all_ready(),
        })

    async def _send_error(self, connection_id: str, error: RoomError):
        await self.connections.send(connection_id, {
            "type": "error",
            "message": error.message,
        })

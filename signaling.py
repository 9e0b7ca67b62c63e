"""WebRTC signaling relay.

Offers, answers and ICE candidates are forwarded unmodified to the target
connection with the sender's id attached. Nothing is tracked between calls;
peers sequence offer -> answer -> candidates themselves.
"""
from typing import Any

from backend import RoomRegistry
from connections import ConnectionManager
from logging_config import get_logger

logger = get_logger(__name__)

# message type -> payload key
RELAY_PAYLOAD_KEYS = {
    "webrtc_offer": "offer",
    "webrtc_answer": "answer",
    "ice_candidate": "candidate",
}


async def relay(connections: ConnectionManager, kind: str, sender_id: str, target_id: str, payload: Any) -> bool:
    payload_key = RELAY_PAYLOAD_KEYS[kind]
    delivered = await connections.send(target_id, {
        "type": kind,
        "senderId": sender_id,
        payload_key: payload,
    })
    if delivered:
        logger.debug(f"Relayed {kind} from {sender_id} to {target_id}")
    else:
        logger.debug(f"Dropped {kind} from {sender_id}: target {target_id} is not connected")
    return delivered


async def send_peer_list(registry: RoomRegistry, connections: ConnectionManager, connection_id: str):
    """Replay peer_joined for every other member, so a host that loaded its
    media late can still open connections to peers that joined earlier."""
    room = await registry.room_for(connection_id)
    if room is None:
        return

    async with room.lock:
        if room.closed or not room.is_host(connection_id):
            logger.debug(f"Ignoring request_peer_list from non-host {connection_id}")
            return
        for peer_id, user in list(room.users.items()):
            if peer_id == connection_id:
                continue
            await connections.send(connection_id, {
                "type": "peer_joined",
                "peerId": peer_id,
                "username": user.username,
            })
        logger.debug(f"Sent peer list ({len(room.users) - 1} peers) to host {connection_id} in room {room.code}")

import asyncio
import json
from typing import Dict, Iterable

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Tracks live WebSocket connections by connection id.

    Delivery is fire-and-forget: a failed send is logged and dropped, never
    retried and never raised to the handler that produced the message.
    """

    def __init__(self):
        # Format: {connection_id: websocket}
        self.active_connections: Dict[str, WebSocket] = {}
        self._send_locks: Dict[str, asyncio.Lock] = {}

    def connect(self, connection_id: str, websocket: WebSocket):
        self.active_connections[connection_id] = websocket
        self._send_locks[connection_id] = asyncio.Lock()
        logger.debug(f"Tracking connection {connection_id} ({len(self.active_connections)} live)")

    def disconnect(self, connection_id: str) -> bool:
        websocket = self.active_connections.pop(connection_id, None)
        self._send_locks.pop(connection_id, None)
        if websocket is None:
            return False
        logger.debug(f"Stopped tracking connection {connection_id} ({len(self.active_connections)} live)")
        return True

    def is_connected(self, connection_id: str) -> bool:
        return connection_id in self.active_connections

    async def send(self, connection_id: str, message: dict) -> bool:
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            logger.debug(f"Dropping {message.get('type', 'unknown')} for unknown connection {connection_id}")
            return False

        try:
            async with self._send_locks[connection_id]:
                await websocket.send_text(json.dumps(message))
            return True
        except Exception as e:
            logger.warning(f"Error sending {message.get('type', 'unknown')} to connection {connection_id}: {e}")
            return False

    async def multicast(self, connection_ids: Iterable[str], message: dict):
        connection_ids = list(connection_ids)
        if not connection_ids:
            return
        send_tasks = [self.send(connection_id, message) for connection_id in connection_ids]
        await asyncio.gather(*send_tasks, return_exceptions=True)
        logger.debug(f"Sent {message.get('type', 'unknown')} to {len(send_tasks)} connections")

    def connection_count(self) -> int:
        return len(self.active_connections)

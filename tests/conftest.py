import json

import pytest

from backend import RoomRegistry
from connections import ConnectionManager
from session import WatchPartySession


# ---------------------------------------------------------------------------
# Fake WebSocket
# ---------------------------------------------------------------------------

class FakeWebSocket:
    """Records every frame the server sends, decoded back to dicts."""

    def __init__(self):
        self.sent: list[dict] = []
        self.fail = False

    async def send_text(self, data: str):
        if self.fail:
            raise RuntimeError("socket closed")
        self.sent.append(json.loads(data))

    def types(self) -> list[str]:
        return [m["type"] for m in self.sent]

    def all(self, msg_type: str) -> list[dict]:
        return [m for m in self.sent if m["type"] == msg_type]

    def last(self, msg_type: str) -> dict | None:
        for msg in reversed(self.sent):
            if msg["type"] == msg_type:
                return msg
        return None

    def clear(self):
        self.sent.clear()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def connections():
    return ConnectionManager()


@pytest.fixture
def session(registry, connections):
    return WatchPartySession(registry, connections)


@pytest.fixture
def connect(connections):
    """Register a fake socket under the given connection id."""
    def _connect(connection_id: str) -> FakeWebSocket:
        ws = FakeWebSocket()
        connections.connect(connection_id, ws)
        return ws
    return _connect


@pytest.fixture
def send(session):
    """Send a client frame as JSON, the way the websocket endpoint does."""
    async def _send(connection_id: str, msg_type: str, **fields):
        await session.handle_frame(connection_id, json.dumps({"type": msg_type, **fields}))
    return _send


@pytest.fixture
def party(connect, send, registry):
    """Build a room with host "host" and the given guests; returns (code, sockets)."""
    async def _party(*guests: str):
        sockets = {"host": connect("host")}
        await send("host", "create_room", username="Alice")
        code = sockets["host"].last("room_created")["roomCode"]
        for guest in guests:
            sockets[guest] = connect(guest)
            await send(guest, "join_room", roomCode=code, username=guest.title())
        for ws in sockets.values():
            ws.clear()
        return code, sockets
    return _party

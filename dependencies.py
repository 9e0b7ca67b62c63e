from fastapi.requests import HTTPConnection

from backend import RoomRegistry
from connections import ConnectionManager
from session import WatchPartySession


def get_registry(connection: HTTPConnection) -> RoomRegistry:
    return connection.app.state.registry


def get_connections(connection: HTTPConnection) -> ConnectionManager:
    return connection.app.state.connections


def get_session(connection: HTTPConnection) -> WatchPartySession:
    return connection.app.state.session

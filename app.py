from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from contextlib import asynccontextmanager
import anyio
import uuid
import os

from backend import RoomRegistry
from connections import ConnectionManager
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, STATIC_DIR, STATIC_PATH, WS_PATH
from dependencies import get_connections, get_registry, get_session
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse
from session import WatchPartySession

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # All room state lives in this process and is discarded on shutdown
    registry = RoomRegistry()
    connections = ConnectionManager()
    app.state.registry = registry
    app.state.connections = connections
    app.state.session = WatchPartySession(registry, connections)
    logger.info("Watch party state initialized")
    yield
    logger.info(f"Shutting down with {registry.room_count()} live rooms and {connections.connection_count()} connections")


app = FastAPI(title="PeerStream", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=CORS_ORIGINS != ["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


@app.get("/health", response_model=HealthResponse)
async def health(registry: RoomRegistry = Depends(get_registry), connections: ConnectionManager = Depends(get_connections)):
    return HealthResponse(status="ok", rooms=registry.room_count(), connections=connections.connection_count())


@app.websocket(WS_PATH)
async def websocket_endpoint(websocket: WebSocket, session: WatchPartySession = Depends(get_session)):
    """One persistent channel per participant.

    Frames are JSON objects with a "type" field. The first frame sent by the
    server tells the client its connection id, which is the id other members
    see in user lists and signaling messages.
    """
    connection_id = uuid.uuid4().hex
    await websocket.accept()
    session.connections.connect(connection_id, websocket)
    logger.info(f"User connected: {connection_id}")

    try:
        await session.connections.send(connection_id, {"type": "connected", "connectionId": connection_id})

        message_count = 0
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            try:
                await session.handle_frame(connection_id, data)
            except Exception as e:
                logger.error(f"Error handling message from connection {connection_id}: {e}", exc_info=True)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        session.connections.disconnect(connection_id)
        # Runs even when the endpoint task is being cancelled, so remaining members still hear about it
        with anyio.CancelScope(shield=True):
            await session.handle_disconnect(connection_id)
        logger.info(f"User disconnected: {connection_id}")


# Client application, when one is shipped alongside the server
if os.path.isdir(STATIC_DIR):
    app.mount(STATIC_PATH, StaticFiles(directory=STATIC_DIR, html=True), name="static")
    logger.info(f"Serving static client from {STATIC_DIR} at {STATIC_PATH}")

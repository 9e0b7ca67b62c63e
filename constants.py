import os
import string

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 4000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

WS_PATH = os.getenv("WS_PATH", "/ws")
STATIC_DIR = os.getenv("STATIC_DIR", "public")
STATIC_PATH = os.getenv("STATIC_PATH", "/peerstream")

# Subtitle files travel over the socket, so frames can be large
MAX_MESSAGE_BYTES = int(os.getenv("MAX_MESSAGE_BYTES", 10_000_000))
MAX_USERNAME_LENGTH = int(os.getenv("MAX_USERNAME_LENGTH", 32))

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_PATTERN = r"[A-Za-z0-9]+"

DEFAULT_HOST_NAME = "Host"
HOST_LEFT_MESSAGE = "Host has left the party"
INVALID_ROOM_CODE_MESSAGE = "Invalid Room Code"
ROOM_NOT_FOUND_MESSAGE = "Room not found"

import uvicorn
from constants import HOST, LOG_FILE, LOG_LEVEL, PORT, WS_PATH
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting PeerStream server on {HOST}:{PORT} (websocket path {WS_PATH})")
    # Rooms live in process memory, so run exactly one worker
    uvicorn.run(app, host=HOST, port=PORT, workers=1)

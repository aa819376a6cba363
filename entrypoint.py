import uvicorn
from constants import HOST, LOG_FILE, LOG_LEVEL, PING_INTERVAL_SECONDS, PORT
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from app import app
from logging_config import get_logger

logger = get_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting signaling relay on {HOST}:{PORT}")
    logger.info(f"WebSocket URL: ws://{HOST}:{PORT}/ws")
    # Keepalive pings are owned by the transport; a peer that stops answering
    # is closed by uvicorn, which runs the regular disconnect cleanup.
    uvicorn.run(
        app,
        host=HOST,
        port=PORT,
        ws_ping_interval=PING_INTERVAL_SECONDS,
        ws_ping_timeout=PING_INTERVAL_SECONDS,
        log_config=None,
    )

import os

SIGNALING_CREDENTIAL = os.getenv("SIGNALING_CREDENTIAL", "secret123")

# Hard upper bound for any room, also the default when a join asks for none
ROOM_MAX_USERS = 6

ROOM_EMPTY_GRACE_SECONDS = float(os.getenv("ROOM_EMPTY_GRACE_SECONDS", 60))
ROOM_STALE_SECONDS = float(os.getenv("ROOM_STALE_SECONDS", 3600))
REAPER_INTERVAL_SECONDS = float(os.getenv("REAPER_INTERVAL_SECONDS", 300))
PING_INTERVAL_SECONDS = float(os.getenv("PING_INTERVAL_SECONDS", 30))

# Frames queued for one connection before it is treated as stalled
OUTBOX_MAX_FRAMES = int(os.getenv("OUTBOX_MAX_FRAMES", 256))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

import os

from dotenv import load_dotenv

load_dotenv()

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Label stored as sender when a chat event carries no identity
ANONYMOUS_SENDER = os.getenv("ANONYMOUS_SENDER", "anonymous")
MAX_MESSAGE_LENGTH = int(os.getenv("MAX_MESSAGE_LENGTH", 4000))
MAX_ROOM_NAME_LENGTH = int(os.getenv("MAX_ROOM_NAME_LENGTH", 128))
# Frames queued per connection before further frames to it are dropped
OUTBOUND_QUEUE_SIZE = int(os.getenv("OUTBOUND_QUEUE_SIZE", 256))
# Unprocessed inbound frames per connection before the socket reader waits
INBOUND_QUEUE_SIZE = int(os.getenv("INBOUND_QUEUE_SIZE", 64))
HISTORY_LIMIT = int(os.getenv("HISTORY_LIMIT", 500))

# Set by the upstream auth layer once the caller's token has been verified
ACTOR_HEADER = os.getenv("ACTOR_HEADER", "X-Actor-Id")

LIKE_KIND = "like"

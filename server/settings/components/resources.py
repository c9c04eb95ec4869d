"""Resource operation settings."""

from server.settings.components import config

# Bytes handed to the download consumer per zip chunk
RESOURCES_ARCHIVE_CHUNK_SIZE = config(
    'RESOURCES_ARCHIVE_CHUNK_SIZE',
    cast=int,
    default=64 * 1024,
)

# Chunks buffered between zip producer and consumer
RESOURCES_ARCHIVE_QUEUE_SIZE = config(
    'RESOURCES_ARCHIVE_QUEUE_SIZE',
    cast=int,
    default=1,
)

# Seconds a blocked zip producer waits before re-checking for disconnect
RESOURCES_ARCHIVE_POLL_INTERVAL = config(
    'RESOURCES_ARCHIVE_POLL_INTERVAL',
    cast=float,
    default=0.5,
)

# Seconds a zip producer waits for an absent consumer before giving up
RESOURCES_ARCHIVE_IDLE_TIMEOUT = config(
    'RESOURCES_ARCHIVE_IDLE_TIMEOUT',
    cast=float,
    default=60.0,
)

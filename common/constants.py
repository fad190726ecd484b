"""Project-wide constants (chunk size, sync pacing, storage file names)."""

from datetime import datetime, timezone

TUS_VERSION: str = "1.0.0"
TUS_ROUTE: str = "tus"

CHUNK_SIZE_BYTES: int = 5 * 1024 * 1024  # 5 MiB per PATCH request
MAX_CONCURRENT_UPLOADS: int = 3

DEFAULT_TIMEOUT_SECONDS: int = 30
DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_BACKOFF_MULTIPLIER: int = 2
DEFAULT_RETRY_BASE_DELAY_SECONDS: float = 1.0

# Backpressure: discovery waits while this many uploads are still queued.
DEFAULT_BATCH_CEILING: int = 20
DEFAULT_CAPACITY_POLL_INTERVAL_SECONDS: float = 1.0

DEFAULT_BACKGROUND_INTERVAL_SECONDS: int = 15 * 60
DEFAULT_BACKGROUND_EXPIRES_IN_SECONDS: int = 5 * 60
TEMP_FILE_MAX_AGE_DAYS: int = 2

THUMBNAIL_MAX_SIZE: tuple[int, int] = (300, 300)

EPOCH: datetime = datetime(1970, 1, 1, tzinfo=timezone.utc)

SETTINGS_FILE_NAME: str = "settings.json"
PROGRESS_FILE_NAME: str = "progress.json"
SESSIONS_DIR_NAME: str = "uploads"
TEMP_DIR_NAME: str = "tmp"

DEFAULT_DATA_DIR: str = "~/.photosync/data"

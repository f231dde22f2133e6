"""Project-wide constants (chunk size, size ceiling, allowed types, timeouts)."""

import os
from pathlib import Path

CHUNK_SIZE_BYTES: int = 10 * 1024 * 1024  # 10 MiB, fixed for all uploads

MAX_FILE_SIZE_BYTES: int = 10 * 1024 * 1024 * 1024  # 10 GiB, inclusive

ALLOWED_VIDEO_TYPES = frozenset({
    "video/mp4",
    "video/webm",
    "video/mov",
    "video/avi",
    "video/mkv",
    "video/quicktime",
})

SESSION_TIMEOUT_SECONDS: float = 30.0
CHUNK_TIMEOUT_SECONDS: float = 60.0

DEFAULT_MAX_RETRIES: int = 3
DEFAULT_RETRY_BACKOFF_MULTIPLIER: int = 2
DEFAULT_RETRY_BASE_DELAY_SECONDS: float = 1.0
DEFAULT_RETRY_MAX_DELAY_SECONDS: float = 30.0

PROGRESS_THROTTLE_SECONDS: float = 0.5
SPEED_WINDOW_SECONDS: float = 10.0

# Resumable session "incomplete" status, as used by cloud storage resumable uploads
RESUME_INCOMPLETE_STATUS: int = 308

INIT_ENDPOINT: str = "/api/video/upload/init"
COMPLETE_ENDPOINT: str = "/api/video/upload/complete"
CANCEL_ENDPOINT_TEMPLATE: str = "/api/video/{upload_id}"

DEFAULT_CONFIG_DIR = Path(os.environ.get("REELUP_HOME", Path.home() / ".reelup"))
DEFAULT_CHECKPOINT_PATH = DEFAULT_CONFIG_DIR / "checkpoints.json"

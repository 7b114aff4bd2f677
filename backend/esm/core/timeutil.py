import time
from datetime import datetime

DATETIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def now_ms() -> int:
    """Current instant in milliseconds since the epoch."""
    return int(time.time() * 1000)


def format_local_datetime(timestamp_ms: int) -> str:
    """Render a millisecond timestamp as local `YYYY-MM-DD HH:MM:SS`."""
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime(DATETIME_FORMAT)

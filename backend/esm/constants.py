import os
from pathlib import Path

APP_DIR = Path(os.getenv("ESM_APP_DIR", Path(__file__).resolve().parent.parent))

DATA_DIR = APP_DIR / "data"
VIDEOS_DIR = APP_DIR / "videos"
TEMP_DIR = APP_DIR / "tmp"
CSV_EXPORT_PATH = APP_DIR / "esm_data.csv"

DATABASE_URL = os.getenv("ESM_DATABASE_URL", f"sqlite:///{DATA_DIR.as_posix()}/esm_app.db")

# Empty string disables the server-side sharing sink
_share_dir = os.getenv("ESM_SHARE_DIR", (APP_DIR / "shared").as_posix())
SHARE_DIR = Path(_share_dir) if _share_dir else None

CLIP_DURATION_SECONDS = 1.0
SHARE_DELAY_SECONDS = 1.0
COUNT_POLL_SECONDS = 2.0

VIDEO_MIME_TYPE = "video/mp4"
CSV_MIME_TYPE = "text/csv"
SHARE_DIALOG_TITLE = "Save or share video"

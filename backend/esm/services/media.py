import re
import shutil
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import aiofiles.os

from esm.core.logger import get_logger

logger = get_logger(__name__)

VIDEO_SUFFIX = ".mp4"
_VIDEO_NAME = re.compile(r"^(\d+)_sentiment(\d+)\.mp4$")

_move = aiofiles.os.wrap(shutil.move)


def video_filename(timestamp: int, sentiment: int) -> str:
    return f"{timestamp}_sentiment{sentiment}{VIDEO_SUFFIX}"


def parse_video_filename(name: str) -> Optional[Tuple[int, int]]:
    """Return ``(timestamp, sentiment)`` for a capture file name, else None."""
    match = _VIDEO_NAME.match(name)
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def newest_first(names: Iterable[str]) -> List[str]:
    """Order capture file names most recent first.

    Names are compared by their numeric timestamp prefix, so digit-width
    changes do not reorder them. Names that do not parse go last, in reverse
    lexicographic order.
    """
    parsed, unparsed = [], []
    for name in names:
        key = parse_video_filename(name)
        if key is None:
            unparsed.append(name)
        else:
            parsed.append((key[0], name))
    parsed.sort(reverse=True)
    return [name for _, name in parsed] + sorted(unparsed, reverse=True)


async def place_video(temp_path: Path, videos_dir: Path, timestamp: int, sentiment: int) -> Path:
    """Move a freshly captured clip to its permanent, deterministic location."""
    await aiofiles.os.makedirs(videos_dir, exist_ok=True)
    destination = videos_dir / video_filename(timestamp, sentiment)
    await _move(str(temp_path), str(destination))
    logger.info(f"Video saved: {destination}")
    return destination


async def list_videos(videos_dir: Path) -> List[Path]:
    if not await aiofiles.os.path.isdir(videos_dir):
        return []
    names = await aiofiles.os.listdir(videos_dir)
    return [videos_dir / name for name in sorted(names) if name.endswith(VIDEO_SUFFIX)]


async def remove_files(directory: Path) -> int:
    """Delete every file in ``directory``. A missing directory or file is not an error."""
    if not await aiofiles.os.path.isdir(directory):
        return 0

    removed = 0
    for name in await aiofiles.os.listdir(directory):
        path = directory / name
        if not await aiofiles.os.path.isfile(path):
            continue
        try:
            await aiofiles.os.remove(path)
            removed += 1
        except FileNotFoundError:
            pass
    logger.info(f"Deleted {removed} files from {directory}")
    return removed

import asyncio
import csv
import io
from pathlib import Path
from typing import Awaitable, Callable, Iterable, List

import aiofiles

from esm.constants import CSV_MIME_TYPE, SHARE_DIALOG_TITLE, VIDEO_MIME_TYPE
from esm.core.errors import NothingToExport
from esm.core.logger import get_logger
from esm.core.timeutil import format_local_datetime
from esm.schemas.record import PurgeSummary, Record
from esm.services.media import list_videos, newest_first, remove_files
from esm.services.sharing import ShareQueue, ShareSink, share_file
from esm.services.store import RecordStore

logger = get_logger(__name__)

CSV_HEADERS = ["id", "sentiment", "videoUri", "latitude", "longitude", "timestamp", "datetime"]


def render_csv(records: Iterable[Record]) -> str:
    """Serialize records with a derived local ``datetime`` column."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for rec in records:
        writer.writerow(
            [
                rec.id,
                rec.sentiment,
                rec.video_uri,
                rec.latitude,
                rec.longitude,
                rec.timestamp,
                format_local_datetime(rec.timestamp),
            ]
        )
    return buffer.getvalue()


class ExportService:
    def __init__(
        self,
        store: RecordStore,
        sink: ShareSink,
        videos_dir: Path,
        export_path: Path,
        share_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.sink = sink
        self.videos_dir = videos_dir
        self.export_path = export_path
        self.share_delay = share_delay
        self.sleep = sleep

    async def export_csv(self) -> Path:
        """Write every record to the CSV export file and share it.

        Raises:
            NothingToExport: the store holds no records; no file is written.
            SharingUnavailable: the file was written but could not be handed off.
        """
        records = self.store.list_all()
        if not records:
            raise NothingToExport()

        async with aiofiles.open(self.export_path, "w", encoding="utf-8", newline="") as f:
            await f.write(render_csv(records))
        logger.info(f"Exported {len(records)} records to {self.export_path}")

        await share_file(self.sink, self.export_path, mime_type=CSV_MIME_TYPE)
        return self.export_path

    async def list_videos(self) -> List[Path]:
        return await list_videos(self.videos_dir)

    async def export_latest_video(self) -> Path:
        videos = await self.list_videos()
        if not videos:
            raise NothingToExport("No video files found.")

        latest = self.videos_dir / newest_first(v.name for v in videos)[0]
        await share_file(
            self.sink, latest, mime_type=VIDEO_MIME_TYPE, dialog_title=SHARE_DIALOG_TITLE
        )
        return latest

    async def export_all_videos(self) -> List[Path]:
        videos = await self.list_videos()
        if not videos:
            raise NothingToExport("No video files found.")

        queue = ShareQueue(
            self.sink,
            delay=self.share_delay,
            sleep=self.sleep,
            mime_type=VIDEO_MIME_TYPE,
            dialog_title=SHARE_DIALOG_TITLE,
        )
        for video in videos:
            queue.enqueue(video)
        shared = await queue.drain()
        logger.info(f"Shared {len(shared)} videos.")
        return shared

    async def purge(self) -> PurgeSummary:
        """Delete every record and every file in the video directory. No undo."""
        records_deleted = self.store.delete_all()
        files_deleted = await remove_files(self.videos_dir)
        return PurgeSummary(records_deleted=records_deleted, files_deleted=files_deleted)

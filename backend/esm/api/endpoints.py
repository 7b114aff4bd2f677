from datetime import datetime
from pathlib import Path
from fastapi import APIRouter, WebSocket, WebSocketDisconnect, Depends, HTTPException
from fastapi.responses import FileResponse
from pydantic import ValidationError
from esm.constants import (
    CLIP_DURATION_SECONDS,
    COUNT_POLL_SECONDS,
    CSV_EXPORT_PATH,
    CSV_MIME_TYPE,
    SHARE_DELAY_SECONDS,
    SHARE_DIR,
    TEMP_DIR,
    VIDEO_MIME_TYPE,
    VIDEOS_DIR,
)
from esm.core.errors import CaptureFailed, ConfirmationRequired, ESMError
from esm.core.logger import get_logger
from esm.db.base import get_store
from esm.schemas.record import CsvExport, PurgeSummary, Record, RecordCount, VideoExport
from esm.schemas.reminder import ReminderSchedule
from esm.schemas.websocket import CaptureCommand
from esm.services.capture import CapturePipeline
from esm.services.devices import ClientLocator, WebSocketCamera
from esm.services.export import ExportService
from esm.services.reminders import SchedulerNotifier, next_reminder, register_daily_reminders
from esm.services.sharing import OutboxShareSink
from esm.services.store import RecordStore
from starlette.requests import HTTPConnection
import json
from typing import List, Literal

router = APIRouter()
logger = get_logger(__name__)


def get_export_service(store: RecordStore = Depends(get_store)) -> ExportService:
    return ExportService(
        store,
        OutboxShareSink(SHARE_DIR),
        videos_dir=VIDEOS_DIR,
        export_path=CSV_EXPORT_PATH,
        share_delay=SHARE_DELAY_SECONDS,
    )


def get_notifier(connection: HTTPConnection) -> SchedulerNotifier:
    return connection.app.state.notifier


def apply_location(locator: ClientLocator, cmd: CaptureCommand):
    if cmd.action == "location_denied" or cmd.latitude is None or cmd.longitude is None:
        locator.deny()
    else:
        locator.update(cmd.latitude, cmd.longitude)


@router.websocket("/ws/capture")
async def capture_websocket(
    websocket: WebSocket,
    session_id: str | None = None,
    store: RecordStore = Depends(get_store),
):
    """Drive the capture pipeline for one client.

    Args:
        websocket (WebSocket): The WebSocket connection.
        session_id (str | None, optional): The session ID. Defaults to None.
        store (RecordStore, optional): The record store. Defaults to Depends(get_store).
    """
    await websocket.accept()

    if not session_id:
        logger.warning("No session_id provided in WebSocket connection")
        await websocket.close(code=4000)
        return

    logger.info(f"WebSocket connected: {session_id}")

    locator = ClientLocator()

    async def during_clip(data: dict):
        try:
            cmd = CaptureCommand(**data)
        except (TypeError, ValidationError) as e:
            logger.error(f"Error processing command: {e}")
            return
        if cmd.action in ("location", "location_denied"):
            apply_location(locator, cmd)
        elif cmd.action == "capture":
            await websocket.send_json({"type": "busy"})
        else:
            logger.debug(f"Ignoring {cmd.action!r} during recording")

    camera = WebSocketCamera(websocket, TEMP_DIR, on_command=during_clip)
    pipeline = CapturePipeline(
        store, camera, locator, VIDEOS_DIR, clip_duration=CLIP_DURATION_SECONDS
    )

    notifier = websocket.app.state.notifier

    async def push_reminder(payload: dict):
        await websocket.send_json({"type": "reminder", **payload})

    notifier.subscribe(push_reminder)

    try:
        while True:
            message = await websocket.receive()

            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))

            if message.get("bytes"):
                # Clip data is only accepted while a capture is in flight
                logger.debug("Ignoring video data outside of a capture")
                continue

            if not message.get("text"):
                continue

            try:
                cmd = CaptureCommand(**json.loads(message["text"]))
            except (json.JSONDecodeError, TypeError, ValidationError) as e:
                logger.error(f"Error processing command: {e}")
                continue

            try:
                if cmd.action == "camera_ready":
                    camera.mark_ready()

                elif cmd.action == "select_sentiment":
                    pipeline.select_sentiment(cmd.score)
                    await websocket.send_json(
                        {"type": "sentiment_selected", "score": pipeline.sentiment}
                    )

                elif cmd.action in ("location", "location_denied"):
                    apply_location(locator, cmd)

                elif cmd.action == "capture":
                    record = await pipeline.trigger()
                    if record is None:
                        await websocket.send_json({"type": "busy"})
                    else:
                        await websocket.send_json(
                            {"type": "record_saved", **record.model_dump(by_alias=True)}
                        )

                else:
                    logger.debug(f"Unknown action: {cmd.action}")

            except CaptureFailed as e:
                if isinstance(e.__cause__, WebSocketDisconnect):
                    raise e.__cause__
                await websocket.send_json({"type": "error", **e.to_dict()})
            except ESMError as e:
                await websocket.send_json({"type": "error", **e.to_dict()})

    except WebSocketDisconnect:
        logger.info(f"Client disconnected: {session_id}")

    except Exception as e:
        logger.error(f"WebSocket Error: {e}")
        try:
            await websocket.close()
        except RuntimeError:
            pass

    finally:
        notifier.unsubscribe(push_reminder)


@router.get("/records", response_model=List[Record])
def get_records(store: RecordStore = Depends(get_store)) -> List[Record]:
    """Get every record in storage order."""
    return store.list_all()


@router.get("/records/count", response_model=RecordCount)
def count_records(store: RecordStore = Depends(get_store)) -> RecordCount:
    """Number of stored records, refreshed by clients every `poll_seconds`."""
    return RecordCount(count=store.count(), poll_seconds=COUNT_POLL_SECONDS)


@router.delete("/records", response_model=PurgeSummary)
async def purge_records(
    confirm: bool = False, exporter: ExportService = Depends(get_export_service)
) -> PurgeSummary:
    """Delete every record and every video file.

    Args:
        confirm (bool, optional): Must be true; the purge cannot be undone.
        exporter (ExportService, optional): Defaults to Depends(get_export_service).
    Returns:
        PurgeSummary: How many records and files were removed.
    """
    if not confirm:
        raise ConfirmationRequired()
    return await exporter.purge()


@router.post("/export/csv", response_model=CsvExport)
async def export_csv(exporter: ExportService = Depends(get_export_service)) -> CsvExport:
    path = await exporter.export_csv()
    return CsvExport(path=str(path))


@router.post("/export/videos", response_model=VideoExport)
async def export_videos(
    mode: Literal["latest", "all"] = "latest",
    exporter: ExportService = Depends(get_export_service),
) -> VideoExport:
    """Share the most recent video, or every video one after another."""
    if mode == "latest":
        shared = [await exporter.export_latest_video()]
    else:
        shared = await exporter.export_all_videos()
    return VideoExport(shared=[p.name for p in shared])


@router.get("/files/{filename}")
def download_file(filename: str) -> FileResponse:
    """Download the CSV export or a video.

    Args:
        filename (str): The file name.
    Returns:
        FileResponse: The file response.
    """
    if Path(filename).name != filename or filename in (".", ".."):
        raise HTTPException(status_code=404, detail="File not found")

    if filename == CSV_EXPORT_PATH.name:
        file_path, media_type = CSV_EXPORT_PATH, CSV_MIME_TYPE
    else:
        file_path, media_type = VIDEOS_DIR / filename, VIDEO_MIME_TYPE

    if not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(file_path, media_type=media_type, filename=filename)


def _schedule_summary(notifier: SchedulerNotifier, reminders) -> ReminderSchedule:
    now = datetime.now(notifier.scheduler.timezone)
    return ReminderSchedule(
        times=[r.label for r in reminders], next_due=next_reminder(notifier, now)
    )


@router.get("/reminders", response_model=ReminderSchedule)
def get_reminders(notifier: SchedulerNotifier = Depends(get_notifier)) -> ReminderSchedule:
    reminders = notifier.scheduled()
    if not reminders:
        raise HTTPException(status_code=404, detail="No reminders scheduled")
    return _schedule_summary(notifier, reminders)


@router.post("/reminders", response_model=ReminderSchedule)
def reset_reminders(notifier: SchedulerNotifier = Depends(get_notifier)) -> ReminderSchedule:
    """Clear every scheduled reminder and register the daily ones again."""
    return _schedule_summary(notifier, register_daily_reminders(notifier))

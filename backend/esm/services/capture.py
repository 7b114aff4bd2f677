"""Capture pipeline: one user trigger becomes exactly one record, or none.

Stages run strictly in order (capture, locate, place, persist). Each stage
produces a ``StageResult``; ``STAGE_POLICY`` decides whether a failed stage
aborts the pipeline or continues with a default value.
"""
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Protocol, Tuple

from esm.core.errors import (
    CaptureFailed,
    DeviceNotReady,
    ESMError,
    InvalidInput,
    LocationUnavailable,
    MissingInput,
    StorageFailed,
    WriteFailed,
)
from esm.core.logger import get_logger
from esm.core.timeutil import now_ms
from esm.schemas.record import Coordinate, Record
from esm.services.media import place_video
from esm.services.store import RecordStore

logger = get_logger(__name__)


class Camera(Protocol):
    is_ready: bool

    async def record(self, max_duration: float) -> Path: ...


class Locator(Protocol):
    async def current_position(self, high_accuracy: bool = True) -> Coordinate: ...


class PipelineState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    LOCATING = "locating"
    PLACING = "placing"
    PERSISTING = "persisting"


class Policy(str, Enum):
    ABORT = "abort"
    CONTINUE = "continue"


# stage -> (error raised on failure, policy)
STAGE_POLICY = {
    PipelineState.CAPTURING: (CaptureFailed, Policy.ABORT),
    PipelineState.LOCATING: (LocationUnavailable, Policy.CONTINUE),
    PipelineState.PLACING: (StorageFailed, Policy.ABORT),
    PipelineState.PERSISTING: (WriteFailed, Policy.ABORT),
}


@dataclass
class StageResult:
    value: Any = None
    error: Optional[ESMError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CapturePipeline:
    def __init__(
        self,
        store: RecordStore,
        camera: Camera,
        locator: Locator,
        videos_dir: Path,
        clip_duration: float = 1.0,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self.camera = camera
        self.locator = locator
        self.videos_dir = videos_dir
        self.clip_duration = clip_duration
        self.clock = clock
        self.state = PipelineState.IDLE
        self.sentiment: Optional[int] = None

    @property
    def is_busy(self) -> bool:
        return self.state is not PipelineState.IDLE

    def select_sentiment(self, score: int):
        try:
            value = int(score)
        except (TypeError, ValueError):
            value = None
        if value is None or not 1 <= value <= 5:
            raise InvalidInput(f"Mood score must be between 1 and 5, got {score!r}")
        self.sentiment = value

    def clear_sentiment(self):
        self.sentiment = None

    async def trigger(self) -> Optional[Record]:
        """Run the capture pipeline once.

        Returns the new record, or None when a capture is already in progress.
        Raises the stage's error when a fatal stage fails.
        """
        if self.sentiment is None:
            raise MissingInput()
        if self.is_busy:
            logger.debug("Capture already in progress, ignoring trigger.")
            return None
        if not self.camera.is_ready:
            raise DeviceNotReady()

        sentiment = self.sentiment
        try:
            clip = await self._run_stage(PipelineState.CAPTURING, self._capture)
            latitude, longitude = await self._run_stage(
                PipelineState.LOCATING, self._locate, default=(None, None)
            )
            video_path = await self._run_stage(
                PipelineState.PLACING, lambda: self._place(clip, sentiment)
            )
            record = await self._run_stage(
                PipelineState.PERSISTING,
                lambda: self._persist(sentiment, video_path, latitude, longitude),
            )
        finally:
            self.state = PipelineState.IDLE

        self.clear_sentiment()
        return record

    async def _run_stage(self, stage: PipelineState, action: Callable[[], Awaitable[Any]], default=None):
        self.state = stage
        result = await self._attempt(stage, action)
        if result.ok:
            return result.value

        _, policy = STAGE_POLICY[stage]
        if policy is Policy.CONTINUE:
            logger.warning(f"{stage.value} failed, continuing without it: {result.error.detail}")
            return default

        logger.error(f"{stage.value} failed, aborting capture: {result.error.detail}")
        raise result.error

    async def _attempt(self, stage: PipelineState, action) -> StageResult:
        error_cls, _ = STAGE_POLICY[stage]
        try:
            return StageResult(value=await action())
        except ESMError as e:
            # Store errors already carry their own kind
            return StageResult(error=e)
        except Exception as e:
            error = error_cls(f"{error_cls.message} ({e})")
            error.__cause__ = e
            return StageResult(error=error)

    async def _capture(self) -> Path:
        clip = await self.camera.record(max_duration=self.clip_duration)
        if not clip:
            raise RuntimeError("camera returned no video")
        logger.info(f"Recorded clip: {clip}")
        return Path(clip)

    async def _locate(self) -> Tuple[float, float]:
        position = await self.locator.current_position(high_accuracy=True)
        logger.info(f"Location obtained: {position.latitude}, {position.longitude}")
        return position.latitude, position.longitude

    async def _place(self, clip: Path, sentiment: int) -> Path:
        return await place_video(clip, self.videos_dir, self.clock(), sentiment)

    async def _persist(self, sentiment, video_path, latitude, longitude) -> Record:
        return self.store.insert(sentiment, str(video_path), latitude, longitude)

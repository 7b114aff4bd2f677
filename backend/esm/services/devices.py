"""Server-side adapters for the capture device and location collaborators.

The phone streams its clip over the capture WebSocket; its last location fix
is pushed over the same socket ahead of a capture.
"""
import json
import uuid
from pathlib import Path
from typing import Awaitable, Callable, Optional

import aiofiles
import aiofiles.os
from fastapi import WebSocket, WebSocketDisconnect

from esm.core.errors import LocationUnavailable
from esm.core.logger import get_logger
from esm.schemas.record import Coordinate

logger = get_logger(__name__)


async def _discard(path: Path):
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass


class WebSocketCamera:
    def __init__(
        self,
        websocket: WebSocket,
        temp_dir: Path,
        on_command: Optional[Callable[[dict], Awaitable[None]]] = None,
    ):
        self.websocket = websocket
        self.temp_dir = temp_dir
        self.on_command = on_command
        self.is_ready = False

    def mark_ready(self):
        self.is_ready = True
        logger.info("Camera ready.")

    async def record(self, max_duration: float) -> Path:
        """Ask the client for a clip and spool the streamed chunks to a temp file.

        Text commands other than ``clip_end``/``clip_abort`` that arrive while
        the clip is streaming are handed to ``on_command``.
        """
        await self.websocket.send_json({"type": "record_request", "max_duration": max_duration})

        await aiofiles.os.makedirs(self.temp_dir, exist_ok=True)
        clip_path = self.temp_dir / f"clip_{uuid.uuid4().hex}.mp4"
        size = 0

        try:
            async with aiofiles.open(clip_path, "wb") as clip:
                while True:
                    message = await self.websocket.receive()
                    if message["type"] == "websocket.disconnect":
                        raise WebSocketDisconnect(message.get("code", 1000))

                    if message.get("bytes"):
                        await clip.write(message["bytes"])
                        size += len(message["bytes"])
                    elif message.get("text"):
                        try:
                            data = json.loads(message["text"])
                            action = data.get("action")
                        except (json.JSONDecodeError, AttributeError):
                            logger.warning("Ignoring malformed message during recording")
                            continue
                        if action == "clip_end":
                            break
                        if action == "clip_abort":
                            size = 0
                            break
                        if self.on_command is not None:
                            await self.on_command(data)
                        else:
                            logger.debug(f"Ignoring {action!r} during recording")
        except BaseException:
            await _discard(clip_path)
            raise

        if size == 0:
            await _discard(clip_path)
            raise RuntimeError("no video data received")
        return clip_path


class ClientLocator:
    """Serves the last fix reported by the client."""

    def __init__(self):
        self.position: Optional[Coordinate] = None
        self.denied = False

    def update(self, latitude: float, longitude: float):
        self.position = Coordinate(latitude=latitude, longitude=longitude)
        self.denied = False

    def deny(self):
        self.position = None
        self.denied = True

    async def current_position(self, high_accuracy: bool = True) -> Coordinate:
        if self.denied:
            raise LocationUnavailable("Location permission denied.")
        if self.position is None:
            raise LocationUnavailable()
        return self.position

import asyncio
import shutil
from collections import deque
from pathlib import Path
from typing import Awaitable, Callable, Deque, List, Optional, Protocol

import aiofiles.os

from esm.core.errors import SharingUnavailable
from esm.core.logger import get_logger

logger = get_logger(__name__)

_copy = aiofiles.os.wrap(shutil.copy2)


class ShareSink(Protocol):
    def is_available(self) -> bool: ...

    async def share(
        self, path: Path, mime_type: Optional[str] = None, dialog_title: Optional[str] = None
    ) -> None: ...


class OutboxShareSink:
    """Hands files off by copying them into an outbox directory.

    A sink without an outbox is unavailable.
    """

    def __init__(self, outbox_dir: Optional[Path]):
        self.outbox_dir = outbox_dir

    def is_available(self) -> bool:
        return self.outbox_dir is not None

    async def share(
        self, path: Path, mime_type: Optional[str] = None, dialog_title: Optional[str] = None
    ) -> None:
        if not self.is_available():
            raise SharingUnavailable()
        await aiofiles.os.makedirs(self.outbox_dir, exist_ok=True)
        await _copy(str(path), str(self.outbox_dir / path.name))
        logger.info(f"Shared {path.name} ({mime_type or 'unknown type'}) to {self.outbox_dir}")


async def share_file(
    sink: ShareSink, path: Path, mime_type: Optional[str] = None, dialog_title: Optional[str] = None
):
    if not sink.is_available():
        logger.warning(f"Sharing unavailable, could not share {path.name}")
        raise SharingUnavailable()
    await sink.share(path, mime_type=mime_type, dialog_title=dialog_title)


class ShareQueue:
    """Shares queued files one at a time, pausing ``delay`` seconds between handoffs."""

    def __init__(
        self,
        sink: ShareSink,
        delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        mime_type: Optional[str] = None,
        dialog_title: Optional[str] = None,
    ):
        self.sink = sink
        self.delay = delay
        self.sleep = sleep
        self.mime_type = mime_type
        self.dialog_title = dialog_title
        self._pending: Deque[Path] = deque()

    def enqueue(self, path: Path):
        self._pending.append(path)

    def __len__(self) -> int:
        return len(self._pending)

    async def drain(self) -> List[Path]:
        """Share every queued file in order.

        If the sink goes away midway, the raised ``SharingUnavailable`` carries
        the files already handed off in ``shared``; the rest stay queued.
        """
        shared = []
        while self._pending:
            if shared and self.delay > 0:
                await self.sleep(self.delay)
            path = self._pending[0]
            try:
                await share_file(self.sink, path, self.mime_type, self.dialog_title)
            except SharingUnavailable as e:
                e.shared = list(shared)
                if shared:
                    logger.warning(
                        f"Sharing stopped after {len(shared)} file(s): "
                        f"{', '.join(p.name for p in shared)}; {len(self._pending)} left"
                    )
                raise
            self._pending.popleft()
            shared.append(path)
        return shared

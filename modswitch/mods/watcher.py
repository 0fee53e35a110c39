# modswitch/mods/watcher.py
from __future__ import annotations
import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from .scanner import listFolderNames

logger = logging.getLogger(__name__)

__all__ = ["FolderWatcher"]

DEFAULT_POLL_MS = 1000
DEFAULT_DEBOUNCE_MS = 500



class FolderWatcher:
    """
    Polls the names of root's child directories and calls `onChange` once the
    listing has been quiet for `debounceMs` after a change (create, delete or
    rename of a package folder). With `runOnStart` the handler also runs
    once before polling begins. Errors raised by `onChange` are logged and the
    watcher keeps running.
    """

    def __init__(
        self,
        root: Path,
        onChange: Callable[[], Awaitable[object]],
        *,
        pollMs: int = DEFAULT_POLL_MS,
        debounceMs: int = DEFAULT_DEBOUNCE_MS,
        runOnStart: bool = False,
    ) -> None:
        self.root = root
        self.runOnStart = runOnStart
        self._onChange = onChange
        self._poll = max(1, int(pollMs)) / 1000.0
        self._debounce = max(0, int(debounceMs)) / 1000.0
        self._stopEvent = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.changeCount = 0

    async def _listing(self) -> frozenset[str]:
        try:
            return frozenset(await asyncio.to_thread(listFolderNames, self.root))
        except OSError as err:
            logger.debug("Watcher cannot list '%s': %s", self.root, err)
            return frozenset()

    async def _sleep(self, seconds: float) -> bool:
        """Sleeps unless stopped first; returns True when stop was requested."""
        try:
            await asyncio.wait_for(self._stopEvent.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _notify(self) -> None:
        try:
            await self._onChange()
        except Exception:
            logger.exception("Folder change handler failed for '%s'", self.root)

    async def run(self) -> None:
        loop = asyncio.get_running_loop()
        if self.runOnStart:
            await self._notify()
        last = await self._listing()
        changedAt: float | None = None
        logger.debug("Watching '%s' (%d folders)", self.root, len(last))
        
        while True:
            interval = self._poll if changedAt is None else min(self._poll, max(self._debounce, 0.01))
            if await self._sleep(interval):
                return
            current = await self._listing()
            if current != last:
                last = current
                changedAt = loop.time()
                continue
            if changedAt is not None and loop.time() - changedAt >= self._debounce:
                changedAt = None
                self.changeCount += 1
                await self._notify()
                # The handler may rename or delete folders itself
                last = await self._listing()

    def start(self) -> asyncio.Task[None]:
        if self._task is None or self._task.done():
            self._stopEvent.clear()
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    async def stop(self) -> None:
        self._stopEvent.set()
        if self._task is not None:
            await self._task
            self._task = None

# modswitch/mods/preview.py
from __future__ import annotations
import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

from .models import ResolutionResult
from .naming import normalizeIds

logger = logging.getLogger(__name__)

__all__ = ["LivePreviewScheduler"]

DEFAULT_DEBOUNCE_MS = 200

Resolver = Callable[[frozenset[str]], Awaitable[ResolutionResult]]



class LivePreviewScheduler:
    """
    Debounced, single-flight dependency preview for rapid toggle edits.
    
    - request() replaces the pending request and restarts the quiet-period timer.
    - A pending request that has not started resolving is cancelled by a newer one.
    - A resolution that has started always finishes; the next one waits for it.
    
    Previews never write to disk, so nothing is ever cancelled mid-resolution.
    """

    def __init__(
        self,
        resolve: Resolver,
        *,
        debounceMs: int = DEFAULT_DEBOUNCE_MS,
        onResult: Callable[[ResolutionResult], None] | None = None,
    ) -> None:
        self._resolve = resolve
        self._delay = max(0, int(debounceMs)) / 1000.0
        self._onResult = onResult
        self._lock = asyncio.Lock()
        self._pendingTask: asyncio.Task[None] | None = None
        self._runningTask: asyncio.Task[None] | None = None
        self.latest: ResolutionResult | None = None
        self.lastError: BaseException | None = None
        self.runCount = 0

    def request(self, requestedIds: Iterable[object]) -> None:
        """Schedules a preview of `requestedIds`. Must be called from the event loop."""
        pending = self._pendingTask
        if pending is not None and not pending.done() and pending is not self._runningTask:
            pending.cancel()
        requested = frozenset(normalizeIds(requestedIds))
        self._pendingTask = asyncio.get_running_loop().create_task(self._run(requested))

    async def _run(self, requested: frozenset[str]) -> None:
        await asyncio.sleep(self._delay)
        async with self._lock:
            # From here on a newer request() no longer cancels this task
            self._runningTask = asyncio.current_task()
            try:
                result = await self._resolve(requested)
            except Exception as err:
                self.lastError = err
                logger.exception("Live preview failed")
                return
            finally:
                self._runningTask = None
            self.runCount += 1
            self.latest = result
            self.lastError = None
        if self._onResult is not None:
            self._onResult(result)

    async def wait(self) -> ResolutionResult | None:
        """Waits until no request is pending or running, then returns the latest result."""
        while True:
            task = self._pendingTask
            if task is None or task.done():
                if task is self._pendingTask:
                    return self.latest
                continue
            await asyncio.wait({task})

    def cancel(self) -> None:
        """Drops a pending, not-yet-started request."""
        pending = self._pendingTask
        if pending is not None and not pending.done() and pending is not self._runningTask:
            pending.cancel()

# modswitch/core/logging/filters.py
from __future__ import annotations
import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field

__all__ = ["RecurringSuppressFilter"]

MAX_KEY_LEN = 512
MAX_TRACKED_KEYS = 5000

_SUMMARY_FLAG = "_noRecurringSuppress"

_Key = tuple[str, int, str]



@dataclass(slots=True)
class _Window:
    stamps: deque[float] = field(default_factory=deque)
    suppressed: int = 0



def _messageKey(record: logging.LogRecord) -> str:
    try:
        text = record.getMessage()
    except Exception:
        text = str(record.msg)
    text = " ".join(text.split())
    return text if len(text) <= MAX_KEY_LEN else text[:MAX_KEY_LEN] + "..."



class RecurringSuppressFilter(logging.Filter):
    """
    Lets through at most `maxPerWindow` identical records (same logger, level and
    whitespace-normalized message) per sliding `windowSeconds`. The rest are
    counted, and a single "Suppressed N repeated logs" record is logged on the
    same logger once the key is allowed through again.

    Watch mode retrying a folder held open by the game is what usually floods.
    """
    def __init__(
            self,
            *,
            windowSeconds: int = 60,
            maxPerWindow: int = 5,
            summaryLevel: int = logging.INFO,
            clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__()
        self.windowSeconds = max(1, int(windowSeconds))
        self.maxPerWindow = max(1, int(maxPerWindow))
        self.summaryLevel = int(summaryLevel)
        self._clock = clock
        self._windows: dict[_Key, _Window] = {}
        self._lock = threading.Lock()

    def _forgetIdle(self) -> None:
        if len(self._windows) <= MAX_TRACKED_KEYS:
            return
        for key in [key for key, window in self._windows.items() if not window.stamps and not window.suppressed]:
            del self._windows[key]

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, _SUMMARY_FLAG, False):
            return True

        key: _Key = (record.name, record.levelno, _messageKey(record))
        now = self._clock()

        with self._lock:
            self._forgetIdle()
            window = self._windows.setdefault(key, _Window())
            cutoff = now - self.windowSeconds
            while window.stamps and window.stamps[0] < cutoff:
                window.stamps.popleft()
            window.stamps.append(now)
            if len(window.stamps) > self.maxPerWindow:
                window.suppressed += 1
                return False
            dropped, window.suppressed = window.suppressed, 0

        # Logged outside the lock; the summary record passes through this filter again.
        if dropped:
            logging.getLogger(key[0]).log(
                self.summaryLevel,
                "Suppressed %d repeated logs: %s",
                dropped,
                key[2],
                extra={_SUMMARY_FLAG: True},
            )
        return True

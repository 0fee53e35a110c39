# modswitch/core/cancel.py
from __future__ import annotations
import asyncio

from .errors import OperationCancelledError

__all__ = ["CancelSignal", "raiseIfCancelled"]



# Any object with is_set() works; asyncio.Event and threading.Event both qualify.
CancelSignal = asyncio.Event



def raiseIfCancelled(cancelEvent: CancelSignal | None, where: str = "") -> None:
    """
    Checkpoint used between directory/identifier iterations.
    A single rename in progress is never interrupted; callers only check here.
    """
    if cancelEvent is not None and cancelEvent.is_set():
        raise OperationCancelledError(f"Operation cancelled{f' during {where}' if where else ''}")

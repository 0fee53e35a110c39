# modswitch/core/tracing.py
from __future__ import annotations
import contextvars
import itertools
import threading
import time
from collections import deque
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from modswitch.core.ids import uuidv7
from modswitch.core.time import utcNowIso

__all__ = ["TraceSpan", "TraceHub", "Tracer", "getTracer", "getTraceHub"]

JsonDict = dict[str, Any]

# Context keys lifted to the top level of every record so trace dumps can be filtered by run.
PROMOTED_KEYS = ("applyId", "root")



_currentSpanVar: contextvars.ContextVar["TraceSpan | None"] = contextvars.ContextVar(
    "modswitch_current_span",
    default=None,
)



@dataclass(eq=False)
class TraceSpan:
    traceId: str
    spanId: str
    parentSpanId: str | None
    spanName: str
    context: JsonDict = field(default_factory=dict)
    startedAt: float = field(default_factory=time.perf_counter)
    ended: bool = False
    _token: contextvars.Token | None = field(default=None, repr=False)

    @property
    def elapsedMs(self) -> float:
        return (time.perf_counter() - self.startedAt) * 1000.0



class TraceHub:
    """Bounded in-memory buffer of trace records; the oldest record goes first."""
    def __init__(self, capacity: int = 5000) -> None:
        self._buffer: deque[JsonDict] = deque(maxlen=max(1, capacity))
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._buffer.maxlen or 0

    def emit(self, record: JsonDict) -> None:
        with self._lock:
            self._buffer.append(record)

    def records(self) -> list[JsonDict]:
        with self._lock:
            return list(self._buffer)

    def clear(self) -> None:
        with self._lock:
            self._buffer.clear()



class Tracer:
    """
    Records spans and events for apply runs, scans and cleanups.

    The current span is tracked per task through a contextvar, so nested
    `with tracer.span(...)` blocks inside one apply share a traceId and the
    run's context (applyId, root). Recording never raises into the caller.
    """
    def __init__(self, hub: TraceHub | None = None) -> None:
        self.hub = hub or TraceHub()
        self._seq = itertools.count(1)
        self._seqLock = threading.Lock()

    def _record(self, recordType: str, span: TraceSpan | None, level: str, tags: list[str] | None, attrs: JsonDict | None) -> JsonDict:
        ctx = dict(span.context) if span is not None else {}
        with self._seqLock:
            seq = next(self._seq)
        record: JsonDict = {
            "recordType": recordType,
            "time": utcNowIso(),
            "seq": seq,
            "traceId": span.traceId if span is not None else "",
            "spanId": span.spanId if span is not None else "",
            "level": level,
            "tags": list(tags or []),
            "attrs": {**ctx, **(attrs or {})},
        }
        record.update({key: ctx[key] for key in PROMOTED_KEYS if key in ctx})
        return record

    def _emit(self, record: JsonDict) -> None:
        try:
            self.hub.emit(record)
        except Exception:
            pass

    # ----- Spans -----

    def startSpan(
        self,
        spanName: str,
        attrs: JsonDict | None = None,
        level: str = "info",
        tags: list[str] | None = None,
        contextOverrides: JsonDict | None = None,
    ) -> TraceSpan:
        """Opens a span as the current one for this task. Children inherit traceId and context."""
        parent = _currentSpanVar.get()
        span = TraceSpan(
            traceId=parent.traceId if parent is not None else uuidv7(prefix="trace_"),
            spanId=uuidv7(prefix="span_"),
            parentSpanId=parent.spanId if parent is not None else None,
            spanName=spanName,
            context={**(parent.context if parent is not None else {}), **(contextOverrides or {})},
        )
        span._token = _currentSpanVar.set(span)

        record = self._record("spanStart", span, level, tags, attrs)
        record.update(spanName=spanName, parentSpanId=span.parentSpanId, status=None)
        self._emit(record)
        return span

    def endSpan(
        self,
        span: TraceSpan,
        status: str = "ok",
        *,
        level: str = "info",
        tags: list[str] | None = None,
        errorType: str | None = None,
        errorMessage: str | None = None,
        attrs: JsonDict | None = None,
    ) -> None:
        if span.ended:
            return
        span.ended = True
        if span._token is not None:
            try:
                _currentSpanVar.reset(span._token)
            except ValueError:
                # Ended from another task than the one that started it.
                _currentSpanVar.set(None)
            span._token = None

        record = self._record("spanEnd", span, level, tags, {"durationMs": span.elapsedMs, **(attrs or {})})
        record.update(spanName=span.spanName, status=status, errorType=errorType, errorMessage=errorMessage)
        self._emit(record)

    @contextmanager
    def span(self, spanName: str, attrs: JsonDict | None = None, **kwargs: Any) -> Iterator[TraceSpan]:
        """`with tracer.span("mods.apply"):` ends with status "error" when the body raises."""
        span = self.startSpan(spanName, attrs, **kwargs)
        try:
            yield span
        except BaseException as err:
            self.endSpan(span, "error", level="error", errorType=type(err).__name__, errorMessage=str(err))
            raise
        self.endSpan(span, "ok")

    # ----- Events -----

    def traceEvent(
        self,
        eventName: str,
        attrs: JsonDict | None = None,
        *,
        level: str = "debug",
        tags: list[str] | None = None,
        span: TraceSpan | None = None,
    ) -> None:
        record = self._record("event", span or _currentSpanVar.get(), level, tags, attrs)
        record["eventName"] = eventName
        self._emit(record)



_globalHub = TraceHub()
_globalTracer = Tracer(_globalHub)



def getTraceHub() -> TraceHub:
    return _globalHub

def getTracer() -> Tracer:
    return _globalTracer

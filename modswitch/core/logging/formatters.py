# modswitch/core/logging/formatters.py
from __future__ import annotations

import datetime as dt
import logging

from modswitch.core.jsonutils import safeJsonDumps
from .context import getLogContext

__all__ = ["JsonFormatter", "DevFormatter"]

# Log context keys shown inline on the console, in this order.
CONSOLE_CONTEXT_KEYS = ("applyId", "phase")



class JsonFormatter(logging.Formatter):
    """One-line JSON records for the rotating log file."""
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": dt.datetime.fromtimestamp(record.created, dt.timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "ctx": getLogContext() or {},
            "thread": record.threadName,
        }
        if record.exc_info and record.exc_info[0] is not None:
            excType, excValue, _tb = record.exc_info
            payload["exc"] = {
                "type": excType.__name__,
                "message": str(excValue),
                "stack": self.formatException(record.exc_info),
            }
        return safeJsonDumps(payload)



class DevFormatter(logging.Formatter):
    """Console lines: `LEVEL: [logger] message [applyId/phase]`."""
    def format(self, record: logging.LogRecord) -> str:
        ctx = getLogContext() or {}
        tagged = [str(ctx[key]) for key in CONSOLE_CONTEXT_KEYS if ctx.get(key)]
        suffix = f" [{'/'.join(tagged)}]" if tagged else ""
        msg = record.getMessage()
        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        if record.stack_info:
            msg += "\n" + str(record.stack_info)
        return f"{record.levelname}: [{record.name}] {msg}{suffix}"

# modswitch/core/logging/setup.py
from __future__ import annotations
import logging
import logging.handlers
from pathlib import Path

from modswitch.app.globals import config, configBool
from .formatters import DevFormatter, JsonFormatter
from .filters import RecurringSuppressFilter

__all__ = [
    "LOG_FILE_NAME",
    "configureLogging",
    "getLogger",
]

LOG_FILE_NAME = "modswitch.log"

# Keep chatty libraries out of the root handlers
NO_PROPAGATE = ["asyncio", "concurrent.futures"]



def configureLogging(logDir: Path | None = None, *, verbose: bool = False) -> None:
    """
    Initiate the global logging configuration.

    Dev mode (debug.devModeEnabled) or --verbose:
      - Console pretty logs (DEBUG)
      - JSON file log (DEBUG)
    
    Otherwise:
      - Console WARNING (the CLI prints its own summaries)
      - JSON file log INFO with rotation
    
    The file handler is attached only when `logDir` is given and
    debug.logFileEnabled is true. Recurring suppression is optional.
    """
    devMode = configBool("debug.devModeEnabled", False) or verbose
    rootLevel = logging.DEBUG if devMode else logging.INFO
    consoleLevel = logging.DEBUG if devMode else logging.WARNING

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(rootLevel)
    
    for name in NO_PROPAGATE:
        logging.getLogger(name).propagate = False

    handlers: list[logging.Handler] = []

    consoleHandler = logging.StreamHandler()
    consoleHandler.setLevel(consoleLevel)
    consoleHandler.setFormatter(DevFormatter())
    handlers.append(consoleHandler)

    if logDir is not None and configBool("debug.logFileEnabled", True):
        logDir.mkdir(parents=True, exist_ok=True)
        fileHandler = logging.handlers.RotatingFileHandler(
            logDir / LOG_FILE_NAME,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8"
        )
        fileHandler.setLevel(rootLevel)
        fileHandler.setFormatter(JsonFormatter())
        handlers.append(fileHandler)

    # Optional recurring suppression (disabled by default)
    if configBool("debug.suppressRecurringMessages.enabled", False):
        # Resolve summaryLevel string like "INFO" → logging.INFO, fallback safe
        levelName = str(config("debug.suppressRecurringMessages.summaryLevel", "INFO")).upper()
        summaryLevel = getattr(logging, levelName, logging.INFO)

        suppressFilter = RecurringSuppressFilter(
            windowSeconds=int(config("debug.suppressRecurringMessages.windowSeconds", 60)),
            maxPerWindow=int(config("debug.suppressRecurringMessages.maxPerWindow", 5)),
            summaryLevel=summaryLevel,
        )
        for handler in handlers:
            handler.addFilter(suppressFilter)

    for handler in handlers:
        root.addHandler(handler)



def getLogger(name: str, side: str = "") -> logging.Logger:
    return logging.getLogger(f"{side}.{name}" if side else name)

# modswitch/core/files.py
from __future__ import annotations
import logging
import os
import shutil
from pathlib import Path
from typing import Any

import json5

from modswitch.core.time import backupStamp

logger = logging.getLogger(__name__)

__all__ = ["backupFile", "writeTextAtomic", "readJsonLenient", "iterDirectories", "modifiedAt"]



def backupFile(path: Path) -> Path | None:
    """
    Copies `path` to `<path>.bak_<yyyyMMdd_HHmmss>` next to it.
    Returns the backup path, or None when `path` does not exist.
    Two backups within the same second overwrite each other.
    """
    if not path.is_file():
        return None
    target = path.with_name(f"{path.name}.bak_{backupStamp()}")
    shutil.copy2(path, target)
    logger.debug("Backed up '%s' to '%s'", path, target.name)
    return target



def writeTextAtomic(path: Path, text: str) -> None:
    """Writes `text` to a sibling temp file, then moves it over `path`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmpPath = path.with_name(path.name + ".tmp")
    with open(tmpPath, "w", encoding="utf-8", newline="\n") as fl:
        fl.write(text)
        if not text.endswith("\n"):
            fl.write("\n")
    os.replace(tmpPath, path)



def readJsonLenient(path: Path) -> Any | None:
    """
    Parses a JSON (or JSON5) file. Returns None when the file is missing,
    unreadable or malformed; the reason is logged at debug level.
    """
    try:
        text = path.read_text(encoding="utf-8-sig")
    except OSError as err:
        logger.debug("Cannot read '%s': %s", path, err)
        return None
    try:
        return json5.loads(text)
    except Exception as err:
        logger.debug("Cannot parse '%s': %s", path, err)
        return None



def iterDirectories(root: Path) -> list[Path]:
    """Immediate subdirectories of `root` (symlinked dirs included), unsorted."""
    out: list[Path] = []
    with os.scandir(root) as entries:
        for entry in entries:
            try:
                if entry.is_dir():
                    out.append(Path(entry.path))
            except OSError:
                continue
    return out



def modifiedAt(path: Path) -> float:
    """Last write time as a POSIX timestamp, 0.0 when it cannot be read."""
    try:
        return path.stat().st_mtime
    except OSError:
        return 0.0

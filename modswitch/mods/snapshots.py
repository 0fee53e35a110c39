# modswitch/mods/snapshots.py
from __future__ import annotations
import logging
import os
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modswitch.core.files import writeTextAtomic
from modswitch.core.time import snapshotStamp, utcNow
from .naming import parseFolderName
from .scanner import listFolderNames

logger = logging.getLogger(__name__)

__all__ = ["Snapshot", "SnapshotStore", "enabledIdsFromSnapshot"]

MAX_SAME_STAMP_SUFFIX = 99



class Snapshot(BaseModel):
    """Directory names under a root at one moment. Written once, never modified."""
    model_config = ConfigDict(extra="ignore")

    createdAtUtc: datetime
    rootPath: str
    folders: list[str] = Field(default_factory=list)



def enabledIdsFromSnapshot(snapshot: Snapshot) -> set[str]:
    """Identifiers whose recorded folder was enabled, decoded the same way the scanner does."""
    enabledIds: set[str] = set()
    for folderName in snapshot.folders:
        parsed = parseFolderName(folderName)
        if parsed is not None and parsed[1]:
            enabledIds.add(parsed[0])
    return enabledIds



class SnapshotStore:
    """
    One JSON file per snapshot in `directory`, named `<yyyyMMdd_HHmmssfff>.json`
    (UTC) so that name order is capture order. Retention is not handled here.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _targetPath(self, stamp: str) -> Path:
        path = self.directory / f"{stamp}.json"
        suffix = 1
        while path.exists():
            if suffix > MAX_SAME_STAMP_SUFFIX:
                raise FileExistsError(f"Too many snapshots for stamp {stamp}")
            path = self.directory / f"{stamp}_{suffix:02d}.json"
            suffix += 1
        return path

    def createSnapshot(self, root: Path) -> Path:
        """Captures the folder names under root and returns the snapshot file path."""
        self.directory.mkdir(parents=True, exist_ok=True)
        moment = utcNow()
        snapshot = Snapshot(createdAtUtc=moment, rootPath=str(root), folders=listFolderNames(root))
        path = self._targetPath(snapshotStamp(moment))
        writeTextAtomic(path, snapshot.model_dump_json(indent=2))
        logger.info("Snapshot of %d folder(s) written to '%s'", len(snapshot.folders), path.name)
        return path

    def listSnapshotFiles(self) -> list[Path]:
        """Snapshot files, newest first."""
        if not self.directory.is_dir():
            return []
        files = [path for path in self.directory.glob("*.json") if path.is_file()]
        return sorted(files, key=lambda path: path.name.casefold(), reverse=True)

    def load(self, path: Path) -> Snapshot | None:
        try:
            return Snapshot.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as err:
            logger.warning("Ignoring unreadable snapshot '%s': %s", path.name, err)
            return None

    def loadMostRecent(self, root: Path | None = None) -> Snapshot | None:
        """
        Newest readable snapshot; malformed files are skipped in favor of older ones.
        With `root`, only snapshots taken of that directory qualify.
        """
        wanted = os.path.normcase(os.path.abspath(root)) if root is not None else None
        for path in self.listSnapshotFiles():
            snapshot = self.load(path)
            if snapshot is None:
                continue
            if wanted is not None and os.path.normcase(os.path.abspath(snapshot.rootPath)) != wanted:
                continue
            return snapshot
        return None

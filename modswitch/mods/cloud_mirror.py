# modswitch/mods/cloud_mirror.py
from __future__ import annotations
import logging
import os
from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modswitch.app.paths import defaultSteamRoots
from modswitch.core.cancel import CancelSignal, raiseIfCancelled
from modswitch.core.files import backupFile, iterDirectories, modifiedAt, writeTextAtomic
from modswitch.core.jsonutils import safeJsonDumps
from .models import LegResult
from .naming import isNumericId, normalizeIds

logger = logging.getLogger(__name__)

__all__ = ["CLOUD_MIRROR_APP_ID", "CloudMirrorPayload", "CloudMirrorSyncAdapter"]

CLOUD_MIRROR_APP_ID = "3018410"
CLOUD_MIRROR_FILE_NAME = "Load on Start"



class CloudMirrorPayload(BaseModel):
    """`{"WorkshopItems": {id: bool}, "LocalItems": {id: bool}}`"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    workshopItems: dict[str, bool] = Field(default_factory=dict, alias="WorkshopItems")
    localItems: dict[str, bool] = Field(default_factory=dict, alias="LocalItems")

    @field_validator("workshopItems")
    @classmethod
    def _numericKeysOnly(cls, value: dict[str, bool]) -> dict[str, bool]:
        rejected = [key for key in value if not isNumericId(key)]
        if rejected:
            logger.debug("Rejecting non-numeric workshop keys: %s", rejected)
        return {key: flag for key, flag in value.items() if isNumericId(key)}

    @field_validator("localItems")
    @classmethod
    def _dropBlankKeys(cls, value: dict[str, bool]) -> dict[str, bool]:
        return {key: flag for key, flag in value.items() if key.strip()}



class CloudMirrorSyncAdapter:
    """
    Mirrors the enabled set into every `Load on Start` file found under
    `<steam>/userdata/<profile>/<appId>/remote/`.
    
    Per-file failures are collected; the leg succeeds when at least one file
    was written.
    """

    def __init__(
        self,
        *,
        appId: str = CLOUD_MIRROR_APP_ID,
        fileName: str = CLOUD_MIRROR_FILE_NAME,
        steamRoots: Iterable[Path] | None = None,
        enabled: bool = True,
    ) -> None:
        self.appId = appId
        self.fileName = fileName
        self.steamRoots = list(steamRoots) if steamRoots is not None else None
        self.enabled = enabled

    @classmethod
    def fromConfig(cls) -> "CloudMirrorSyncAdapter":
        from modswitch.app.globals import config, configBool
        roots = [Path(str(value)).expanduser() for value in config("cloudMirror.steamRoots", []) or []]
        return cls(
            appId=str(config("cloudMirror.appId", CLOUD_MIRROR_APP_ID)),
            fileName=str(config("cloudMirror.fileName", CLOUD_MIRROR_FILE_NAME)),
            steamRoots=roots or None,
            enabled=configBool("cloudMirror.enabled", True),
        )

    # ----- Discovery -----

    def findCandidateFiles(self) -> list[Path]:
        """Candidate files, most recently written first. A file need not exist yet; its profile app dir must."""
        roots = self.steamRoots if self.steamRoots is not None else defaultSteamRoots()
        found: dict[str, Path] = {}
        for steamRoot in roots:
            userdata = steamRoot / "userdata"
            if not userdata.is_dir():
                continue
            for userDir in iterDirectories(userdata):
                appDir = userDir / self.appId
                if not appDir.is_dir():
                    continue
                candidate = appDir / "remote" / self.fileName
                found.setdefault(os.path.normcase(str(candidate)), candidate)
        return sorted(found.values(), key=lambda path: (-modifiedAt(path) if path.exists() else 0.0, str(path)))

    # ----- Sync -----

    def _readExisting(self, path: Path) -> CloudMirrorPayload:
        if not path.is_file():
            return CloudMirrorPayload()
        text = path.read_text(encoding="utf-8-sig")
        if not text.strip():
            return CloudMirrorPayload()
        return CloudMirrorPayload.model_validate_json(text)

    def _updateFile(self, path: Path, enabledIds: list[str]) -> None:
        existing = self._readExisting(path)
        payload = CloudMirrorPayload(
            workshopItems={packageId: True for packageId in enabledIds},
            localItems=dict(sorted(existing.localItems.items())),
        )
        backupFile(path)
        writeTextAtomic(path, safeJsonDumps(payload))

    def sync(self, enabledIds: Iterable[str], cancelEvent: CancelSignal | None = None) -> LegResult:
        if not self.enabled:
            return LegResult.succeeded("Cloud mirror sync disabled.")
        
        candidates = self.findCandidateFiles()
        if not candidates:
            return LegResult.failed(f"No cloud '{self.fileName}' file was found.")
        
        normalized = sorted(normalizeIds(enabledIds))
        filesUpdated = 0
        errors: list[str] = []
        for path in candidates:
            raiseIfCancelled(cancelEvent, "cloud mirror sync")
            try:
                self._updateFile(path, normalized)
                filesUpdated += 1
                logger.info("Updated cloud mirror file '%s' (%d items)", path, len(normalized))
            except (OSError, ValidationError) as err:
                logger.warning("Cloud mirror update failed for '%s': %s", path, err)
                errors.append(f"{path}: {err}")
        
        if filesUpdated == 0:
            detail = " | ".join(errors) if errors else f"No cloud '{self.fileName}' file could be updated."
            return LegResult.failed(detail)
        if not errors:
            return LegResult.succeeded(f"Updated {filesUpdated} cloud '{self.fileName}' file(s).", filesUpdated)
        return LegResult.succeeded(
            f"Updated {filesUpdated} cloud '{self.fileName}' file(s). Some files failed: {' | '.join(errors)}",
            filesUpdated,
        )

# modswitch/mods/scanner.py
from __future__ import annotations
import asyncio
import dataclasses
import logging
from pathlib import Path

from modswitch.app.globals import getTracer
from modswitch.core.cancel import CancelSignal, raiseIfCancelled
from modswitch.core.files import iterDirectories, modifiedAt
from .metadata import readDisplayName
from .models import Package
from .naming import parseFolderName
from .subpacks import SubPackSyncAdapter

logger = logging.getLogger(__name__)

__all__ = ["DirectoryScanner", "listFolderNames"]



def listFolderNames(root: Path) -> list[str]:
    """Names of all immediate subdirectories of root, sorted; [] when root is missing."""
    if not root.is_dir():
        return []
    return sorted(path.name for path in iterDirectories(root))



class DirectoryScanner:
    """
    Enumerates installed packages under a root directory.
    
    Only `<digits>` and `_OFF_<digits>` directories count; anything else is
    ignored. Scans are serialized by a lock: a second caller waits for the
    running scan and then performs its own.
    """

    def __init__(self, *, subPacks: SubPackSyncAdapter | None = None, readDisplayNames: bool = True) -> None:
        self.subPacks = subPacks
        self.readDisplayNames = readDisplayNames
        self._lock = asyncio.Lock()

    async def scan(self, root: Path, cancelEvent: CancelSignal | None = None) -> list[Package]:
        async with self._lock:
            tracer = getTracer()
            span = tracer.startSpan("mods.scan", {"root": str(root)}, level="debug", tags=["mods"])
            try:
                packages = await asyncio.to_thread(self._scanSync, root, cancelEvent)
                packages = await self._projectSubPackStates(root, packages, cancelEvent)
            except BaseException as err:
                tracer.endSpan(span, "error", level="error", errorType=type(err).__name__, errorMessage=str(err))
                raise
            tracer.endSpan(span, "ok", level="debug", attrs={"packageCount": len(packages)})
        
        packages.sort(key=lambda pkg: (pkg.label.casefold(), pkg.packageId, pkg.folderName))
        logger.debug("Scanned %d package folder(s) under '%s'", len(packages), root)
        return packages

    def _scanSync(self, root: Path, cancelEvent: CancelSignal | None) -> list[Package]:
        if not root.is_dir():
            logger.warning("Workshop root '%s' does not exist", root)
            return []
        
        packages: list[Package] = []
        for directory in iterDirectories(root):
            raiseIfCancelled(cancelEvent, "scan")
            parsed = parseFolderName(directory.name)
            if parsed is None:
                continue
            packageId, enabled = parsed
            displayName = None
            if self.readDisplayNames:
                try:
                    displayName = readDisplayName(directory)
                except Exception:
                    # One broken package must not fail the whole scan
                    logger.debug("Display name enrichment failed for '%s'", directory, exc_info=True)
            packages.append(Package(
                packageId=packageId,
                folderName=directory.name,
                path=directory,
                enabled=enabled,
                displayName=displayName,
                modifiedAt=modifiedAt(directory),
            ))
        return packages

    async def _projectSubPackStates(
        self,
        root: Path,
        packages: list[Package],
        cancelEvent: CancelSignal | None,
    ) -> list[Package]:
        if self.subPacks is None or not packages:
            return packages
        try:
            discovery = await self.subPacks.discover(root, cancelEvent)
            states = self.subPacks.enabledStates(root, discovery)
        except (OSError, ValueError) as err:
            logger.debug("Sub-package state projection skipped: %s", err)
            return packages
        if not states:
            return packages
        return [
            dataclasses.replace(pkg, subPacksLoaded=states[pkg.packageId]) if pkg.packageId in states else pkg
            for pkg in packages
        ]

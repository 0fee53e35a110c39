# modswitch/mods/rename_engine.py
from __future__ import annotations
import logging
import os
import shutil
import stat
import sys
from collections import defaultdict
from collections.abc import Iterable
from pathlib import Path

from modswitch.core.cancel import CancelSignal, raiseIfCancelled
from modswitch.core.retry import RetryResult, linearBackoff, retryWithBackoff
from .models import Package, RenameReport
from .naming import canonicalFolderName

logger = logging.getLogger(__name__)

__all__ = ["RenameEngine", "groupById"]

DEFAULT_MAX_ATTEMPTS = 4
DEFAULT_RENAME_BACKOFF_MS = 120
DEFAULT_DELETE_BACKOFF_MS = 150



def groupById(packages: Iterable[Package]) -> dict[str, list[Package]]:
    groups: dict[str, list[Package]] = defaultdict(list)
    for pkg in packages:
        groups[pkg.packageId].append(pkg)
    return dict(groups)



_CHMOD_RETRYABLE = (os.unlink, os.remove, os.rmdir)



def _makeWritableAndRetry(func, path, exc) -> None:
    # Read-only files (common in Windows workshop downloads) block rmtree
    if func not in _CHMOD_RETRYABLE or os.path.islink(path):
        if isinstance(exc, BaseException):
            raise exc
        raise exc[1]
    os.chmod(path, stat.S_IWRITE)
    func(path)



def _removeTree(path: Path) -> None:
    if os.path.islink(path):
        # Never descend into a linked folder that lives outside the workshop
        os.unlink(path)
        return
    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=_makeWritableAndRetry)
        else:
            shutil.rmtree(path, onerror=_makeWritableAndRetry)
    except FileNotFoundError:
        # Already gone counts as deleted
        pass



def _samePath(first: Path, second: Path) -> bool:
    try:
        return os.path.samefile(first, second)
    except OSError:
        return False



class RenameEngine:
    """
    Converges directory names under a root to a target enabled set.
    
    Every rename and delete goes through retryWithBackoff; exhausted retries are
    counted in the RenameReport, never raised. Cancellation is checked between
    identifiers only.
    """

    def __init__(
        self,
        *,
        maxAttempts: int = DEFAULT_MAX_ATTEMPTS,
        renameBackoffMs: int = DEFAULT_RENAME_BACKOFF_MS,
        deleteBackoffMs: int = DEFAULT_DELETE_BACKOFF_MS,
    ) -> None:
        self.maxAttempts = maxAttempts
        self.renameBackoffMs = renameBackoffMs
        self.deleteBackoffMs = deleteBackoffMs

    @classmethod
    def fromConfig(cls) -> "RenameEngine":
        from modswitch.app.globals import config
        return cls(
            maxAttempts=int(config("engine.retry.maxAttempts", DEFAULT_MAX_ATTEMPTS)),
            renameBackoffMs=int(config("engine.retry.renameBackoffMs", DEFAULT_RENAME_BACKOFF_MS)),
            deleteBackoffMs=int(config("engine.retry.deleteBackoffMs", DEFAULT_DELETE_BACKOFF_MS)),
        )

    # ------------------------------------------------------------------ #
    # Primitive operations
    # ------------------------------------------------------------------ #

    async def renameFolder(self, source: Path, target: Path) -> RetryResult:
        return await retryWithBackoff(
            lambda: os.rename(source, target),
            maxAttempts=self.maxAttempts,
            backoff=linearBackoff(self.renameBackoffMs),
            label=f"rename {source.name} -> {target.name}",
        )

    async def deleteFolder(self, path: Path) -> bool:
        """Deletes a directory tree with bounded retry. A missing directory counts as deleted."""
        if not os.path.lexists(path):
            return True
        result = await retryWithBackoff(
            lambda: _removeTree(path),
            maxAttempts=self.maxAttempts,
            backoff=linearBackoff(self.deleteBackoffMs),
            label=f"delete {path.name}",
        )
        return result.ok

    # ------------------------------------------------------------------ #
    # Group convergence
    # ------------------------------------------------------------------ #

    async def _convergeGroup(
        self,
        root: Path,
        packageId: str,
        ranked: list[Package],
        desiredEnabled: bool,
        report: RenameReport,
    ) -> None:
        """
        Leaves exactly one directory named canonically for `desiredEnabled`.
        `ranked` is the group in rename-source preference order. When the rename
        fails the siblings are left alone so no copy is lost.
        """
        targetName = canonicalFolderName(packageId, desiredEnabled)
        targetPath = root / targetName
        
        keeper = next((pkg for pkg in ranked if pkg.folderName == targetName), None)
        if keeper is None and os.path.lexists(targetPath) and not targetPath.is_dir():
            # A file (or dangling link) holds the canonical name; every member stays in place
            report.failed += 1
            report.messages.append(f"Cannot use {targetName} for {packageId}: a non-directory entry has that name")
            logger.warning("Skipped %s: '%s' exists and is not a directory", packageId, targetName)
            return
        if keeper is None and targetPath.is_dir():
            # Canonical directory exists but the caller's listing missed it, or the
            # filesystem folds case and a member is the same directory
            keeper = next((pkg for pkg in ranked if _samePath(pkg.path, targetPath)), None)
            if keeper is None:
                report.messages.append(f"Kept existing {targetName} for {packageId}")
        elif keeper is None:
            source = ranked[0]
            result = await self.renameFolder(source.path, targetPath)
            if not result.ok:
                report.failed += 1
                report.messages.append(f"Failed to rename {source.folderName} -> {targetName}: {result.error}")
                return
            report.renamed += 1
            report.messages.append(f"Renamed {source.folderName} -> {targetName}")
            logger.info("Renamed '%s' -> '%s'", source.folderName, targetName)
            keeper = source
        
        for pkg in ranked:
            if pkg is keeper:
                continue
            if await self.deleteFolder(pkg.path):
                report.removed += 1
                report.messages.append(f"Removed duplicate folder {pkg.folderName}")
                logger.info("Removed duplicate folder '%s'", pkg.folderName)
            else:
                report.failed += 1
                report.messages.append(f"Failed to remove duplicate folder {pkg.folderName}")

    # ------------------------------------------------------------------ #
    # Public operations
    # ------------------------------------------------------------------ #

    async def applyEnabledSet(
        self,
        root: Path,
        packages: Iterable[Package],
        targetEnabledIds: Iterable[str],
        cancelEvent: CancelSignal | None = None,
    ) -> RenameReport:
        """
        For every installed identifier: enabled iff it is in targetEnabledIds.
        Target ids that are not installed are ignored here.
        """
        report = RenameReport()
        if not root.is_dir():
            report.messages.append(f"Workshop root {root} does not exist")
            return report
        
        target = set(targetEnabledIds)
        for packageId, members in sorted(groupById(packages).items()):
            raiseIfCancelled(cancelEvent, "apply")
            desired = packageId in target
            if len(members) == 1 and members[0].folderName == canonicalFolderName(packageId, desired):
                continue
            ranked = sorted(
                members,
                key=lambda pkg: (pkg.enabled != desired, -pkg.modifiedAt, pkg.folderName),
            )
            await self._convergeGroup(root, packageId, ranked, desired, report)
        
        logger.debug(
            "Apply pass done: %d renamed, %d removed, %d failed", report.renamed, report.removed, report.failed
        )
        return report

    async def cleanupDuplicateFolders(
        self,
        root: Path,
        packages: Iterable[Package],
        cancelEvent: CancelSignal | None = None,
    ) -> RenameReport:
        """
        Collapses identifiers with more than one directory, independent of any
        target set. Keeper preference: enabled, already canonical, newest.
        """
        report = RenameReport()
        if not root.is_dir():
            return report
        
        for packageId, members in sorted(groupById(packages).items()):
            raiseIfCancelled(cancelEvent, "cleanup")
            if len(members) < 2:
                continue
            ranked = sorted(
                members,
                key=lambda pkg: (
                    not pkg.enabled,
                    pkg.folderName != canonicalFolderName(pkg.packageId, pkg.enabled),
                    -pkg.modifiedAt,
                    pkg.folderName,
                ),
            )
            await self._convergeGroup(root, packageId, ranked, ranked[0].enabled, report)
        return report

    async def removePackage(self, packages: Iterable[Package], packageId: str) -> RenameReport:
        """Deletes every directory of one identifier."""
        report = RenameReport()
        for pkg in groupById(packages).get(packageId, []):
            if await self.deleteFolder(pkg.path):
                report.removed += 1
                report.messages.append(f"Removed {pkg.folderName}")
                logger.info("Removed package folder '%s'", pkg.folderName)
            else:
                report.failed += 1
                report.messages.append(f"Failed to remove {pkg.folderName}")
        return report

# modswitch/mods/orchestrator.py
from __future__ import annotations
import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from modswitch.app.globals import getTracer
from modswitch.core.cancel import CancelSignal
from modswitch.core.ids import uuidv7
from modswitch.core.logging import logContext
from .cloud_mirror import CloudMirrorSyncAdapter
from .dependencies import DependencyResolver, resolveFromCatalog
from .models import LegResult, Package, RenameReport, ResolutionResult
from .naming import normalizeIds
from .preview import DEFAULT_DEBOUNCE_MS as PREVIEW_DEBOUNCE_MS, LivePreviewScheduler
from .rename_engine import RenameEngine
from .scanner import DirectoryScanner
from .snapshots import Snapshot, SnapshotStore, enabledIdsFromSnapshot
from .subpacks import SubPackDiscovery, SubPackSyncAdapter
from .watcher import DEFAULT_DEBOUNCE_MS as WATCH_DEBOUNCE_MS, DEFAULT_POLL_MS, FolderWatcher

if TYPE_CHECKING:
    from modswitch.app.paths import AppPaths

logger = logging.getLogger(__name__)

__all__ = ["ApplyState", "ApplyReport", "ApplyOrchestrator"]



class ApplyState(str, Enum):
    IDLE = "idle"
    SNAPSHOT_TAKEN = "snapshotTaken"
    DEPENDENCIES_RESOLVED = "dependenciesResolved"
    FOLDERS_RECONCILED = "foldersReconciled"
    SUBREGISTRY_SYNCED = "subRegistrySynced"
    CLOUD_MIRROR_SYNCED = "cloudMirrorSynced"
    REPORTED = "reported"



@dataclass(slots=True)
class ApplyReport:
    """Everything one apply did, plus what still diverges from the request."""
    applyId: str
    root: Path
    requestedIds: frozenset[str]
    resolution: ResolutionResult | None = None
    forcedIds: frozenset[str] = frozenset()
    snapshotPath: Path | None = None
    renames: RenameReport = field(default_factory=RenameReport)
    subPacks: LegResult | None = None
    cloudMirror: LegResult | None = None
    activeIds: frozenset[str] = frozenset()
    missingAfterApply: tuple[str, ...] = ()
    states: list[ApplyState] = field(default_factory=list)
    messages: list[str] = field(default_factory=list)

    @property
    def autoEnabledIds(self) -> tuple[str, ...]:
        return self.resolution.autoEnabledIds if self.resolution else ()

    @property
    def missingDependencyIds(self) -> tuple[str, ...]:
        return self.resolution.missingIds if self.resolution else ()

    @property
    def converged(self) -> bool:
        return self.renames.failed == 0 and not self.missingAfterApply

    def statusLine(self) -> str:
        return (
            f"Applied: {self.renames.renamed} renamed, {self.renames.removed} removed, "
            f"{self.renames.failed} failed, {len(self.autoEnabledIds)} auto-enabled dependencies, "
            f"{len(self.missingDependencyIds)} missing dependencies, "
            f"{len(self.missingAfterApply)} missing after apply"
        )



class ApplyOrchestrator:
    """
    Runs one reconciliation transaction per apply():
    
        idle → snapshotTaken → dependenciesResolved → foldersReconciled
             → subRegistrySynced → cloudMirrorSynced → reported → idle
    
    Only folder reconciliation touches package directories. The sub-package and
    cloud mirror legs are best-effort: their failures become messages and the
    machine advances. Applies are serialized by a lock; so are cleanup and
    removal, which rename or delete folders too.
    """

    def __init__(
        self,
        root: Path,
        *,
        scanner: DirectoryScanner | None = None,
        resolver: DependencyResolver | None = None,
        engine: RenameEngine | None = None,
        subPacks: SubPackSyncAdapter | None = None,
        cloudMirror: CloudMirrorSyncAdapter | None = None,
        snapshots: SnapshotStore | None = None,
        previewDebounceMs: int = PREVIEW_DEBOUNCE_MS,
        watchPollMs: int = DEFAULT_POLL_MS,
        watchDebounceMs: int = WATCH_DEBOUNCE_MS,
    ) -> None:
        self.root = Path(root)
        self.subPacks = subPacks if subPacks is not None else SubPackSyncAdapter()
        self.scanner = scanner if scanner is not None else DirectoryScanner(subPacks=self.subPacks)
        self.resolver = resolver if resolver is not None else DependencyResolver()
        self.engine = engine if engine is not None else RenameEngine()
        self.cloudMirror = cloudMirror
        self.snapshots = snapshots
        self.previewDebounceMs = previewDebounceMs
        self.watchPollMs = watchPollMs
        self.watchDebounceMs = watchDebounceMs
        self.state = ApplyState.IDLE
        self._applyLock = asyncio.Lock()
        self._previewScheduler: LivePreviewScheduler | None = None

    @classmethod
    def fromConfig(cls, root: Path, paths: AppPaths | None = None) -> "ApplyOrchestrator":
        from modswitch.app.globals import config, configBool
        subPacks = SubPackSyncAdapter.fromConfig()
        snapshots = None
        if paths is not None and configBool("snapshots.enabled", True):
            snapshots = SnapshotStore(paths.backupsDir)
        return cls(
            root,
            scanner=DirectoryScanner(subPacks=subPacks),
            engine=RenameEngine.fromConfig(),
            subPacks=subPacks,
            cloudMirror=CloudMirrorSyncAdapter.fromConfig(),
            snapshots=snapshots,
            previewDebounceMs=int(config("preview.debounceMs", PREVIEW_DEBOUNCE_MS)),
            watchPollMs=int(config("watcher.pollMs", DEFAULT_POLL_MS)),
            watchDebounceMs=int(config("watcher.debounceMs", WATCH_DEBOUNCE_MS)),
        )

    # ------------------------------------------------------------------ #
    # Read-only operations
    # ------------------------------------------------------------------ #

    async def scan(self, cancelEvent: CancelSignal | None = None) -> list[Package]:
        return await self.scanner.scan(self.root, cancelEvent)

    async def activeIds(self, cancelEvent: CancelSignal | None = None) -> frozenset[str]:
        """Identifiers that are installed, folder-enabled and not switched off through sub-packages."""
        return frozenset(pkg.packageId for pkg in await self.scan(cancelEvent) if pkg.active)

    async def preview(self, requestedIds: Iterable[object], cancelEvent: CancelSignal | None = None) -> ResolutionResult:
        """Dependency resolution only; nothing is written."""
        return await self.resolver.resolve(self.root, requestedIds, cancelEvent)

    @property
    def previewScheduler(self) -> LivePreviewScheduler:
        if self._previewScheduler is None:
            self._previewScheduler = LivePreviewScheduler(self.preview, debounceMs=self.previewDebounceMs)
        return self._previewScheduler

    # ------------------------------------------------------------------ #
    # Apply
    # ------------------------------------------------------------------ #

    def _enter(self, report: ApplyReport, state: ApplyState) -> None:
        self.state = state
        report.states.append(state)
        getTracer().traceEvent("mods.apply.state", {"state": state.value}, level="debug", tags=["mods"])
        logger.debug("Apply %s → %s", report.applyId, state.value)

    async def _resolveWithHosts(
        self,
        requested: frozenset[str],
        discovery: SubPackDiscovery,
        cancelEvent: CancelSignal | None,
    ) -> tuple[ResolutionResult, frozenset[str]]:
        """
        Resolves the closure, forcing the sub-package host on when any owner ends
        up enabled (directly or as a dependency). The catalog is read once.
        """
        catalog = await self.resolver.buildCatalog(self.root, cancelEvent)
        forced = frozenset(self.subPacks.requiredHostIds(discovery, requested))
        resolution = resolveFromCatalog(catalog, requested | forced, cancelEvent)
        extra = frozenset(self.subPacks.requiredHostIds(discovery, resolution.enabledIds)) - resolution.enabledIds
        if extra:
            forced |= extra
            resolution = resolveFromCatalog(catalog, requested | forced, cancelEvent)
        return resolution, forced - requested

    async def apply(
        self,
        requestedIds: Iterable[object],
        *,
        takeSnapshot: bool = True,
        cancelEvent: CancelSignal | None = None,
    ) -> ApplyReport:
        requested = frozenset(normalizeIds(requestedIds))
        async with self._applyLock:
            report = ApplyReport(applyId=uuidv7(prefix="apply_"), root=self.root, requestedIds=requested)
            with logContext(applyId=report.applyId, root=str(self.root)):
                tracer = getTracer()
                with tracer.span("mods.apply", {"requested": len(requested)}, tags=["mods"],
                                 contextOverrides={"applyId": report.applyId, "root": str(self.root)}):
                    try:
                        await self._applyLocked(report, takeSnapshot, cancelEvent)
                    finally:
                        self._enter(report, ApplyState.IDLE)
            logger.info("%s", report.statusLine())
            return report

    async def _applyLocked(self, report: ApplyReport, takeSnapshot: bool, cancelEvent: CancelSignal | None) -> None:
        self._enter(report, ApplyState.IDLE)
        
        # 1. Snapshot
        if takeSnapshot and self.snapshots is not None:
            try:
                report.snapshotPath = await asyncio.to_thread(self.snapshots.createSnapshot, self.root)
            except OSError as err:
                logger.warning("Snapshot failed: %s", err)
                report.messages.append(f"Snapshot failed: {err}")
        self._enter(report, ApplyState.SNAPSHOT_TAKEN)
        
        # 2. Dependency closure (+ sub-package host)
        discovery = await self.subPacks.discover(self.root, cancelEvent)
        resolution, forced = await self._resolveWithHosts(report.requestedIds, discovery, cancelEvent)
        report.resolution = resolution
        report.forcedIds = forced
        if forced:
            report.messages.append(f"Enabled sub-package host {', '.join(sorted(forced))}")
        for missingId in resolution.missingIds:
            report.messages.append(f"Missing dependency {missingId}")
        self._enter(report, ApplyState.DEPENDENCIES_RESOLVED)
        
        # 3. Folder names
        packages = await self.scanner.scan(self.root, cancelEvent)
        report.renames = await self.engine.applyEnabledSet(self.root, packages, resolution.enabledIds, cancelEvent)
        report.messages.extend(report.renames.messages)
        self._enter(report, ApplyState.FOLDERS_RECONCILED)
        
        # 4. Sub-package registry (best effort)
        try:
            report.subPacks = self.subPacks.sync(self.root, discovery, resolution.enabledIds)
        except Exception as err:
            logger.exception("Sub-package registry sync failed")
            report.subPacks = LegResult.failed(f"Sub-package registry sync failed: {err}")
        report.messages.append(report.subPacks.message)
        if not report.subPacks.success:
            getTracer().traceEvent("mods.apply.legFailed", {"leg": "subPacks", "message": report.subPacks.message},
                                   level="warning", tags=["mods"])
        self._enter(report, ApplyState.SUBREGISTRY_SYNCED)
        
        # 5. Ground truth, then cloud mirror (best effort)
        groundTruth = await self.scanner.scan(self.root, cancelEvent)
        report.activeIds = frozenset(pkg.packageId for pkg in groundTruth if pkg.active)
        if self.cloudMirror is None:
            report.cloudMirror = LegResult.succeeded("Cloud mirror sync not configured.")
        else:
            try:
                report.cloudMirror = self.cloudMirror.sync(report.activeIds, cancelEvent)
            except Exception as err:
                logger.exception("Cloud mirror sync failed")
                report.cloudMirror = LegResult.failed(f"Cloud mirror sync failed: {err}")
        report.messages.append(report.cloudMirror.message)
        if not report.cloudMirror.success:
            getTracer().traceEvent("mods.apply.legFailed", {"leg": "cloudMirror", "message": report.cloudMirror.message},
                                   level="warning", tags=["mods"])
        self._enter(report, ApplyState.CLOUD_MIRROR_SYNCED)
        
        # 6. Report divergence from the original request
        report.missingAfterApply = tuple(sorted(report.requestedIds - report.activeIds))
        for missingId in report.missingAfterApply:
            report.messages.append(f"Requested {missingId} is not installed and enabled")
        self._enter(report, ApplyState.REPORTED)

    async def enable(self, packageIds: Iterable[object], **kwargs) -> ApplyReport:
        current = await self.activeIds()
        return await self.apply(current | normalizeIds(packageIds), **kwargs)

    async def disable(self, packageIds: Iterable[object], **kwargs) -> ApplyReport:
        current = await self.activeIds()
        return await self.apply(current - normalizeIds(packageIds), **kwargs)

    # ------------------------------------------------------------------ #
    # Snapshots
    # ------------------------------------------------------------------ #

    def createSnapshot(self) -> Path:
        if self.snapshots is None:
            raise RuntimeError("Snapshots are not configured")
        return self.snapshots.createSnapshot(self.root)

    def latestSnapshot(self) -> Snapshot | None:
        return self.snapshots.loadMostRecent(self.root) if self.snapshots is not None else None

    async def restoreLatest(self, cancelEvent: CancelSignal | None = None) -> ApplyReport | None:
        """
        Re-requests the enabled set recorded in the newest snapshot of this root
        through the full apply pipeline. None when there is no snapshot.
        """
        snapshot = self.latestSnapshot()
        if snapshot is None:
            return None
        logger.info("Restoring snapshot from %s", snapshot.createdAtUtc.isoformat())
        return await self.apply(enabledIdsFromSnapshot(snapshot), cancelEvent=cancelEvent)

    # ------------------------------------------------------------------ #
    # Maintenance
    # ------------------------------------------------------------------ #

    async def cleanupDuplicates(self, cancelEvent: CancelSignal | None = None) -> RenameReport:
        async with self._applyLock:
            with getTracer().span("mods.cleanup", {"root": str(self.root)}, tags=["mods"]):
                packages = await self.scanner.scan(self.root, cancelEvent)
                report = await self.engine.cleanupDuplicateFolders(self.root, packages, cancelEvent)
        if report.changed or report.failed:
            logger.info(
                "Duplicate cleanup: %d renamed, %d removed, %d failed", report.renamed, report.removed, report.failed
            )
        return report

    async def removePackage(self, packageId: str) -> RenameReport:
        async with self._applyLock:
            packages = await self.scanner.scan(self.root)
            return await self.engine.removePackage(packages, packageId)

    def watcher(self) -> FolderWatcher:
        """A folder watcher that runs duplicate cleanup on start and after external changes."""
        return FolderWatcher(
            self.root,
            self.cleanupDuplicates,
            pollMs=self.watchPollMs,
            debounceMs=self.watchDebounceMs,
            runOnStart=True,
        )

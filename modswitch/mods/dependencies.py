# modswitch/mods/dependencies.py
from __future__ import annotations
import asyncio
import logging
from collections import deque
from collections.abc import Iterable
from pathlib import Path

from modswitch.core.cancel import CancelSignal, raiseIfCancelled
from modswitch.core.files import iterDirectories
from .metadata import readDependencyIds
from .models import DependencyCatalog, ResolutionResult
from .naming import normalizeIds, parseFolderName

logger = logging.getLogger(__name__)

__all__ = ["buildCatalog", "resolveFromCatalog", "DependencyResolver"]



def buildCatalog(root: Path, cancelEvent: CancelSignal | None = None) -> DependencyCatalog:
    """
    One pass over root: every conforming directory contributes its identifier to the
    known universe and, if it ships `item.json`, its declared dependencies.
    An identifier present twice (duplicate folders) gets the union of both lists.
    """
    if not root.is_dir():
        return DependencyCatalog(knownIds=frozenset())
    
    knownIds: set[str] = set()
    dependencies: dict[str, frozenset[str]] = {}
    for directory in iterDirectories(root):
        raiseIfCancelled(cancelEvent, "dependency catalog")
        parsed = parseFolderName(directory.name)
        if parsed is None:
            continue
        packageId, _enabled = parsed
        knownIds.add(packageId)
        declared = readDependencyIds(directory) - {packageId}
        if declared:
            dependencies[packageId] = dependencies.get(packageId, frozenset()) | declared
    return DependencyCatalog(knownIds=frozenset(knownIds), dependencies=dependencies)



def resolveFromCatalog(
    catalog: DependencyCatalog,
    requestedIds: Iterable[object],
    cancelEvent: CancelSignal | None = None,
) -> ResolutionResult:
    """
    Breadth-first closure of `requestedIds` over the catalog.
    
    - Dependencies inside the installed universe are added and marked auto-enabled.
    - Dependencies outside it are reported as missing and never enabled.
    - Each identifier is expanded at most once, so cycles terminate.
    
    A requested identifier that is not installed is still part of the enabled set
    (the caller asked for it); it is not reported as a missing dependency.
    """
    requested = frozenset(normalizeIds(requestedIds))
    enabled: set[str] = set(requested)
    autoEnabled: set[str] = set()
    missing: set[str] = set()
    
    queue: deque[str] = deque(sorted(requested))
    visited: set[str] = set()
    while queue:
        raiseIfCancelled(cancelEvent, "dependency resolution")
        currentId = queue.popleft()
        if currentId in visited:
            continue
        visited.add(currentId)
        
        for dependencyId in sorted(catalog.dependenciesOf(currentId)):
            if not catalog.isKnown(dependencyId):
                if dependencyId not in enabled:
                    missing.add(dependencyId)
                continue
            if dependencyId not in enabled:
                enabled.add(dependencyId)
                autoEnabled.add(dependencyId)
                queue.append(dependencyId)
    
    return ResolutionResult(
        requestedIds=requested,
        enabledIds=frozenset(enabled),
        autoEnabledIds=tuple(sorted(autoEnabled)),
        missingIds=tuple(sorted(missing)),
    )



class DependencyResolver:
    """Builds the catalog off the event loop, then resolves in memory."""

    async def buildCatalog(self, root: Path, cancelEvent: CancelSignal | None = None) -> DependencyCatalog:
        return await asyncio.to_thread(buildCatalog, root, cancelEvent)

    async def resolve(
        self,
        root: Path,
        requestedIds: Iterable[object],
        cancelEvent: CancelSignal | None = None,
    ) -> ResolutionResult:
        catalog = await self.buildCatalog(root, cancelEvent)
        result = resolveFromCatalog(catalog, requestedIds, cancelEvent)
        logger.debug(
            "Resolved %d requested id(s) → %d enabled (%d auto, %d missing)",
            len(result.requestedIds), len(result.enabledIds), len(result.autoEnabledIds), len(result.missingIds),
        )
        return result

# modswitch/mods/subpacks.py
from __future__ import annotations
import asyncio
import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, ValidationError

from modswitch.core.cancel import CancelSignal, raiseIfCancelled
from modswitch.core.files import backupFile, iterDirectories, readJsonLenient, writeTextAtomic
from .models import LegResult
from .naming import canonicalFolderName, parseFolderName

logger = logging.getLogger(__name__)

__all__ = [
    "SUBPACK_HOST_ID",
    "SubPackEntry",
    "SubPackRegistryDocument",
    "SubPackDiscovery",
    "SubPackSyncAdapter",
]

SUBPACK_HOST_ID = "3265798414"
SUBPACK_EXTENSION = ".cwb"
REGISTRY_FILE_NAME = "loaditems.json"



class SubPackEntry(BaseModel):
    # Unknown keys written by the host are carried through untouched
    model_config = ConfigDict(extra="allow")

    name: str = ""
    loadThisPack: bool = False



class SubPackRegistryDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    packs: list[SubPackEntry] = Field(default_factory=list)
    # Entries we cannot interpret; written back as they were
    _opaque: list[Any] = PrivateAttr(default_factory=list)

    def toJson(self) -> dict[str, Any]:
        payload = self.model_dump(mode="json")
        payload["packs"].extend(self._opaque)
        return payload



@dataclass(frozen=True, slots=True)
class SubPackDiscovery:
    """Sub-package file names grouped by the identifier of the package that ships them."""
    packsByOwner: dict[str, tuple[str, ...]] = field(default_factory=dict)

    @property
    def ownerIds(self) -> frozenset[str]:
        return frozenset(self.packsByOwner)

    @property
    def isEmpty(self) -> bool:
        return not self.packsByOwner



def _normalizePackName(value: object) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None



class SubPackSyncAdapter:
    """
    Keeps the host package's `loaditems.json` in line with the enabled set.
    
    Sub-packages are `*.cwb` files at the top level of any installed package.
    The host reads one registry of `{"name", "loadThisPack"}` entries from its
    own directory, whichever of `<hostId>` / `_OFF_<hostId>` exists.
    """

    def __init__(
        self,
        *,
        hostId: str = SUBPACK_HOST_ID,
        extension: str = SUBPACK_EXTENSION,
        registryFile: str = REGISTRY_FILE_NAME,
    ) -> None:
        self.hostId = hostId
        self.extension = extension.lower()
        self.registryFile = registryFile

    @classmethod
    def fromConfig(cls) -> "SubPackSyncAdapter":
        from modswitch.app.globals import config
        return cls(
            hostId=str(config("subPacks.hostId", SUBPACK_HOST_ID)),
            extension=str(config("subPacks.extension", SUBPACK_EXTENSION)),
            registryFile=str(config("subPacks.registryFile", REGISTRY_FILE_NAME)),
        )

    # ----- Discovery -----

    async def discover(self, root: Path, cancelEvent: CancelSignal | None = None) -> SubPackDiscovery:
        if not root.is_dir():
            return SubPackDiscovery()
        return await asyncio.to_thread(self._discoverSync, root, cancelEvent)

    def _discoverSync(self, root: Path, cancelEvent: CancelSignal | None) -> SubPackDiscovery:
        packsByOwner: dict[str, tuple[str, ...]] = {}
        for directory in iterDirectories(root):
            raiseIfCancelled(cancelEvent, "sub-package discovery")
            parsed = parseFolderName(directory.name)
            if parsed is None:
                continue
            ownerId, _enabled = parsed
            try:
                names = {
                    entry.name.casefold(): entry.name
                    for entry in directory.iterdir()
                    if entry.is_file() and entry.suffix.lower() == self.extension
                }
            except OSError as err:
                logger.debug("Skipping sub-package discovery in '%s': %s", directory, err)
                continue
            if not names:
                continue
            merged = {name.casefold(): name for name in packsByOwner.get(ownerId, ())}
            merged.update(names)
            packsByOwner[ownerId] = tuple(sorted(merged.values(), key=str.casefold))
        return SubPackDiscovery(packsByOwner)

    def registryPath(self, root: Path) -> Path | None:
        """Registry file inside the host directory (enabled name first), or None when the host is not installed."""
        for enabled in (True, False):
            hostDir = root / canonicalFolderName(self.hostId, enabled)
            if hostDir.is_dir():
                return hostDir / self.registryFile
        return None

    # ----- Registry I/O -----

    def readRegistry(self, path: Path) -> SubPackRegistryDocument:
        """
        Parses the registry leniently. Malformed files become an empty document;
        entries that do not validate are kept aside and written back unchanged.
        """
        raw = readJsonLenient(path) if path.is_file() else None
        if not isinstance(raw, Mapping):
            return SubPackRegistryDocument()
        packs = raw.get("packs")
        extras = {key: value for key, value in raw.items() if key != "packs"}
        entries: list[SubPackEntry] = []
        opaque: list[Any] = []
        if isinstance(packs, list):
            for item in packs:
                try:
                    entries.append(SubPackEntry.model_validate(item))
                except ValidationError as err:
                    logger.debug("Keeping unreadable registry entry %r as is: %s", item, err.errors()[:1])
                    opaque.append(item)
        document = SubPackRegistryDocument(packs=entries, **extras)
        document._opaque = opaque
        return document

    def _flagsByName(self, document: SubPackRegistryDocument) -> dict[str, SubPackEntry]:
        # Case-insensitive, last write wins
        out: dict[str, SubPackEntry] = {}
        for entry in document.packs:
            normalized = _normalizePackName(entry.name)
            if normalized is None:
                continue
            entry.name = normalized
            out[normalized.casefold()] = entry
        return out

    # ----- Queries -----

    def enabledStates(self, root: Path, discovery: SubPackDiscovery) -> dict[str, bool]:
        """
        Per owning identifier: True if any of its sub-packages is flagged to load.
        Owners none of whose sub-packages appear in the registry default to True.
        """
        if discovery.isEmpty:
            return {}
        path = self.registryPath(root)
        flags = self._flagsByName(self.readRegistry(path)) if path is not None else {}
        
        states: dict[str, bool] = {}
        for ownerId, packNames in discovery.packsByOwner.items():
            explicit = [flags[name.casefold()].loadThisPack for name in packNames if name.casefold() in flags]
            states[ownerId] = any(explicit) if explicit else True
        return states

    def requiredHostIds(self, discovery: SubPackDiscovery, requestedIds: Iterable[str]) -> set[str]:
        """
        The host folder must be enabled whenever any sub-package owner is requested;
        a disabled host would shadow the per-pack flags. This overrides an explicit
        request to disable the host.
        """
        requested = set(requestedIds)
        if requested & (discovery.ownerIds - {self.hostId}):
            return {self.hostId}
        return set()

    # ----- Sync -----

    def sync(self, root: Path, discovery: SubPackDiscovery, desiredEnabledIds: Iterable[str]) -> LegResult:
        """
        Sets every discovered sub-package's flag to whether its owner is desired.
        Unrelated registry entries are preserved. Writes only on change, after
        backing up the previous file.
        """
        if discovery.isEmpty:
            return LegResult.succeeded("No sub-packages discovered.")
        
        path = self.registryPath(root)
        if path is None:
            return LegResult.failed(f"Sub-package host folder {self.hostId} not found.")
        
        desired = set(desiredEnabledIds)
        document = self.readRegistry(path)
        entries = self._flagsByName(document)
        
        changed = 0
        for ownerId, packNames in discovery.packsByOwner.items():
            shouldLoad = ownerId in desired
            for packName in packNames:
                normalized = _normalizePackName(packName)
                if normalized is None:
                    continue
                entry = entries.get(normalized.casefold())
                if entry is None:
                    entries[normalized.casefold()] = SubPackEntry(name=normalized, loadThisPack=shouldLoad)
                    changed += 1
                elif entry.loadThisPack != shouldLoad:
                    entry.loadThisPack = shouldLoad
                    changed += 1
        
        if changed == 0 and path.is_file():
            return LegResult.succeeded(f"{self.registryFile} already matched the selection.")
        
        document.packs = sorted(entries.values(), key=lambda entry: entry.name.casefold())
        try:
            backupFile(path)
            writeTextAtomic(path, json.dumps(document.toJson(), indent=2, ensure_ascii=False))
        except OSError as err:
            logger.warning("Failed to write '%s': %s", path, err)
            return LegResult.failed(f"Failed to write {self.registryFile}: {err}")
        
        logger.info("Updated '%s' (%d pack toggle changes)", path, changed)
        return LegResult.succeeded(f"Updated {self.registryFile} ({changed} pack toggle changes).", changed)

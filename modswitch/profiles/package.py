# modswitch/profiles/package.py
from __future__ import annotations
import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from modswitch.core.errors import ProfilePackageError
from modswitch.core.time import utcNow
from modswitch.mods.naming import isNumericId
from .store import ModProfile

logger = logging.getLogger(__name__)

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "ConflictPolicy",
    "ProfilePackageDocument",
    "ProfilePackageImportResult",
    "exportProfiles",
    "importProfiles",
]

CURRENT_SCHEMA_VERSION = 1
DEFAULT_PACKAGE_NAME = "ModSwitch Profiles"



class ConflictPolicy(str, Enum):
    SKIP = "skip"
    OVERWRITE = "overwrite"
    RENAME = "rename"



class ProfilePackageProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str | None = ""
    notes: str | None = ""
    enabledWorkshopIds: list[Any] | None = Field(default_factory=list)



class ProfilePackageDocument(BaseModel):
    model_config = ConfigDict(extra="ignore")

    schemaVersion: int = 0
    packageName: str = ""
    createdAtUtc: datetime | None = None
    profiles: list[ProfilePackageProfile] = Field(default_factory=list)



@dataclass(slots=True)
class ProfilePackageImportResult:
    importedProfiles: list[ModProfile] = field(default_factory=list)
    renamedCount: int = 0
    overwrittenCount: int = 0
    skippedCount: int = 0
    invalidProfileCount: int = 0
    removedInvalidIdsCount: int = 0

    @property
    def importedCount(self) -> int:
        return len(self.importedProfiles)



def exportProfiles(packageName: str, profiles: Iterable[ModProfile]) -> str:
    """Serializes profiles into a schemaVersion 1 package (pretty JSON)."""
    document = ProfilePackageDocument(
        schemaVersion=CURRENT_SCHEMA_VERSION,
        packageName=packageName.strip() or DEFAULT_PACKAGE_NAME,
        createdAtUtc=utcNow(),
        profiles=[
            ProfilePackageProfile(
                name=profile.name,
                notes=profile.notes,
                enabledWorkshopIds=list(dict.fromkeys(mod for mod in profile.enabledMods if isNumericId(mod))),
            )
            for profile in profiles
        ],
    )
    return document.model_dump_json(indent=2)



def _uniqueImportedName(baseName: str, knownNames: set[str]) -> str:
    candidate = f"{baseName} (Imported)"
    suffix = 2
    while candidate.casefold() in knownNames:
        candidate = f"{baseName} (Imported {suffix})"
        suffix += 1
    return candidate



def importProfiles(
    text: str,
    existingProfiles: Iterable[ModProfile],
    policy: ConflictPolicy = ConflictPolicy.RENAME,
) -> ProfilePackageImportResult:
    """
    Parses a profile package and returns the profiles to store.
    
    Raises ProfilePackageError, before anything is produced, for invalid JSON,
    an unsupported schemaVersion or a package without profiles. Per-profile
    problems (blank names, non-numeric ids) are counted and skipped instead.
    """
    try:
        raw = json.loads(text)
    except ValueError as err:
        raise ProfilePackageError(f"Package file is empty or invalid JSON: {err}") from err
    if not isinstance(raw, dict):
        raise ProfilePackageError("Package file must contain a JSON object.")
    try:
        document = ProfilePackageDocument.model_validate(raw)
    except ValidationError as err:
        raise ProfilePackageError(f"Package file is malformed: {err.error_count()} error(s)") from err
    
    if document.schemaVersion != CURRENT_SCHEMA_VERSION:
        raise ProfilePackageError(
            f"Unsupported schemaVersion '{document.schemaVersion}'. Supported version is {CURRENT_SCHEMA_VERSION}."
        )
    if not document.profiles:
        raise ProfilePackageError("Package does not contain any profiles.")
    
    now = utcNow()
    result = ProfilePackageImportResult()
    existingNames = {profile.name.casefold(): profile.name for profile in existingProfiles}
    knownNames = set(existingNames)
    
    for entry in document.profiles:
        name = (entry.name or "").strip()
        if not name:
            result.invalidProfileCount += 1
            continue
        
        ids: list[str] = []
        for value in entry.enabledWorkshopIds or []:
            if isinstance(value, str):
                value = value.strip()
            if not isNumericId(value):
                result.removedInvalidIdsCount += 1
                continue
            if value not in ids:
                ids.append(value)
        
        finalName = name
        if name.casefold() in knownNames:
            if policy is ConflictPolicy.SKIP:
                result.skippedCount += 1
                continue
            if policy is ConflictPolicy.OVERWRITE:
                # Keep the stored casing so the same profile file is replaced
                finalName = existingNames.get(name.casefold(), name)
                result.overwrittenCount += 1
            else:
                finalName = _uniqueImportedName(name, knownNames)
                result.renamedCount += 1
        
        knownNames.add(finalName.casefold())
        result.importedProfiles.append(
            ModProfile(name=finalName, notes=(entry.notes or "").strip(), enabledMods=ids, createdAt=now)
        )
    
    logger.info(
        "Imported %d profile(s) from package '%s' (%d renamed, %d overwritten, %d skipped)",
        result.importedCount, document.packageName, result.renamedCount, result.overwrittenCount, result.skippedCount,
    )
    return result

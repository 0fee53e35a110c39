# modswitch/profiles/store.py
from __future__ import annotations
import logging
import re
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from modswitch.core.files import writeTextAtomic
from modswitch.core.time import utcNow
from modswitch.mods.naming import normalizeIds

logger = logging.getLogger(__name__)

__all__ = ["ModProfile", "ProfileStore", "profileFileName"]

# Characters no mainstream filesystem accepts in a file name
_INVALID_FILE_CHARS_RE = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
DEFAULT_PROFILE_FILE = "Profile"



class ModProfile(BaseModel):
    """A named enabled-set."""
    model_config = ConfigDict(extra="ignore")

    name: str
    enabledMods: list[str] = Field(default_factory=list)
    createdAt: datetime = Field(default_factory=utcNow)
    notes: str = ""

    @field_validator("name")
    @classmethod
    def _nonBlankName(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("profile name must not be blank")
        return value

    @classmethod
    def fromEnabledIds(cls, name: str, enabledIds: Iterable[object], notes: str = "") -> "ModProfile":
        return cls(name=name, enabledMods=sorted(normalizeIds(enabledIds)), notes=notes)



def profileFileName(profileName: str) -> str:
    """'My/Profile?' -> 'MyProfile.json'"""
    safeName = _INVALID_FILE_CHARS_RE.sub("", profileName).strip().rstrip(".")
    return f"{safeName or DEFAULT_PROFILE_FILE}.json"



class ProfileStore:
    """One JSON file per profile in `directory`."""

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    def _pathFor(self, profileName: str) -> Path:
        return self.directory / profileFileName(profileName)

    def listProfiles(self) -> list[ModProfile]:
        """All readable profiles sorted by name (case-insensitive). Broken files are skipped."""
        if not self.directory.is_dir():
            return []
        profiles: list[ModProfile] = []
        for path in sorted(self.directory.glob("*.json"), key=lambda item: item.name.casefold()):
            try:
                profiles.append(ModProfile.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError) as err:
                logger.warning("Skipping unreadable profile '%s': %s", path.name, err)
        return sorted(profiles, key=lambda profile: profile.name.casefold())

    def get(self, name: str) -> ModProfile | None:
        wanted = name.strip().casefold()
        return next((profile for profile in self.listProfiles() if profile.name.casefold() == wanted), None)

    def save(self, profile: ModProfile) -> Path:
        path = self._pathFor(profile.name)
        writeTextAtomic(path, profile.model_dump_json(indent=2))
        logger.info("Saved profile '%s' (%d mods)", profile.name, len(profile.enabledMods))
        return path

    def delete(self, name: str) -> bool:
        path = self._pathFor(name)
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted profile '%s'", name)
        return True

# modswitch/profiles/__init__.py
from __future__ import annotations

from .store import ModProfile, ProfileStore
from .package import ConflictPolicy, ProfilePackageImportResult, exportProfiles, importProfiles

__all__ = [
    "ModProfile",
    "ProfileStore",
    "ConflictPolicy",
    "ProfilePackageImportResult",
    "exportProfiles",
    "importProfiles",
]

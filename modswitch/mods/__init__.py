# modswitch/mods/__init__.py
from __future__ import annotations

from .models import (
    Package,
    DependencyCatalog,
    ResolutionResult,
    RenameReport,
)
from .naming import DISABLED_MARKER, canonicalFolderName, isNumericId, parseFolderName

__all__ = [
    "Package",
    "DependencyCatalog",
    "ResolutionResult",
    "RenameReport",
    "DISABLED_MARKER",
    "canonicalFolderName",
    "isNumericId",
    "parseFolderName",
]

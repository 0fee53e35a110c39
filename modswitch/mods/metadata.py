# modswitch/mods/metadata.py
from __future__ import annotations
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from modswitch.core.files import readJsonLenient
from .naming import normalizeIds

logger = logging.getLogger(__name__)

__all__ = [
    "ITEM_METADATA_FILE",
    "readDependencyIds",
    "readDisplayName",
    "prettifyName",
]

ITEM_METADATA_FILE = "item.json"
DEPENDENCIES_KEY = "DependenciesIds"

PRIORITY_METADATA_FILES = ("manifest.json", "mod.json", "item.json")
MAX_METADATA_FILES = 50
MAX_KEY_DEPTH = 6
DISPLAY_NAME_KEYS = ("name", "title", "displayName", "bundleName", "modName", "pluginName")

_DEPENDENCY_ASSEMBLY_PREFIXES = ("system", "microsoft", "unity", "valve", "steam")
_DEPENDENCY_ASSEMBLIES = frozenset({
    "asmresolver", "harmony", "harmonyx", "0harmony", "bepinex", "newtonsoftjson",
    "monocecil", "monomod", "netstandard", "mscorlib", "unhollowerbaselib",
    "unhollowerruntime", "dnlib",
})

_CAMEL_SPLIT_RE = re.compile(r"(?<=[a-z])([A-Z])")



# ------------------------------------------------------------------ #
# Dependencies
# ------------------------------------------------------------------ #

def readDependencyIds(packageDir: Path) -> frozenset[str]:
    """
    Reads `item.json` → `DependenciesIds` (key matched case-insensitively).
    Missing or malformed files yield an empty set.
    """
    data = readJsonLenient(packageDir / ITEM_METADATA_FILE)
    if not isinstance(data, Mapping):
        return frozenset()
    wanted = DEPENDENCIES_KEY.casefold()
    for key, value in data.items():
        if isinstance(key, str) and key.casefold() == wanted:
            if isinstance(value, list):
                return frozenset(normalizeIds(value))
            return frozenset()
    return frozenset()



# ------------------------------------------------------------------ #
# Display names
# ------------------------------------------------------------------ #

def prettifyName(raw: str) -> str:
    """'my_cool-ModName' -> 'my cool Mod Name'"""
    value = raw.replace("_", " ").replace("-", " ").strip()
    return _CAMEL_SPLIT_RE.sub(r" \1", value)



def _findStringByKey(node: Any, names: frozenset[str], depth: int = 0) -> str | None:
    if depth > MAX_KEY_DEPTH:
        return None
    if isinstance(node, Mapping):
        for key, value in node.items():
            if isinstance(key, str) and key.casefold() in names and isinstance(value, str) and value.strip():
                return value
            nested = _findStringByKey(value, names, depth + 1)
            if nested:
                return nested
    elif isinstance(node, list):
        for item in node:
            nested = _findStringByKey(item, names, depth + 1)
            if nested:
                return nested
    return None



def _metadataCandidates(packageDir: Path) -> list[Path]:
    candidates = [packageDir / name for name in PRIORITY_METADATA_FILES if (packageDir / name).is_file()]
    seen = {os.path.normcase(str(path)) for path in candidates}
    found = 0
    for dirPath, dirNames, fileNames in os.walk(packageDir):
        dirNames[:] = [name for name in dirNames if name.casefold() != ".git"]
        for fileName in fileNames:
            if not fileName.casefold().endswith(".json"):
                continue
            found += 1
            if found > MAX_METADATA_FILES:
                return candidates
            path = Path(dirPath) / fileName
            key = os.path.normcase(str(path))
            if key not in seen:
                seen.add(key)
                candidates.append(path)
    return candidates



def _isDependencyAssembly(name: str) -> bool:
    normalized = name.strip().lower()
    for char in ". _-":
        normalized = normalized.replace(char, "")
    return normalized.startswith(_DEPENDENCY_ASSEMBLY_PREFIXES) or normalized in _DEPENDENCY_ASSEMBLIES



def _deriveFromContents(packageDir: Path) -> str | None:
    dllNames: list[str] = []
    subfolders: list[str] = []
    for entry in sorted(packageDir.iterdir(), key=lambda item: item.name.casefold()):
        if entry.is_file() and entry.suffix.lower() == ".dll":
            dllNames.append(entry.stem)
        elif entry.is_dir():
            subfolders.append(entry.name)
    
    primary = next((name for name in dllNames if not _isDependencyAssembly(name)), None)
    if primary or dllNames:
        return prettifyName(primary or dllNames[0])
    # One logical root subfolder is a decent name
    if len(subfolders) == 1:
        return prettifyName(subfolders[0])
    return None



def readDisplayName(packageDir: Path) -> str | None:
    """
    Best-effort human name for a package:
      1. first name-like key in manifest.json / mod.json / item.json, then other *.json
      2. primary .dll name (dependency assemblies skipped)
      3. the single root subfolder
    Never raises for filesystem or parse problems.
    """
    names = frozenset(key.casefold() for key in DISPLAY_NAME_KEYS)
    try:
        for candidate in _metadataCandidates(packageDir):
            data = readJsonLenient(candidate)
            if data is None:
                continue
            found = _findStringByKey(data, names)
            if found:
                return prettifyName(found)
        return _deriveFromContents(packageDir)
    except OSError as err:
        logger.debug("Display name lookup failed for '%s': %s", packageDir, err)
        return None

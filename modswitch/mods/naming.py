# modswitch/mods/naming.py
"""
Folder-name codec.

A package directory is named either `<id>` (enabled) or `_OFF_<id>` (disabled).
This module is the only place that turns a folder name into (id, enabled) and
back; everything downstream works with identifiers and flags.
"""
from __future__ import annotations
from collections.abc import Iterable

__all__ = [
    "DISABLED_MARKER",
    "isNumericId",
    "parseFolderName",
    "canonicalFolderName",
    "normalizeIds",
]

DISABLED_MARKER = "_OFF_"

_ASCII_DIGITS = frozenset("0123456789")



def isNumericId(value: object) -> bool:
    """Non-empty string made of ASCII digits only."""
    return isinstance(value, str) and bool(value) and all(ch in _ASCII_DIGITS for ch in value)



def parseFolderName(folderName: str) -> tuple[str, bool] | None:
    """
    Decodes a directory name into (identifier, enabled).
    
    "123"       -> ("123", True)
    "_off_123"  -> ("123", False)   marker match is case-insensitive
    "readme"    -> None             non-conforming names are ignored
    """
    if isNumericId(folderName):
        return folderName, True
    markerLen = len(DISABLED_MARKER)
    if folderName[:markerLen].upper() == DISABLED_MARKER:
        rest = folderName[markerLen:]
        if isNumericId(rest):
            return rest, False
    return None



def canonicalFolderName(packageId: str, enabled: bool) -> str:
    if not isNumericId(packageId):
        raise ValueError(f"Not a package identifier: {packageId!r}")
    return packageId if enabled else f"{DISABLED_MARKER}{packageId}"



def normalizeIds(values: Iterable[object]) -> set[str]:
    """
    Keeps identifiers only: numeric strings (surrounding whitespace stripped)
    and non-negative ints. bools and everything else are dropped.
    """
    out: set[str] = set()
    for value in values:
        if isinstance(value, bool):
            continue
        if isinstance(value, int):
            if value >= 0:
                out.add(str(value))
            continue
        if isinstance(value, str):
            candidate = value.strip()
            if isNumericId(candidate):
                out.add(candidate)
    return out

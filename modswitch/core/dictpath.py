# modswitch/core/dictpath.py
from __future__ import annotations
from typing import Any
from collections.abc import Mapping, MutableMapping

__all__ = ["getByPath", "setByPath", "hasPath", "deleteByPath"]



_MISSING = object()



def _splitPath(path: str) -> list[str]:
    """
    Splits a dotted path ("cloudMirror.steamRoots") into segments.
    Empty paths or empty segments ("a..b", ".a") are rejected.
    """
    if not isinstance(path, str) or not path:
        raise ValueError("Path must be a non-empty string")
    parts = path.split(".")
    if any(part == "" for part in parts):
        raise ValueError(f"Path '{path}' contains empty segment(s)")
    return parts



def _walk(obj: Any, parts: list[str]) -> Any:
    node = obj
    for part in parts:
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node



def getByPath(obj: Any, path: str, default: Any | None = None) -> Any:
    """Returns the value at dotted `path` inside nested mappings, or `default`."""
    try:
        parts = _splitPath(path)
    except ValueError:
        return default
    value = _walk(obj, parts)
    return default if value is _MISSING else value



def hasPath(obj: Any, path: str) -> bool:
    try:
        return _walk(obj, _splitPath(path)) is not _MISSING
    except ValueError:
        return False



def setByPath(obj: MutableMapping[str, Any], path: str, value: Any, *, createIfMissing: bool = False) -> None:
    """
    Sets `value` at dotted `path`.
    
    Intermediate mappings are created only when createIfMissing=True; otherwise a
    missing or non-mapping intermediate raises KeyError / TypeError.
    """
    parts = _splitPath(path)
    node: Any = obj
    for part in parts[:-1]:
        if not isinstance(node, MutableMapping):
            raise TypeError(f"Cannot descend into non-mapping at '{part}' while setting '{path}'")
        child = node.get(part, _MISSING)
        if child is _MISSING or child is None:
            if not createIfMissing:
                raise KeyError(f"Missing intermediate '{part}' while setting '{path}'")
            child = {}
            node[part] = child
        node = child
    if not isinstance(node, MutableMapping):
        raise TypeError(f"Cannot set '{parts[-1]}' on non-mapping while setting '{path}'")
    node[parts[-1]] = value



def deleteByPath(obj: MutableMapping[str, Any], path: str, *, pruneEmptyParents: bool = True) -> bool:
    """
    Deletes the value at dotted `path`. Returns True when something was removed.
    With pruneEmptyParents, parents left empty by the removal are removed too.
    """
    try:
        parts = _splitPath(path)
    except ValueError:
        return False
    
    chain: list[tuple[MutableMapping[str, Any], str]] = []
    node: Any = obj
    for part in parts[:-1]:
        if not isinstance(node, MutableMapping) or part not in node:
            return False
        chain.append((node, part))
        node = node[part]
    
    if not isinstance(node, MutableMapping) or parts[-1] not in node:
        return False
    del node[parts[-1]]
    
    if pruneEmptyParents:
        for parent, key in reversed(chain):
            child = parent.get(key)
            if isinstance(child, Mapping) and not child:
                del parent[key]
            else:
                break
    return True

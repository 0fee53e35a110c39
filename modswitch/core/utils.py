# modswitch/core/utils.py
from __future__ import annotations
import copy, json
from collections.abc import Mapping
from typing import Any, TypeVar

from modswitch.core.jsonutils import tryJSONify

__all__ = ["deepCopy", "deepMerge"]

T = TypeVar("T")



def deepCopy(value: T, *, strict: bool = True) -> T:
    """
    Safely deep-copies JSON-like data.
    
      - strict=True (default): raises on any copy failure.
      - strict=False: falls back to tryJSONify (cycle/depth-safe) and then to a
        JSON roundtrip before giving up.
    """
    try:
        return copy.deepcopy(value)
    except Exception as err1:
        if strict:
            raise RuntimeError(f"deepCopy failed - {err1.__class__.__name__} {err1}") from err1

        try:
            return tryJSONify(value, maxDepth=None)
        except Exception:
            pass
        
        try:
            return json.loads(json.dumps(value, ensure_ascii=False, allow_nan=False))
        except Exception as err3:
            raise RuntimeError(
                f"deepCopy failed via copy.deepcopy, tryJSONify, and JSON roundtrip: {err3}"
            ) from err3



def deepMerge(base: Mapping[str, Any], top: Mapping[str, Any]) -> dict[str, Any]:
    """
    Returns a new dict where `top` is merged over `base`.
    Nested mappings merge key by key; any other value in `top` replaces the one in `base`.
    """
    out: dict[str, Any] = deepCopy(dict(base), strict=False)
    for key, value in top.items():
        current = out.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            out[key] = deepMerge(current, value)
        else:
            out[key] = deepCopy(value, strict=False)
    return out

# modswitch/core/jsonutils.py
from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel

__all__ = ["safeJsonDumps", "tryJSONify"]



def safeJsonDumps(obj: object, *, indent: int | None = None) -> str:
    """
    JSON text for logs, trace files and side-files we write.
    Pydantic models are dumped by alias. Anything json can't encode
    (paths, sets, dataclasses, reports) goes through tryJSONify first.
    """
    payload = obj.model_dump(mode="json", by_alias=True) if isinstance(obj, BaseModel) else obj
    separators = (",", ":") if indent is None else (",", ": ")
    try:
        return json.dumps(payload, ensure_ascii=False, allow_nan=False, indent=indent, separators=separators)
    except (TypeError, ValueError):
        return json.dumps(
            tryJSONify(payload, maxDepth=None), ensure_ascii=False, allow_nan=False, indent=indent, separators=separators
        )



def tryJSONify(obj: Any, *, maxDepth: int | None = 10, _depth: int = 0, _seen: frozenset[int] = frozenset()) -> Any:
    """Best-effort conversion to JSON-safe data; never raises."""
    if obj is None or isinstance(obj, (bool, int, str)):
        return obj
    if isinstance(obj, float):
        return obj if obj == obj and obj not in (float("inf"), float("-inf")) else repr(obj)
    if isinstance(obj, Enum):
        return tryJSONify(obj.value, maxDepth=maxDepth, _depth=_depth, _seen=_seen)
    if isinstance(obj, (date, datetime)):
        return obj.isoformat()
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, BaseException):
        return {"type": type(obj).__name__, "message": str(obj)}

    if id(obj) in _seen:
        return f"<circular_ref {type(obj).__name__}>"
    if maxDepth is not None and _depth >= maxDepth:
        return f"<max_depth_exceeded {type(obj).__name__}>"
    seen = _seen | {id(obj)}

    def nested(value: Any) -> Any:
        return tryJSONify(value, maxDepth=maxDepth, _depth=_depth + 1, _seen=seen)

    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json", by_alias=True)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {key: nested(value) for key, value in asdict(obj).items()}
    if isinstance(obj, Mapping):
        return {str(key): nested(value) for key, value in obj.items()}
    if isinstance(obj, (set, frozenset)):
        items = [nested(value) for value in obj]
        try:
            return sorted(items)
        except TypeError:
            return items
    if isinstance(obj, Iterable) and not isinstance(obj, (bytes, bytearray)):
        return [nested(value) for value in obj]
    return repr(obj)

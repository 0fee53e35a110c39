# modswitch/config/types.py
from __future__ import annotations
from typing import Any, Callable, Literal, Protocol, runtime_checkable

__all__ = ["ConfigProvider", "ChangeListener", "ConfigTarget"]

ConfigTarget = Literal["runtime", "save", "global"]

# (key, oldValue, newValue, context)
ChangeListener = Callable[[str, Any, Any, dict[str, Any]], None]



@runtime_checkable
class ConfigProvider(Protocol):
    """One layer of a ConfigStore. get() returns None for missing keys."""
    def get(self, key: str) -> Any | None: ...
    def set(self, key: str, value: Any) -> None: ...
    def to_dict(self) -> dict[str, Any]: ...
    def save(self) -> None: ...

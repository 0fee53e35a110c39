# modswitch/config/providers.py
from __future__ import annotations
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import json5

from modswitch.core.dictpath import deleteByPath, getByPath, setByPath
from modswitch.core.files import writeTextAtomic
from modswitch.core.utils import deepCopy
from .types import ConfigProvider

logger = logging.getLogger(__name__)

__all__ = ["OverrideProvider", "DictProvider", "FileProvider"]



class _MutableTree(ConfigProvider):
    """Nested dict addressed by dotted keys. Setting a key to None removes it."""
    _strictCopy = True

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any | None:
        return getByPath(self._data, key, None)

    def set(self, key: str, value: Any) -> None:
        if value is None:
            deleteByPath(self._data, key, pruneEmptyParents=True)
        else:
            setByPath(self._data, key, deepCopy(value, strict=self._strictCopy), createIfMissing=True)

    def to_dict(self) -> dict[str, Any]:
        return deepCopy(self._data, strict=self._strictCopy)

    def save(self) -> None:
        return



class OverrideProvider(_MutableTree):
    """
    Topmost in-memory layer, never persisted.
    CLI flags (--steam-root, --no-cloud) and tests write here.
    """



@dataclass
class DictProvider(ConfigProvider):
    """Read-only shipped defaults."""
    data: Mapping[str, Any]

    def get(self, key: str) -> Any | None:
        return getByPath(self.data, key, None)

    def set(self, key: str, value: Any) -> None:
        raise RuntimeError("DictProvider is read-only")

    def to_dict(self) -> dict[str, Any]:
        return deepCopy(dict(self.data))

    def save(self) -> None:
        return



class FileProvider(_MutableTree):
    """
    User settings persisted as JSON5 (`modswitch config set ...` lands here).

    A missing file starts empty. A file that fails to parse is logged and
    treated as empty; it is only overwritten by an explicit save(). A file
    holding anything but an object raises TypeError.
    """
    _strictCopy = False

    def __init__(self, path: str | Path, *, readOnly: bool = False) -> None:
        super().__init__()
        self.path = Path(path)
        self.readOnly = readOnly
        self.reload()

    def reload(self) -> None:
        self._data = {}
        if not self.path.exists():
            logger.debug("Config file '%s' not found, starting empty", self.path)
            return
        if not self.path.is_file():
            raise IsADirectoryError(f"Config path '{self.path}' exists but is not a file")

        try:
            parsed = json5.loads(self.path.read_text(encoding="utf-8-sig"))
        except OSError as err:
            logger.error("Cannot read config file '%s': %s", self.path, err)
            return
        except ValueError as err:
            logger.warning("Config file '%s' is not valid JSON5, ignoring it: %s", self.path, err)
            return

        if parsed is None:
            return
        if not isinstance(parsed, Mapping):
            raise TypeError(f"Config file '{self.path}' must hold a JSON object, not '{type(parsed).__name__}'")
        self._data = dict(parsed)

    def _ensureWritable(self) -> None:
        if self.readOnly:
            raise RuntimeError(f"FileProvider({self.path}) is read-only")

    def set(self, key: str, value: Any) -> None:
        self._ensureWritable()
        super().set(key, value)

    def save(self) -> None:
        self._ensureWritable()
        writeTextAtomic(self.path, json5.dumps(self._data, indent=2, quote_keys=True))
        logger.debug("Saved %d config sections to '%s'", len(self._data), self.path)

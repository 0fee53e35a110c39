# tests/conftest.py
from __future__ import annotations
import json
import logging
import os
import sys
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import pytest

from modswitch.app.config import initConfig, resetConfig
from modswitch.app.context import PROCESS_REGISTRY
from modswitch.core.tracing import getTraceHub



def pytest_configure(config: pytest.Config) -> None:
    if sys.flags.optimize:
        raise RuntimeError("Assertions are disabled (optimize > 0)")



@pytest.fixture(autouse=True)
def isolatedProcess() -> Iterator[None]:
    """Fresh config/registry/tracing per test; root logger handlers restored afterwards."""
    rootLogger = logging.getLogger()
    savedHandlers = list(rootLogger.handlers)
    savedLevel = rootLogger.level
    resetConfig()
    PROCESS_REGISTRY.unregister("app.paths")
    getTraceHub().clear()
    yield
    for handler in list(rootLogger.handlers):
        if handler not in savedHandlers:
            rootLogger.removeHandler(handler)
            handler.close()
    for handler in savedHandlers:
        if handler not in rootLogger.handlers:
            rootLogger.addHandler(handler)
    rootLogger.setLevel(savedLevel)
    resetConfig()
    PROCESS_REGISTRY.unregister("app.paths")
    getTraceHub().clear()



@pytest.fixture
def globalConfig():
    """In-memory global config (defaults + overrides, no user file)."""
    return initConfig().globalStore



class WorkshopTree:
    """Builds package folders under a temporary workshop root."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self._clock = 1_700_000_000

    def add(
        self,
        folderName: str,
        *,
        dependencies: Iterable[Any] | None = None,
        files: dict[str, str] | None = None,
        itemJson: dict[str, Any] | None = None,
        mtime: float | None = None,
    ) -> Path:
        path = self.root / folderName
        path.mkdir(parents=True, exist_ok=True)
        item = dict(itemJson or {})
        if dependencies is not None:
            item["DependenciesIds"] = list(dependencies)
        if item:
            (path / "item.json").write_text(json.dumps(item), encoding="utf-8")
        for name, text in (files or {}).items():
            target = path / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text, encoding="utf-8")
        # Deterministic, strictly increasing mtimes unless given
        if mtime is None:
            self._clock += 10
            mtime = self._clock
        os.utime(path, (mtime, mtime))
        return path

    def names(self) -> list[str]:
        return sorted(entry.name for entry in self.root.iterdir() if entry.is_dir())



@pytest.fixture
def workshop(tmp_path: Path) -> WorkshopTree:
    return WorkshopTree(tmp_path / "workshop" / "3018410")



def _writeCloudFile(steamRoot: Path, userId: str, payload: Any = None, *, appId: str = "3018410") -> Path:
    remote = steamRoot / "userdata" / userId / appId / "remote"
    remote.mkdir(parents=True, exist_ok=True)
    path = remote / "Load on Start"
    if payload is not None:
        path.write_text(payload if isinstance(payload, str) else json.dumps(payload), encoding="utf-8")
    return path



@pytest.fixture
def cloudFile():
    """Factory: cloudFile(steamRoot, userId, payload=None) -> path of its Load on Start file."""
    return _writeCloudFile



@pytest.fixture
def steamRoot(tmp_path: Path) -> Path:
    root = tmp_path / "steam"
    root.mkdir()
    return root

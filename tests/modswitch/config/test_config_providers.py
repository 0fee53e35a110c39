# tests/modswitch/config/test_config_providers.py
from __future__ import annotations

import json5
import pytest

from modswitch.config.providers import DictProvider, FileProvider, OverrideProvider

# ----------------------------
# OverrideProvider tests
# ----------------------------

def test_overrideProvider_setAndGet_pathCreatesNested() -> None:
    provider = OverrideProvider()

    provider.set("cloudMirror.enabled", False)
    provider.set("cloudMirror.steamRoots", ["/steam"])

    assert provider.get("cloudMirror.enabled") is False
    assert provider.get("cloudMirror.steamRoots") == ["/steam"]
    assert provider.get("cloudMirror.appId") is None
    assert provider.to_dict() == {"cloudMirror": {"enabled": False, "steamRoots": ["/steam"]}}


def test_overrideProvider_setNoneDeletesAndPrunes() -> None:
    provider = OverrideProvider()
    provider.set("workshop.path", "/w")
    provider.set("workshop.path", None)
    assert provider.to_dict() == {}


def test_overrideProvider_copiesValues() -> None:
    provider = OverrideProvider()
    roots = ["/a"]
    provider.set("cloudMirror.steamRoots", roots)
    roots.append("/b")
    assert provider.get("cloudMirror.steamRoots") == ["/a"]

# ----------------------------
# DictProvider tests
# ----------------------------

def test_dictProvider_isReadOnly() -> None:
    provider = DictProvider(data={"preview": {"debounceMs": 200}})
    assert provider.get("preview.debounceMs") == 200
    with pytest.raises(RuntimeError):
        provider.set("preview.debounceMs", 1)

# ----------------------------
# FileProvider tests
# ----------------------------

def test_fileProvider_missingFileStartsEmptyAndSaves(tmp_path) -> None:
    path = tmp_path / "config" / "global.json5"
    provider = FileProvider(path)
    assert provider.to_dict() == {}

    provider.set("workshop.path", "/games/workshop")
    provider.save()

    assert json5.loads(path.read_text(encoding="utf-8")) == {"workshop": {"path": "/games/workshop"}}
    assert FileProvider(path).get("workshop.path") == "/games/workshop"


def test_fileProvider_readsJson5(tmp_path) -> None:
    path = tmp_path / "global.json5"
    path.write_text("{ // user settings\n  engine: { retry: { maxAttempts: 2, } },\n}", encoding="utf-8")
    assert FileProvider(path).get("engine.retry.maxAttempts") == 2


def test_fileProvider_parseErrorStartsEmpty(tmp_path) -> None:
    path = tmp_path / "global.json5"
    path.write_text("{ broken", encoding="utf-8")
    assert FileProvider(path).to_dict() == {}


def test_fileProvider_nonObjectRaises(tmp_path) -> None:
    path = tmp_path / "global.json5"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(TypeError):
        FileProvider(path)


def test_fileProvider_readOnlyRefusesWrites(tmp_path) -> None:
    provider = FileProvider(tmp_path / "global.json5", readOnly=True)
    with pytest.raises(RuntimeError):
        provider.set("workshop.path", "/x")
    with pytest.raises(RuntimeError):
        provider.save()

# tests/modswitch/app/test_cli.py
from __future__ import annotations
import json

import json5
import pytest
from click.testing import CliRunner

from modswitch import __version__
from modswitch.cli import main



@pytest.fixture
def invoke(tmp_path, workshop, steamRoot):
    runner = CliRunner(env={"COLUMNS": "250", "MODSWITCH_HOME": None})
    home = tmp_path / "home"

    def _invoke(*args: str, root=workshop.root):
        base = ["--home", str(home), "--steam-root", str(steamRoot)]
        if root is not None:
            base += ["--root", str(root)]
        return runner.invoke(main, [*base, *args], catch_exceptions=False)
    _invoke.home = home
    return _invoke


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_scan_listsPackages(invoke, workshop):
    workshop.add("100", itemJson={"name": "Carrier Ops"})
    workshop.add("_OFF_200")

    result = invoke("scan")

    assert result.exit_code == 0
    assert "Carrier Ops" in result.output
    assert "_OFF_200" in result.output
    assert "disabled" in result.output


def test_apply_renamesAndSnapshots(invoke, workshop):
    workshop.add("_OFF_100", dependencies=["200"])
    workshop.add("_OFF_200")
    workshop.add("300")

    result = invoke("--no-cloud", "apply", "100")

    assert result.exit_code == 0, result.output
    assert workshop.names() == ["100", "200", "_OFF_300"]
    assert "Auto-enabled dependencies: 200" in result.output
    assert "3 renamed" in result.output
    assert list((invoke.home / "backups").glob("*.json"))


def test_preview_touchesNothing(invoke, workshop):
    workshop.add("_OFF_1", dependencies=["2", "9"])
    workshop.add("_OFF_2")

    result = invoke("preview", "1")

    assert result.exit_code == 0
    assert "Dependencies: 2" in result.output
    assert "Missing dependencies: 9" in result.output
    assert workshop.names() == ["_OFF_1", "_OFF_2"]


def test_enableDisableCleanupRemove(invoke, workshop):
    workshop.add("1")
    workshop.add("_OFF_1")
    workshop.add("_OFF_2")

    assert invoke("cleanup").exit_code == 0
    assert workshop.names() == ["1", "_OFF_2"]

    assert invoke("--no-cloud", "enable", "2").exit_code == 0
    assert workshop.names() == ["1", "2"]

    assert invoke("--no-cloud", "disable", "1").exit_code == 0
    assert workshop.names() == ["2", "_OFF_1"]

    result = invoke("remove", "1")
    assert result.exit_code == 0
    assert "Removed _OFF_1" in result.output
    assert workshop.names() == ["2"]


def test_snapshotAndRestore(invoke, workshop):
    workshop.add("1")
    workshop.add("_OFF_2")

    assert "No snapshot for this folder." in invoke("restore").output
    assert invoke("snapshot").exit_code == 0
    assert invoke("--no-cloud", "apply", "--no-snapshot", "2").exit_code == 0
    assert workshop.names() == ["2", "_OFF_1"]

    result = invoke("--no-cloud", "restore")

    assert result.exit_code == 0
    assert workshop.names() == ["1", "_OFF_2"]


def test_cloudMirrorUsesSteamRoot(invoke, workshop, steamRoot, cloudFile):
    workshop.add("_OFF_5")
    mirror = cloudFile(steamRoot, "42", {"WorkshopItems": {}, "LocalItems": {}})

    result = invoke("apply", "5")

    assert result.exit_code == 0
    assert "Updated 1 cloud 'Load on Start' file(s)." in result.output
    assert json.loads(mirror.read_text(encoding="utf-8"))["WorkshopItems"] == {"5": True}


def test_profileLifecycle(invoke, workshop, tmp_path):
    workshop.add("1")
    workshop.add("_OFF_2")

    assert invoke("profile", "save", "Main", "--notes", "daily").exit_code == 0
    listing = invoke("profile", "list")
    assert "Main" in listing.output and "daily" in listing.output

    packagePath = tmp_path / "share" / "profiles.json"
    assert invoke("profile", "export", str(packagePath), "--name", "Squad").exit_code == 0
    exported = json.loads(packagePath.read_text(encoding="utf-8"))
    assert exported["packageName"] == "Squad"
    assert exported["profiles"][0]["enabledWorkshopIds"] == ["1"]

    imported = invoke("profile", "import", str(packagePath))
    assert imported.exit_code == 0
    assert "Imported 1" in imported.output
    assert (invoke.home / "profiles" / "Main (Imported).json").is_file()

    assert invoke("--no-cloud", "apply", "2").exit_code == 0
    assert invoke("--no-cloud", "profile", "apply", "Main").exit_code == 0
    assert workshop.names() == ["1", "_OFF_2"]

    assert invoke("profile", "delete", "Main").exit_code == 0
    missing = invoke("profile", "delete", "Main")
    assert missing.exit_code == 1
    assert "not found" in missing.output


def test_profileImport_reportsBrokenPackage(invoke, tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text(json.dumps({"schemaVersion": 9, "profiles": [{"name": "x"}]}), encoding="utf-8")

    result = invoke("profile", "import", str(broken))

    assert result.exit_code == 1
    assert "Unsupported schemaVersion" in result.output


def test_configSetPersistsAndValidates(invoke):
    result = invoke("config", "set", "preview.debounceMs", "50", root=None)
    assert result.exit_code == 0
    saved = json5.loads((invoke.home / "config" / "global.json5").read_text(encoding="utf-8"))
    assert saved == {"preview": {"debounceMs": 50}}

    rejected = invoke("config", "set", "preview.debounceMs", "-5", root=None)
    assert rejected.exit_code == 1
    assert "Rejected" in rejected.output

    shown = invoke("config", "show", root=None)
    assert '"debounceMs": 50' in shown.output


def test_missingRootIsUsageError(invoke, tmp_path):
    result = invoke("scan", root=tmp_path / "does-not-exist")
    assert result.exit_code == 2
    assert "does not exist" in result.output


def test_detect_findsWorkshopUnderSteamRoot(invoke, steamRoot):
    content = steamRoot / "steamapps" / "workshop" / "content" / "3018410"
    content.mkdir(parents=True)
    (steamRoot / "steamapps" / "libraryfolders.vdf").write_text('"libraryfolders" {}', encoding="utf-8")

    result = invoke("detect", root=None)

    assert result.exit_code == 0
    assert str(content) in result.output


def test_traceFileCollectsApplySpans(invoke, workshop, tmp_path):
    workshop.add("1")
    traceFile = tmp_path / "trace.jsonl"

    result = invoke("--no-cloud", "--trace", str(traceFile), "apply")

    assert result.exit_code == 0
    records = [json.loads(line) for line in traceFile.read_text(encoding="utf-8").splitlines()]
    assert any(rec.get("spanName") == "mods.apply" and rec["recordType"] == "spanEnd" for rec in records)

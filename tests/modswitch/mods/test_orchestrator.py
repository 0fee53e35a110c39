# tests/modswitch/mods/test_orchestrator.py
from __future__ import annotations
import asyncio
import json

import pytest

from modswitch.app.paths import AppPaths
from modswitch.core.errors import OperationCancelledError
from modswitch.core.tracing import getTraceHub
from modswitch.mods.cloud_mirror import CloudMirrorSyncAdapter
from modswitch.mods.orchestrator import ApplyOrchestrator, ApplyState
from modswitch.mods.rename_engine import RenameEngine
from modswitch.mods.snapshots import SnapshotStore
from modswitch.mods.subpacks import SUBPACK_HOST_ID

FULL_CYCLE = [
    ApplyState.IDLE,
    ApplyState.SNAPSHOT_TAKEN,
    ApplyState.DEPENDENCIES_RESOLVED,
    ApplyState.FOLDERS_RECONCILED,
    ApplyState.SUBREGISTRY_SYNCED,
    ApplyState.CLOUD_MIRROR_SYNCED,
    ApplyState.REPORTED,
    ApplyState.IDLE,
]



@pytest.fixture
def orchestrator(workshop, steamRoot, tmp_path) -> ApplyOrchestrator:
    return ApplyOrchestrator(
        workshop.root,
        engine=RenameEngine(maxAttempts=2, renameBackoffMs=0, deleteBackoffMs=0),
        cloudMirror=CloudMirrorSyncAdapter(steamRoots=[steamRoot]),
        snapshots=SnapshotStore(tmp_path / "backups"),
    )


@pytest.mark.asyncio
async def test_apply_enablesDependencyChainAndMirrorsCloud(orchestrator, workshop, steamRoot, cloudFile):
    workshop.add("_OFF_100", dependencies=["200"])
    workshop.add("_OFF_200", dependencies=["300"])
    workshop.add("_OFF_300")
    workshop.add("400")
    mirror = cloudFile(steamRoot, "111", {"WorkshopItems": {"400": True}, "LocalItems": {"local": True}})

    report = await orchestrator.apply(["100"])

    assert workshop.names() == ["100", "200", "300", "_OFF_400"]
    assert report.autoEnabledIds == ("200", "300")
    assert report.missingDependencyIds == ()
    assert report.activeIds == {"100", "200", "300"}
    assert report.states == FULL_CYCLE
    assert orchestrator.state is ApplyState.IDLE
    assert report.converged is True
    assert report.subPacks.message == "No sub-packages discovered."
    assert report.cloudMirror.success is True
    assert json.loads(mirror.read_text(encoding="utf-8")) == {
        "WorkshopItems": {"100": True, "200": True, "300": True},
        "LocalItems": {"local": True},
    }
    assert report.statusLine() == (
        "Applied: 4 renamed, 0 removed, 0 failed, 2 auto-enabled dependencies, "
        "0 missing dependencies, 0 missing after apply"
    )
    # Snapshot was taken before anything moved
    snapshot = orchestrator.snapshots.load(report.snapshotPath)
    assert snapshot.folders == ["400", "_OFF_100", "_OFF_200", "_OFF_300"]


@pytest.mark.asyncio
async def test_apply_reportsMissingDependenciesAndUninstalledRequests(orchestrator, workshop):
    workshop.add("_OFF_100", dependencies=["999"])

    report = await orchestrator.apply(["100", "555"])

    assert workshop.names() == ["100"]
    assert report.missingDependencyIds == ("999",)
    assert report.missingAfterApply == ("555",)
    assert report.converged is False
    assert "Missing dependency 999" in report.messages
    assert "Requested 555 is not installed and enabled" in report.messages
    # The cloud leg failed (no file) but the machine still finished
    assert report.cloudMirror.success is False
    assert report.states[-2:] == [ApplyState.REPORTED, ApplyState.IDLE]


@pytest.mark.asyncio
async def test_apply_forcesSubPackHostAndSyncsRegistry(orchestrator, workshop):
    workshop.add(f"_OFF_{SUBPACK_HOST_ID}")
    workshop.add("_OFF_100", files={"Ships.cwb": ""})
    workshop.add("200", files={"Maps.cwb": ""})

    report = await orchestrator.apply(["100"])

    assert sorted(workshop.names()) == sorted([SUBPACK_HOST_ID, "100", "_OFF_200"])
    assert report.forcedIds == {SUBPACK_HOST_ID}
    registry = json.loads((workshop.root / SUBPACK_HOST_ID / "loaditems.json").read_text(encoding="utf-8"))
    assert registry["packs"] == [
        {"name": "Maps.cwb", "loadThisPack": False},
        {"name": "Ships.cwb", "loadThisPack": True},
    ]
    assert report.activeIds == {SUBPACK_HOST_ID, "100"}
    assert report.missingAfterApply == ()


@pytest.mark.asyncio
async def test_apply_isIdempotent(orchestrator, workshop):
    workshop.add("100")
    workshop.add("_OFF_200")
    await orchestrator.apply(["200"])
    before = workshop.names()

    report = await orchestrator.apply(["200"])

    assert workshop.names() == before
    assert report.renames.changed == 0


@pytest.mark.asyncio
async def test_apply_concurrentCallsAreSerialized(orchestrator, workshop):
    for name in ("1", "2", "3"):
        workshop.add(name)

    first, second = await asyncio.gather(orchestrator.apply(["1"]), orchestrator.apply(["2", "3"]))

    assert first.states == FULL_CYCLE
    assert second.states == FULL_CYCLE
    assert workshop.names() == ["2", "3", "_OFF_1"]


@pytest.mark.asyncio
async def test_apply_cancelledReturnsToIdle(orchestrator, workshop):
    workshop.add("1")
    cancelEvent = asyncio.Event()
    cancelEvent.set()

    with pytest.raises(OperationCancelledError):
        await orchestrator.apply([], cancelEvent=cancelEvent)

    assert orchestrator.state is ApplyState.IDLE
    assert workshop.names() == ["1"]
    ends = [rec for rec in getTraceHub().records() if rec["recordType"] == "spanEnd" and rec["spanName"] == "mods.apply"]
    assert ends[-1]["status"] == "error"


@pytest.mark.asyncio
async def test_apply_withoutCloudMirrorOrSnapshots(workshop):
    workshop.add("1")
    orchestrator = ApplyOrchestrator(workshop.root, engine=RenameEngine(renameBackoffMs=0, deleteBackoffMs=0))

    report = await orchestrator.apply([])

    assert report.snapshotPath is None
    assert report.cloudMirror.message == "Cloud mirror sync not configured."
    assert workshop.names() == ["_OFF_1"]


@pytest.mark.asyncio
async def test_apply_tracesWithApplyId(orchestrator, workshop):
    workshop.add("1")
    report = await orchestrator.apply(["1"])
    records = [rec for rec in getTraceHub().records() if rec.get("applyId") == report.applyId]
    assert records[0]["spanName"] == "mods.apply"
    stateEvents = [rec["attrs"]["state"] for rec in records if rec.get("eventName") == "mods.apply.state"]
    assert stateEvents == [state.value for state in FULL_CYCLE]


@pytest.mark.asyncio
async def test_enableAndDisable_keepOtherPackagesAsTheyAre(orchestrator, workshop):
    workshop.add("1")
    workshop.add("_OFF_2")
    workshop.add("3")

    await orchestrator.enable(["2"])
    assert workshop.names() == ["1", "2", "3"]

    await orchestrator.disable(["1", "3"])
    assert workshop.names() == ["2", "_OFF_1", "_OFF_3"]


@pytest.mark.asyncio
async def test_restoreLatest_reappliesSnapshot(orchestrator, workshop):
    workshop.add("_OFF_100")
    workshop.add("200")
    await orchestrator.apply(["100"])
    assert workshop.names() == ["100", "_OFF_200"]

    report = await orchestrator.restoreLatest()

    assert report is not None
    assert workshop.names() == ["200", "_OFF_100"]


@pytest.mark.asyncio
async def test_restoreLatest_withoutSnapshotReturnsNone(orchestrator, workshop):
    workshop.add("1")
    assert await orchestrator.restoreLatest() is None


@pytest.mark.asyncio
async def test_cleanupAndRemove(orchestrator, workshop):
    workshop.add("1")
    workshop.add("_OFF_1")
    workshop.add("2")

    cleanup = await orchestrator.cleanupDuplicates()
    assert cleanup.removed == 1
    assert workshop.names() == ["1", "2"]

    removal = await orchestrator.removePackage("2")
    assert removal.removed == 1
    assert workshop.names() == ["1"]


@pytest.mark.asyncio
async def test_preview_doesNotTouchFolders(orchestrator, workshop):
    workshop.add("_OFF_1", dependencies=["2"])
    workshop.add("_OFF_2")

    orchestrator.previewScheduler.request(["1"])
    result = await orchestrator.previewScheduler.wait()

    assert result.enabledIds == {"1", "2"}
    assert workshop.names() == ["_OFF_1", "_OFF_2"]


@pytest.mark.asyncio
async def test_fromConfig_readsSettings(workshop, tmp_path, globalConfig):
    globalConfig.set("engine.retry.maxAttempts", 7)
    globalConfig.set("cloudMirror.enabled", False)
    globalConfig.set("preview.debounceMs", 5)
    paths = AppPaths(tmp_path / "home")

    orchestrator = ApplyOrchestrator.fromConfig(workshop.root, paths)

    assert orchestrator.engine.maxAttempts == 7
    assert orchestrator.cloudMirror.enabled is False
    assert orchestrator.previewDebounceMs == 5
    assert orchestrator.snapshots.directory == paths.backupsDir
    assert orchestrator.subPacks.hostId == SUBPACK_HOST_ID

    globalConfig.set("snapshots.enabled", False)
    assert ApplyOrchestrator.fromConfig(workshop.root, paths).snapshots is None


@pytest.mark.asyncio
async def test_watcher_collapsesExistingDuplicatesAtStartup(orchestrator, workshop):
    workshop.add("1")
    workshop.add("_OFF_1")
    orchestrator.watchPollMs = 20
    orchestrator.watchDebounceMs = 20

    watcher = orchestrator.watcher()
    watcher.start()
    try:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + 3.0
        while workshop.names() != ["1"]:
            assert loop.time() < deadline, f"duplicates still present: {workshop.names()}"
            await asyncio.sleep(0.02)
    finally:
        await watcher.stop()

    assert watcher.changeCount == 0


@pytest.mark.asyncio
async def test_apply_readsDependencyCatalogOnceWhenForcingHost(orchestrator, workshop, monkeypatch):
    workshop.add(f"_OFF_{SUBPACK_HOST_ID}")
    workshop.add("_OFF_100", dependencies=["200"])
    workshop.add("_OFF_200", files={"Maps.cwb": ""})

    builds: list[object] = []
    original = orchestrator.resolver.buildCatalog
    async def countingBuild(root, cancelEvent=None):
        builds.append(root)
        return await original(root, cancelEvent)
    monkeypatch.setattr(orchestrator.resolver, "buildCatalog", countingBuild)

    report = await orchestrator.apply(["100"])

    assert len(builds) == 1
    assert report.forcedIds == {SUBPACK_HOST_ID}
    assert report.autoEnabledIds == ("200",)
    assert sorted(workshop.names()) == sorted([SUBPACK_HOST_ID, "100", "200"])

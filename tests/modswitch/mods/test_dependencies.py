# tests/modswitch/mods/test_dependencies.py
from __future__ import annotations
import asyncio

import pytest

from modswitch.core.errors import OperationCancelledError
from modswitch.mods.dependencies import DependencyResolver, buildCatalog, resolveFromCatalog
from modswitch.mods.models import DependencyCatalog



def _catalog(known, deps) -> DependencyCatalog:
    return DependencyCatalog(
        knownIds=frozenset(known),
        dependencies={key: frozenset(value) for key, value in deps.items()},
    )


def test_resolve_followsChainAndReportsMissing():
    catalog = _catalog({"100", "200", "300"}, {"100": {"200"}, "200": {"300", "999"}})
    result = resolveFromCatalog(catalog, ["100"])
    assert result.enabledIds == {"100", "200", "300"}
    assert result.autoEnabledIds == ("200", "300")
    assert result.missingIds == ("999",)
    assert result.requestedIds == {"100"}


def test_resolve_terminatesOnCycles():
    catalog = _catalog({"1", "2", "3"}, {"1": {"2"}, "2": {"3"}, "3": {"1"}})
    result = resolveFromCatalog(catalog, ["1"])
    assert result.enabledIds == {"1", "2", "3"}
    assert result.autoEnabledIds == ("2", "3")


def test_resolve_requestedDependencyIsNotAutoEnabled():
    catalog = _catalog({"1", "2"}, {"1": {"2"}})
    result = resolveFromCatalog(catalog, ["1", "2"])
    assert result.autoEnabledIds == ()
    assert result.enabledIds == {"1", "2"}


def test_resolve_isClosedAndDisjointFromMissing():
    catalog = _catalog({"1", "2", "3", "4"}, {"1": {"2", "8"}, "2": {"3"}, "4": {"9"}})
    result = resolveFromCatalog(catalog, ["1", "4", "7"])
    for packageId in result.enabledIds:
        for dependencyId in catalog.dependenciesOf(packageId):
            assert dependencyId in result.enabledIds or dependencyId in result.missingIds
    assert not set(result.missingIds) & result.enabledIds
    # Requested but not installed: enabled, not a missing dependency
    assert "7" in result.enabledIds
    assert result.missingIds == ("8", "9")


def test_resolve_normalizesRequestedIds():
    result = resolveFromCatalog(_catalog({"5"}, {}), [" 5 ", "junk", 5])
    assert result.requestedIds == {"5"}


def test_resolve_honorsCancellation():
    cancelEvent = asyncio.Event()
    cancelEvent.set()
    with pytest.raises(OperationCancelledError):
        resolveFromCatalog(_catalog({"1"}, {}), ["1"], cancelEvent)


def test_buildCatalog_readsItemJsonAcrossDuplicateFolders(workshop):
    workshop.add("100", dependencies=["200"])
    workshop.add("_OFF_100", dependencies=["300", "100"])
    workshop.add("_OFF_200")
    workshop.add("300", itemJson={"dependenciesids": [400]})
    workshop.add("not-a-package", dependencies=["1"])
    (workshop.root / "500").mkdir()
    (workshop.root / "500" / "item.json").write_text("{broken", encoding="utf-8")

    catalog = buildCatalog(workshop.root)
    assert catalog.knownIds == {"100", "200", "300", "500"}
    assert catalog.dependenciesOf("100") == {"200", "300"}
    assert catalog.dependenciesOf("300") == {"400"}
    assert catalog.dependenciesOf("500") == frozenset()


@pytest.mark.asyncio
async def test_dependencyResolver_resolvesFromDisk(workshop):
    workshop.add("_OFF_100", dependencies=["200"])
    workshop.add("_OFF_200", dependencies=["300"])
    workshop.add("300")
    result = await DependencyResolver().resolve(workshop.root, ["100"])
    assert result.enabledIds == {"100", "200", "300"}
    assert result.autoEnabledIds == ("200", "300")
    assert result.missingIds == ()


@pytest.mark.asyncio
async def test_dependencyResolver_missingRootIsEmptyUniverse(tmp_path):
    result = await DependencyResolver().resolve(tmp_path / "nope", ["1"])
    assert result.enabledIds == {"1"}
    assert result.missingIds == ()

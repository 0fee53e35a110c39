# tests/modswitch/profiles/test_profile_store.py
from __future__ import annotations

import pytest
from pydantic import ValidationError

from modswitch.profiles.store import ModProfile, ProfileStore, profileFileName



def test_profileFileName_stripsInvalidCharacters():
    assert profileFileName("Carrier: Night/Ops?") == "Carrier NightOps.json"
    assert profileFileName('<>:"/\\|?*') == "Profile.json"
    assert profileFileName("  spaced.  ") == "spaced.json"


def test_modProfile_rejectsBlankNameAndNormalizesIds():
    with pytest.raises(ValidationError):
        ModProfile(name="   ")
    profile = ModProfile.fromEnabledIds("Vanilla+", ["300", " 100 ", "junk", 100])
    assert profile.enabledMods == ["100", "300"]


def test_store_saveListGetDelete(tmp_path):
    store = ProfileStore(tmp_path / "profiles")
    assert store.listProfiles() == []

    store.save(ModProfile(name="beta", enabledMods=["2"]))
    path = store.save(ModProfile(name="Alpha", enabledMods=["1"], notes="first"))
    assert path.name == "Alpha.json"

    assert [profile.name for profile in store.listProfiles()] == ["Alpha", "beta"]
    fetched = store.get("ALPHA")
    assert fetched is not None
    assert fetched.notes == "first"
    assert store.get("gamma") is None

    assert store.delete("beta") is True
    assert store.delete("beta") is False
    assert [profile.name for profile in store.listProfiles()] == ["Alpha"]


def test_store_saveOverwritesSameName(tmp_path):
    store = ProfileStore(tmp_path)
    store.save(ModProfile(name="Main", enabledMods=["1"]))
    store.save(ModProfile(name="Main", enabledMods=["1", "2"]))
    assert [profile.enabledMods for profile in store.listProfiles()] == [["1", "2"]]


def test_store_skipsUnreadableFiles(tmp_path):
    store = ProfileStore(tmp_path)
    store.save(ModProfile(name="Good"))
    (tmp_path / "broken.json").write_text("{nope", encoding="utf-8")
    (tmp_path / "nameless.json").write_text('{"enabledMods": []}', encoding="utf-8")
    assert [profile.name for profile in store.listProfiles()] == ["Good"]

# modswitch/app/paths.py
from __future__ import annotations
import logging
import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path

from modswitch.app.context import PROCESS_REGISTRY

logger = logging.getLogger(__name__)

__all__ = [
    "AppPaths",
    "resolveAppHome",
    "registerAppPaths",
    "defaultSteamRoots",
    "detectWorkshopRoots",
]

APP_DIR_NAME = "ModSwitch"
HOME_ENV_VAR = "MODSWITCH_HOME"

# "path"		"D:\\SteamLibrary"
_VDF_PATH_RE = re.compile(r'"path"\s+"(?P<path>.+?)"')



@dataclass(frozen=True, slots=True)
class AppPaths:
    """Per-user data directories. Nothing is created until ensure()."""
    home: Path

    @property
    def profilesDir(self) -> Path:
        return self.home / "profiles"

    @property
    def backupsDir(self) -> Path:
        return self.home / "backups"

    @property
    def logsDir(self) -> Path:
        return self.home / "logs"

    @property
    def configDir(self) -> Path:
        return self.home / "config"

    def ensure(self) -> "AppPaths":
        for directory in (self.profilesDir, self.backupsDir, self.logsDir, self.configDir):
            directory.mkdir(parents=True, exist_ok=True)
        return self



def resolveAppHome(override: str | Path | None = None) -> Path:
    """
    Picks the app home directory:
      1. explicit override (CLI --home)
      2. $MODSWITCH_HOME
      3. %LOCALAPPDATA%/ModSwitch on Windows
      4. $XDG_DATA_HOME/modswitch (default ~/.local/share/modswitch)
    """
    if override:
        return Path(override).expanduser()
    fromEnv = os.environ.get(HOME_ENV_VAR)
    if fromEnv:
        return Path(fromEnv).expanduser()
    if sys.platform == "win32":
        localAppData = os.environ.get("LOCALAPPDATA")
        if localAppData:
            return Path(localAppData) / APP_DIR_NAME
    xdgData = os.environ.get("XDG_DATA_HOME")
    base = Path(xdgData) if xdgData else Path.home() / ".local" / "share"
    return base / APP_DIR_NAME.lower()



def registerAppPaths(paths: AppPaths) -> AppPaths:
    PROCESS_REGISTRY.register("app.paths", paths, overwrite=True)
    return paths



# ------------------------------------------------------------------ #
# Steam locations
# ------------------------------------------------------------------ #

def defaultSteamRoots() -> list[Path]:
    """Conventional Steam install directories for the current platform (existence not checked)."""
    if sys.platform == "win32":
        roots = []
        for envName in ("ProgramFiles(x86)", "ProgramFiles"):
            base = os.environ.get(envName)
            if base:
                roots.append(Path(base) / "Steam")
        return roots or [Path("C:/Program Files (x86)/Steam"), Path("C:/Program Files/Steam")]
    home = Path.home()
    if sys.platform == "darwin":
        return [home / "Library" / "Application Support" / "Steam"]
    return [
        home / ".steam" / "steam",
        home / ".local" / "share" / "Steam",
        home / ".var" / "app" / "com.valvesoftware.Steam" / ".local" / "share" / "Steam",
    ]



def _parseLibraryFolders(text: str) -> list[Path]:
    out: list[Path] = []
    for match in _VDF_PATH_RE.finditer(text):
        raw = match.group("path").replace("\\\\", "\\")
        if raw.strip():
            out.append(Path(raw))
    return out



def detectWorkshopRoots(appId: str, steamRoots: list[Path] | None = None) -> list[Path]:
    """
    Finds existing `steamapps/workshop/content/<appId>` directories across all
    Steam libraries listed in each root's `steamapps/libraryfolders.vdf`.
    The Steam root itself counts as a library. Order is stable, duplicates removed.
    """
    libraries: list[Path] = []
    for steamRoot in steamRoots if steamRoots is not None else defaultSteamRoots():
        vdf = steamRoot / "steamapps" / "libraryfolders.vdf"
        if not vdf.is_file():
            continue
        libraries.append(steamRoot)
        try:
            libraries.extend(_parseLibraryFolders(vdf.read_text(encoding="utf-8", errors="replace")))
        except OSError as err:
            logger.warning("Cannot read '%s': %s", vdf, err)
    
    found: list[Path] = []
    seen: set[str] = set()
    for library in libraries:
        candidate = library / "steamapps" / "workshop" / "content" / appId
        key = os.path.normcase(str(candidate))
        if key in seen or not candidate.is_dir():
            continue
        seen.add(key)
        found.append(candidate)
    return found

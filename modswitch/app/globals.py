# modswitch/app/globals.py
from __future__ import annotations
from typing import Any, cast, TYPE_CHECKING

from modswitch.app.context import PROCESS_REGISTRY
from modswitch.core.dictpath import getByPath
from modswitch.core.errors import ReactorScramError
from modswitch.core.tracing import getTracer as _getCoreTracer

if TYPE_CHECKING:
    from modswitch.app.paths import AppPaths
    from modswitch.config.service import ConfigService
    from modswitch.core.tracing import Tracer



def getConfigService() -> ConfigService:
    cfg = PROCESS_REGISTRY.get("config.service")
    if cfg is None:
        raise ReactorScramError(
            "ConfigService is None.\n"
            "⚠️ CONFIG SERVICE MISSING ⚠️\n"
            "Every folder is both enabled and disabled until someone reads the config.\n"
            "Please call initConfig() before touching the workshop."
        )
    return cast("ConfigService", cfg)



def getAppPaths() -> AppPaths:
    paths = PROCESS_REGISTRY.get("app.paths")
    if paths is None:
        raise ReactorScramError(
            "AppPaths is None.\n"
            "⚠️ APP HOME MISSING ⚠️\n"
            "Profiles, snapshots and logs have nowhere to live.\n"
            "Register AppPaths (modswitch.app.paths.registerAppPaths) first."
        )
    return cast("AppPaths", paths)



def getTracer() -> Tracer:
    """
    Global access point for the Tracer singleton.
    
    Prefer using this instead of importing modswitch.core.tracing directly,
    so future changes to tracer wiring stay localized.
    """
    return cast("Tracer", _getCoreTracer())



def config(path: str, default: Any = None) -> Any:
    """
    Read a dotted path from the merged global configuration.

    Returns `default` when the path is not found.
    
    Example:
      value = config("engine.retry.renameBackoffMs") # returns 120
      value = config("non.existing.path", 300)       # returns 300
    """
    store = getConfigService().globalStore
    val = getByPath(store.snapshot()["values"], path)
    return default if val is None else val



def configBool(path: str, default: bool = False) -> bool:
    """
    Read a boolean from the merged global configuration.
    """
    val = config(path, None)
    if isinstance(val, bool):
        return val
    if val is None:
        return default
    return bool(val)

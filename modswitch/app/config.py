# modswitch/app/config.py
from __future__ import annotations
import logging
from pathlib import Path

from modswitch.app.context import PROCESS_REGISTRY
from modswitch.config.service import ConfigService
from modswitch.config.store import ConfigStore

logger = logging.getLogger(__name__)

__all__ = ["initConfig", "resetConfig", "getGlobalConfig"]

# ------------------------------------------------------------------ #
# Module singletons
# ------------------------------------------------------------------ #

_CONFIG_SERVICE: ConfigService | None = None

# ------------------------------------------------------------------ #
# Core initialization
# ------------------------------------------------------------------ #

def initConfig(configDir: Path | None = None) -> ConfigService:
    """
    Initialize config subsystem (idempotent).

    The first call decides where the user config file lives; later calls
    return the already registered service.
    """
    global _CONFIG_SERVICE
    if _CONFIG_SERVICE is not None:
        return _CONFIG_SERVICE
    _CONFIG_SERVICE = ConfigService.bootstrap(configDir)
    PROCESS_REGISTRY.register("config.service", _CONFIG_SERVICE, overwrite=True)
    PROCESS_REGISTRY.register("config.global", _CONFIG_SERVICE.globalStore, overwrite=True)
    logger.debug("Config initialized (global store ready)")
    return _CONFIG_SERVICE



def resetConfig() -> None:
    """Drops the registered service so the next initConfig() bootstraps again."""
    global _CONFIG_SERVICE
    _CONFIG_SERVICE = None
    PROCESS_REGISTRY.unregister("config.service")
    PROCESS_REGISTRY.unregister("config.global")



def getGlobalConfig() -> ConfigStore:
    """
    Returns the global ConfigStore, bootstrapping an ephemeral one if needed.
    """
    return initConfig().globalStore

# modswitch/config/service.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path

from modswitch.config.providers import DictProvider, FileProvider, OverrideProvider
from modswitch.config.schema import GLOBAL_DEFAULTS, compileGlobalValidator
from modswitch.config.store import ConfigStore
from modswitch.config.types import ConfigProvider, ConfigTarget

logger = logging.getLogger(__name__)

__all__ = ["ConfigService", "USER_CONFIG_FILE"]

USER_CONFIG_FILE = "global.json5"



@dataclass
class ConfigService:
    globalStore: ConfigStore
    overrides: OverrideProvider
    userFile: FileProvider | None = None

    @classmethod
    def bootstrap(cls, configDir: Path | None = None) -> "ConfigService":
        """
        Builds the global store:
            shipped defaults → <configDir>/global.json5 → in-memory overrides
        
        Without configDir there is no user file layer (tests, ephemeral runs).
        """
        defaults = DictProvider(data=GLOBAL_DEFAULTS)
        overrides = OverrideProvider()
        providers: list[ConfigProvider] = [defaults]
        roles: dict[ConfigTarget, ConfigProvider] = {"global": defaults, "runtime": overrides}

        userFile: FileProvider | None = None
        if configDir is not None:
            try:
                configDir.mkdir(parents=True, exist_ok=True)
            except OSError:
                # FileProvider will surface the error on save
                logger.exception("Failed to create config directory at '%s'", configDir)
            userFile = FileProvider(configDir / USER_CONFIG_FILE)
            providers.append(userFile)
            roles["save"] = userFile
        providers.append(overrides)
        
        globalStore = ConfigStore(
            namespace="config:global",
            validator=compileGlobalValidator(),
            providers=providers,
            roles=roles,
        )
        # A hand-edited user file can be invalid; surface it at boot
        globalStore.validate()
        logger.debug("Config bootstrapped (user file: '%s')", userFile.path if userFile else None)
        return cls(globalStore=globalStore, overrides=overrides, userFile=userFile)

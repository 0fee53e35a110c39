# modswitch/config/store.py
from __future__ import annotations
import logging
from collections.abc import Mapping
from typing import Any, Callable

from modswitch.core.utils import deepMerge
from .types import ChangeListener, ConfigProvider, ConfigTarget

logger = logging.getLogger(__name__)

__all__ = ["ConfigStore"]



class ConfigStore:
    """
    Layered settings, lowest precedence first.

    Reads take the first non-None value from the top layer down. Writes go to
    the layer registered under a role ("global", "save" or "runtime"), and the
    merged document is validated afterwards; a rejected write is rolled back
    before the validator's exception propagates.
    """

    def __init__(
        self,
        *,
        namespace: str,
        validator: Callable[[Any], Any] | None,
        providers: list[ConfigProvider],
        roles: Mapping[ConfigTarget, ConfigProvider] | None = None,
    ):
        self.namespace = namespace
        self._validator = validator
        self._providers = list(providers)
        self._roles: dict[str, ConfigProvider] = dict(roles or {})
        self._listeners: list[ChangeListener] = []
        for role, provider in self._roles.items():
            if not any(provider is layer for layer in self._providers):
                raise ValueError(f"{namespace}: provider for role '{role}' is not one of the layers")

    def _merged(self) -> dict[str, Any]:
        merged: dict[str, Any] = {}
        for provider in self._providers:
            merged = deepMerge(merged, provider.to_dict())
        return merged

    def validate(self) -> None:
        """Validates the effective document; raises the validator's error."""
        if self._validator is not None:
            self._validator(self._merged())

    # ----- Reads -----

    def get(self, key: str) -> Any | None:
        for provider in reversed(self._providers):
            value = provider.get(key)
            if value is not None:
                return value
        return None

    def snapshot(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "values": self._merged(),
            "layers": [type(provider).__name__ for provider in self._providers],
        }

    # ----- Writes -----

    def set(self, key: str, value: Any, *, target: ConfigTarget = "runtime", actor: str = "system") -> None:
        provider = self._roles.get(target)
        if provider is None:
            raise KeyError(f"No provider mapped for target '{target}' in {self.namespace}")

        before = self.get(key)
        previousInLayer = provider.get(key)
        provider.set(key, value)
        try:
            self.validate()
        except Exception:
            provider.set(key, previousInLayer)
            raise

        after = self.get(key)
        if before == after:
            return
        context = {"namespace": self.namespace, "actor": actor, "target": target}
        for listener in list(self._listeners):
            try:
                listener(key, before, after, context)
            except Exception:
                logger.debug("Config listener failed for '%s'", key, exc_info=True)

    def subscribe(self, fn: ChangeListener) -> Callable[[], None]:
        self._listeners.append(fn)

        def unsubscribe() -> None:
            if fn in self._listeners:
                self._listeners.remove(fn)
        return unsubscribe

    def saveAll(self) -> None:
        for provider in self._providers:
            provider.save()

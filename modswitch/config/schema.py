# modswitch/config/schema.py
from __future__ import annotations
from typing import Any, Callable, Final, cast

import fastjsonschema

__all__ = ["GLOBAL_DEFAULTS", "GLOBAL_SCHEMA", "compileGlobalValidator"]

ValidatorFn = Callable[[Any], Any]



# Shipped defaults for the global config namespace.
GLOBAL_DEFAULTS: Final[dict[str, Any]] = {
    "workshop": {
        "path": "",
        "appId": "3018410",
    },
    "engine": {
        "retry": {
            "maxAttempts": 4,
            "renameBackoffMs": 120,
            "deleteBackoffMs": 150,
        },
    },
    "preview": {
        "debounceMs": 200,
    },
    "watcher": {
        "debounceMs": 500,
        "pollMs": 1000,
    },
    "subPacks": {
        "hostId": "3265798414",
        "extension": ".cwb",
        "registryFile": "loaditems.json",
    },
    "cloudMirror": {
        "enabled": True,
        "appId": "3018410",
        "fileName": "Load on Start",
        "steamRoots": [],
    },
    "snapshots": {
        "enabled": True,
    },
    "debug": {
        "devModeEnabled": False,
        "logFileEnabled": True,
        "suppressRecurringMessages": {
            "enabled": False,
            "windowSeconds": 60,
            "maxPerWindow": 5,
            "summaryLevel": "INFO",
        },
    },
}



_POSITIVE_INT = {"type": "integer", "minimum": 1}
_NON_NEGATIVE_INT = {"type": "integer", "minimum": 0}
_NUMERIC_ID = {"type": "string", "pattern": "^[0-9]+$"}



GLOBAL_SCHEMA: Final[dict[str, Any]] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": "modswitch global config",
    "type": "object",
    "properties": {
        "workshop": {
            "type": "object",
            "properties": {
                "path": {"type": "string"},
                "appId": _NUMERIC_ID,
            },
        },
        "engine": {
            "type": "object",
            "properties": {
                "retry": {
                    "type": "object",
                    "properties": {
                        "maxAttempts": _POSITIVE_INT,
                        "renameBackoffMs": _NON_NEGATIVE_INT,
                        "deleteBackoffMs": _NON_NEGATIVE_INT,
                    },
                },
            },
        },
        "preview": {
            "type": "object",
            "properties": {
                "debounceMs": _NON_NEGATIVE_INT,
            },
        },
        "watcher": {
            "type": "object",
            "properties": {
                "debounceMs": _NON_NEGATIVE_INT,
                "pollMs": {"type": "integer", "minimum": 50},
            },
        },
        "subPacks": {
            "type": "object",
            "properties": {
                "hostId": _NUMERIC_ID,
                "extension": {"type": "string", "pattern": "^\\.[A-Za-z0-9]+$"},
                "registryFile": {"type": "string", "minLength": 1},
            },
        },
        "cloudMirror": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
                "appId": _NUMERIC_ID,
                "fileName": {"type": "string", "minLength": 1},
                "steamRoots": {"type": "array", "items": {"type": "string"}},
            },
        },
        "snapshots": {
            "type": "object",
            "properties": {
                "enabled": {"type": "boolean"},
            },
        },
        "debug": {
            "type": "object",
            "properties": {
                "devModeEnabled": {"type": "boolean"},
                "logFileEnabled": {"type": "boolean"},
                "suppressRecurringMessages": {
                    "type": "object",
                    "properties": {
                        "enabled": {"type": "boolean"},
                        "windowSeconds": _POSITIVE_INT,
                        "maxPerWindow": _POSITIVE_INT,
                        "summaryLevel": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR"]},
                    },
                },
            },
        },
    },
}



def compileGlobalValidator() -> ValidatorFn:
    """
    Compiles GLOBAL_SCHEMA once; the returned callable raises
    fastjsonschema.JsonSchemaValueException for invalid documents.
    """
    # fastjsonschema.compile returns an untyped callable → cast it
    return cast(ValidatorFn, fastjsonschema.compile(GLOBAL_SCHEMA))

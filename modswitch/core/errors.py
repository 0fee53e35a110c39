# modswitch/core/errors.py
from __future__ import annotations

__all__ = [
    "ReactorScramError",
    "ModSwitchError",
    "OperationCancelledError",
    "ProfilePackageError",
]



class ReactorScramError(Exception):
    """Raised when modswitch violates a core invariant and hit the shutdown button."""
    pass



class ModSwitchError(Exception):
    """Base class for recoverable modswitch errors surfaced to callers."""



class OperationCancelledError(ModSwitchError):
    """Raised between iterations when the caller's cancellation signal is set."""



class ProfilePackageError(ModSwitchError, ValueError):
    """
    Structural problem with an imported profile package (bad JSON, unsupported
    schemaVersion, no profiles). Raised before anything is mutated.
    """

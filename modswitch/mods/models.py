# modswitch/mods/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path

__all__ = [
    "Package",
    "DependencyCatalog",
    "ResolutionResult",
    "RenameReport",
    "LegResult",
]



@dataclass(frozen=True, slots=True)
class Package:
    """
    One installed package directory, recomputed at every scan.
    
    `packageId` is the durable key. `folderName` and `enabled` are derived
    from the directory name. `subPacksLoaded` is None unless the package
    ships sub-packages; then it is the host registry's verdict.
    """
    packageId: str
    folderName: str
    path: Path
    enabled: bool
    displayName: str | None = None
    modifiedAt: float = 0.0
    subPacksLoaded: bool | None = None

    @property
    def active(self) -> bool:
        """Installed, folder enabled, and not switched off through the sub-package registry."""
        return self.enabled and self.subPacksLoaded is not False

    @property
    def label(self) -> str:
        return self.displayName or f"Mod {self.packageId}"



@dataclass(frozen=True, slots=True)
class DependencyCatalog:
    """Closed universe of installed ids plus each package's declared requirements."""
    knownIds: frozenset[str]
    dependencies: dict[str, frozenset[str]] = field(default_factory=dict)

    def dependenciesOf(self, packageId: str) -> frozenset[str]:
        return self.dependencies.get(packageId, frozenset())

    def isKnown(self, packageId: str) -> bool:
        return packageId in self.knownIds



@dataclass(frozen=True, slots=True)
class ResolutionResult:
    requestedIds: frozenset[str]
    enabledIds: frozenset[str]
    autoEnabledIds: tuple[str, ...] = ()
    missingIds: tuple[str, ...] = ()



@dataclass(slots=True)
class RenameReport:
    """Counts of what a reconciliation pass did to the directory tree."""
    renamed: int = 0
    removed: int = 0
    failed: int = 0
    messages: list[str] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return self.renamed + self.removed

    def merge(self, other: "RenameReport") -> "RenameReport":
        self.renamed += other.renamed
        self.removed += other.removed
        self.failed += other.failed
        self.messages.extend(other.messages)
        return self



@dataclass(frozen=True, slots=True)
class LegResult:
    """Outcome of a best-effort apply leg (sub-package registry, cloud mirror)."""
    success: bool
    message: str
    changed: int = 0

    @classmethod
    def succeeded(cls, message: str, changed: int = 0) -> "LegResult":
        return cls(True, message, changed)

    @classmethod
    def failed(cls, message: str) -> "LegResult":
        return cls(False, message)

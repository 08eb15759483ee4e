"""Domain models - immutable data classes."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Optional

if TYPE_CHECKING:
    from .protocols import MetadataTool


ACTION_UPDATED = "Updated EXIF from sidecar"
ACTION_WOULD_UPDATE = "Would update EXIF from sidecar"
ACTION_NONE = "No action needed"

ERROR_NO_DATE = "no creation date found in EXIF or sidecar"


class DateSource(Enum):
    """Where a capture timestamp came from."""
    EMBEDDED = "embedded-metadata"
    COMPANION = "companion-file"


@dataclass(frozen=True, slots=True)
class MediaEntry:
    """A media file discovered in the export."""
    path: Path
    name: str
    directory: Path

    @classmethod
    def from_path(cls, path: Path) -> "MediaEntry":
        return cls(path=path, name=path.name, directory=path.parent)

    @property
    def extension(self) -> str:
        return self.path.suffix.lower()


@dataclass(frozen=True, slots=True)
class ResolvedTimestamp:
    """A capture instant and the source it was read from."""
    instant: datetime
    source: DateSource
    tag: Optional[str] = None
    companion: Optional[Path] = None

    def __post_init__(self) -> None:
        if self.instant.tzinfo is None:
            raise ValueError("ResolvedTimestamp requires a timezone-aware instant")


@dataclass(frozen=True, slots=True)
class WorkerSlot:
    """Fixed binding between one worker and its exiftool process."""
    worker_id: int
    handle: "MetadataTool"


@dataclass(frozen=True, slots=True)
class Outcome:
    """Result of processing a single media file."""
    entry: MediaEntry
    success: bool
    action: str = ""
    error: Optional[str] = None
    timestamp: Optional[ResolvedTimestamp] = None
    destination: Optional[Path] = None

    @classmethod
    def failed(cls, entry: MediaEntry, error: str) -> "Outcome":
        return cls(entry=entry, success=False, error=error)


@dataclass(slots=True)
class RunSummary:
    """Aggregated outcomes of a run."""
    total: int = 0
    successful: int = 0
    failed: int = 0
    actions: Counter = field(default_factory=Counter)
    failures: list[Outcome] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def record(self, outcome: Outcome) -> None:
        """Record one outcome."""
        self.total += 1
        if outcome.success:
            self.successful += 1
            self.actions[outcome.action] += 1
        else:
            self.failed += 1
            self.failures.append(outcome)

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[Outcome]) -> "RunSummary":
        summary = cls()
        for outcome in outcomes:
            summary.record(outcome)
        return summary

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def as_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "successful": self.successful,
            "failed": self.failed,
        }

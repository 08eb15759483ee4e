"""Protocol definitions (interfaces) for dependency injection."""
from __future__ import annotations

from abc import abstractmethod
from pathlib import Path
from typing import Optional, Protocol

from .models import RunSummary


class MetadataTool(Protocol):
    """Interface for one metadata conversation partner (an exiftool process).

    Implementations:
    - ExifToolProcess: a persistent ``exiftool -stay_open`` subprocess
    """

    @abstractmethod
    def read_metadata(self, path: Path) -> dict[str, str]:
        """Return the string-valued tags of a file."""
        ...

    @abstractmethod
    def write_metadata(self, path: Path, date_string: str) -> None:
        """Overwrite all date tags of a file in place."""
        ...

    @abstractmethod
    def close(self, timeout: float = 5.0) -> Optional[int]:
        """Shut the tool down, returning its exit code."""
        ...


class ProgressReporter(Protocol):
    """Interface for user-facing progress and messages."""

    def start_phase(self, name: str, total: int) -> None:
        """Start a new processing phase."""
        ...

    def advance_phase(self, amount: int = 1) -> None:
        """Advance the current phase."""
        ...

    def end_phase(self) -> None:
        """End the current phase."""
        ...

    def info(self, message: str) -> None:
        ...

    def warning(self, message: str) -> None:
        ...

    def error(self, message: str) -> None:
        ...

    def debug(self, message: str) -> None:
        ...

    def print_summary(self, summary: RunSummary) -> None:
        """Print the end-of-run summary."""
        ...

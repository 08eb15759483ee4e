"""Configuration dataclasses with validation."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path


EXIFTOOL_COMMAND: tuple[str, ...] = ("exiftool", "-stay_open", "True", "-@", "-")


@dataclass(frozen=True, slots=True)
class MatcherSettings:
    """Tuning for sidecar resolution.

    Injected into the matcher at startup instead of living in module globals.
    """
    # Truncation fallback never shrinks a prefix below this many characters
    min_prefix_length: int = 10
    # Candidate stem length may differ from the media stem by len // ratio
    max_length_ratio: int = 3
    # Exporter naming tokens, tried in this order
    companion_tokens: tuple[str, ...] = (
        ".supplemental-metadata",
        ".supplemental-meta",
        ".su",
        "",
    )
    # Field names a genuine sidecar must contain
    content_markers: tuple[str, ...] = ("photoTakenTime", "timestamp")
    edited_marker: str = "-edited"

    def __post_init__(self) -> None:
        if self.min_prefix_length < 1:
            raise ValueError("min_prefix_length must be at least 1")
        if self.max_length_ratio < 1:
            raise ValueError("max_length_ratio must be at least 1")


@dataclass(slots=True)
class CleanupConfig:
    """Main configuration for a cleanup run.

    All fields are validated on construction.
    This is the only configuration object passed through the system.
    """
    # Required
    source: Path
    output: Path

    # Processing options
    move: bool = False
    dry_run: bool = False

    # Performance
    workers: int = 4

    # External tool
    exiftool_command: tuple[str, ...] = EXIFTOOL_COMMAND
    close_timeout: float = 5.0

    matcher: MatcherSettings = field(default_factory=MatcherSettings)

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not self.source.exists():
            raise ValueError(f"source directory does not exist: {self.source}")

        if not self.source.is_dir():
            raise ValueError(f"source is not a directory: {self.source}")

        if self.workers < 1:
            raise ValueError("Workers must be at least 1")

        if self.close_timeout <= 0:
            raise ValueError("close_timeout must be positive")

        if not self.exiftool_command:
            raise ValueError("exiftool_command must not be empty")

        # Ensure output exists
        if not self.dry_run:
            self.output.mkdir(parents=True, exist_ok=True)

    def as_display(self) -> dict[str, object]:
        """Settings shown in the run header."""
        return {
            "Source": str(self.source),
            "Output": str(self.output),
            "Move files": self.move,
            "Dry run": self.dry_run,
            "Workers": self.workers,
        }

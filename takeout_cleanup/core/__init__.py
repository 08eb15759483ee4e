"""Core domain models, errors and protocols."""
from .protocols import MetadataTool, ProgressReporter
from .models import (
    DateSource,
    MediaEntry,
    ResolvedTimestamp,
    WorkerSlot,
    Outcome,
    RunSummary,
)
from .config import CleanupConfig, MatcherSettings, EXIFTOOL_COMMAND
from .errors import TakeoutCleanupError

__all__ = [
    # Protocols
    "MetadataTool",
    "ProgressReporter",
    # Models
    "DateSource",
    "MediaEntry",
    "ResolvedTimestamp",
    "WorkerSlot",
    "Outcome",
    "RunSummary",
    # Config
    "CleanupConfig",
    "MatcherSettings",
    "EXIFTOOL_COMMAND",
    # Errors
    "TakeoutCleanupError",
]

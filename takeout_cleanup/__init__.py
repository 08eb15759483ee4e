"""Google Photos Takeout cleanup.

Restores capture dates on exported media from their JSON sidecars, using one
persistent exiftool process per worker.
"""

__version__ = "1.0.0"

# Core exports
from .core.config import CleanupConfig, MatcherSettings
from .core.models import MediaEntry, ResolvedTimestamp, DateSource, Outcome, RunSummary, WorkerSlot
from .core.errors import TakeoutCleanupError

# Engine exports
from .engines.sidecar import SidecarMatcher, find_sidecar
from .engines.dates import parse_sidecar_date, timestamp_from_tags
from .engines.exiftool import ExifToolProcess

# Service exports
from .services.exiftool_pool import ExifToolPool
from .services.dispatcher import TaskDispatcher
from .services.scanner import MediaScanner
from .services.organizer import MediaOrganizer

# Logging exports
from .logging.rich_logger import RichProgressReporter

__all__ = [
    # Core
    "CleanupConfig",
    "MatcherSettings",
    "MediaEntry",
    "ResolvedTimestamp",
    "DateSource",
    "Outcome",
    "RunSummary",
    "WorkerSlot",
    "TakeoutCleanupError",
    # Engines
    "SidecarMatcher",
    "find_sidecar",
    "parse_sidecar_date",
    "timestamp_from_tags",
    "ExifToolProcess",
    # Services
    "ExifToolPool",
    "TaskDispatcher",
    "MediaScanner",
    "MediaOrganizer",
    # Logging
    "RichProgressReporter",
]

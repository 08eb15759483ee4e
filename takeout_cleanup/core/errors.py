"""Exception hierarchy.

Per-file errors are caught by the dispatcher and turned into failed outcomes.
Pool errors abort the run.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional


class TakeoutCleanupError(Exception):
    """Base exception for all takeout cleanup errors."""
    pass


class DateParseError(TakeoutCleanupError):
    """Raised when an embedded date string matches none of the known layouts."""

    def __init__(self, value: str):
        super().__init__(f"unable to parse date: {value}")
        self.value = value


class SidecarParseError(TakeoutCleanupError):
    """Raised when a sidecar cannot be read or carries no usable timestamp."""

    def __init__(self, path: Path, reason: str):
        super().__init__(f"{path.name}: {reason}")
        self.path = path
        self.reason = reason


class ExifToolError(TakeoutCleanupError):
    """Base class for exiftool subprocess failures."""
    pass


class ExifToolStartError(ExifToolError):
    """Raised when the exiftool process cannot be started."""
    pass


class ExifToolProtocolError(ExifToolError):
    """Raised when a request/response exchange with exiftool breaks down."""
    pass


class ExifToolCommandError(ExifToolError):
    """Raised when exiftool reports an error or warning for a write command."""

    def __init__(self, line: str, path: Optional[Path] = None):
        super().__init__(f"exiftool error: {line}")
        self.line = line
        self.path = path


class PoolStartError(TakeoutCleanupError):
    """Raised when the exiftool pool cannot be fully started."""
    pass


class PoolShutdownError(TakeoutCleanupError):
    """Raised after teardown when at least one exiftool process failed to close."""
    pass


class OrganizeError(TakeoutCleanupError):
    """Raised when a file cannot be moved into the organized layout."""
    pass

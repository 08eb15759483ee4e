"""Directory scanning service."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

from ..core.models import MediaEntry

logger = logging.getLogger(__name__)


IMAGE_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".tiff", ".tif", ".bmp",
    ".gif", ".webp", ".heic", ".heif",
})

VIDEO_EXTENSIONS = frozenset({
    ".mp4", ".mov", ".avi", ".mkv", ".wmv", ".m4v", ".3gp",
    ".webm", ".flv", ".mts", ".m2ts", ".ts", ".mxf",
})

MEDIA_EXTENSIONS = IMAGE_EXTENSIONS | VIDEO_EXTENSIONS


def is_media(path: Path) -> bool:
    return path.suffix.lower() in MEDIA_EXTENSIONS


class MediaScanner:
    """Scans a Takeout export for media files.

    Yields MediaEntry objects in a stable order (sorted per directory).
    """

    def __init__(self, follow_symlinks: bool = False):
        """Initialize the scanner.

        Args:
            follow_symlinks: Whether to follow symbolic links.
        """
        self._follow_symlinks = follow_symlinks

    def scan(self, root: Path, recursive: bool = True) -> Iterator[MediaEntry]:
        """Scan ``root`` and yield a MediaEntry per media file."""
        yield from self._scan_directory(root, recursive)

    def _scan_directory(self, directory: Path, recursive: bool) -> Iterator[MediaEntry]:
        try:
            entries = sorted(directory.iterdir())
        except PermissionError:
            logger.warning("Permission denied: %s", directory)
            return

        subdirectories = []
        for entry in entries:
            if entry.is_symlink() and not self._follow_symlinks:
                continue

            if entry.is_file():
                if is_media(entry):
                    yield MediaEntry.from_path(entry)
            elif entry.is_dir() and recursive:
                subdirectories.append(entry)

        for subdirectory in subdirectories:
            yield from self._scan_directory(subdirectory, recursive)

    def collect(self, root: Path, recursive: bool = True) -> list[MediaEntry]:
        """Scan ``root`` into a list."""
        return list(self.scan(root, recursive))

    def count(self, root: Path, recursive: bool = True) -> int:
        """Count media files under ``root`` without keeping them."""
        return sum(1 for _ in self.scan(root, recursive))

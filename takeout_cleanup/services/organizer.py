"""Organizer - moves fixed files into a dated layout and links albums.

Layout::

    OUTPUT/ALL_PHOTOS/YYYY/MM/DD/<name>
    OUTPUT/ALBUMS/<album title>/<name>  -> relative symlink to the above
"""
from __future__ import annotations

import logging
import os
import shutil
import threading
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Optional

from ..core.errors import OrganizeError
from ..core.models import MediaEntry
from ..engines.dates import read_album_title

logger = logging.getLogger(__name__)

ALL_PHOTOS_DIR = "ALL_PHOTOS"
ALBUMS_DIR = "ALBUMS"


def destination_path(
    output_root: Path,
    name: str,
    instant: datetime,
    tz: Optional[tzinfo] = None,
) -> Path:
    """``OUTPUT/ALL_PHOTOS/YYYY/MM/DD/name`` for the instant in ``tz`` (local when None)."""
    local = instant.astimezone(tz)
    return (
        output_root
        / ALL_PHOTOS_DIR
        / f"{local.year:04d}"
        / f"{local.month:02d}"
        / f"{local.day:02d}"
        / name
    )


def sanitize_album(title: str) -> str:
    """Make an album title usable as a single directory name."""
    cleaned = title.replace(os.sep, "_")
    if os.altsep:
        cleaned = cleaned.replace(os.altsep, "_")
    cleaned = cleaned.strip().strip(".")
    return cleaned or "untitled"


def album_link_path(output_root: Path, album: str, name: str) -> Path:
    """``OUTPUT/ALBUMS/<album>/name``."""
    return output_root / ALBUMS_DIR / sanitize_album(album) / name


class MediaOrganizer:
    """Moves files into the dated layout and creates album symlinks."""

    def __init__(
        self,
        output_root: Path,
        dry_run: bool = False,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize the organizer.

        Args:
            output_root: Root directory for output.
            dry_run: If True, only describe what would happen.
            tz: Zone used to pick the dated folder (local when None).
        """
        self._output_root = output_root
        self._dry_run = dry_run
        self._tz = tz
        # Choosing a free name and moving into it must not race
        self._move_lock = threading.Lock()

    def organize(self, entry: MediaEntry, instant: datetime) -> tuple[str, Path]:
        """Move a file and link its album.

        Returns:
            (action text, destination path)

        Raises:
            OrganizeError: If the move fails. Symlink problems are reported
                in the action text instead.
        """
        target = destination_path(self._output_root, entry.name, instant, self._tz)

        if self._dry_run:
            actions = [f"Would move to: {target}"]
        else:
            target = self._move(entry.path, target)
            actions = [f"Moved to: {target}"]

        album = read_album_title(entry.directory)
        if album:
            link = album_link_path(self._output_root, album, target.name)
            if self._dry_run:
                actions.append(f"Would create album symlink: {link}")
            else:
                try:
                    create_album_symlink(target, link)
                    actions.append(f"Album symlink created: {link}")
                except OSError as e:
                    logger.warning("Symlink for %s failed: %s", target, e)
                    actions.append(f"Symlink error: {e}")

        return " | ".join(actions), target

    def _move(self, source: Path, target: Path) -> Path:
        with self._move_lock:
            target = find_unique_path(target)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.move(str(source), str(target))
            except OSError as e:
                raise OrganizeError(f"failed to move file: {e}") from e
        return target


def find_unique_path(target: Path) -> Path:
    """Return ``target`` or the first free ``stem_N.ext`` next to it."""
    if not target.exists():
        return target
    for counter in range(1, 1000):
        candidate = target.with_name(f"{target.stem}_{counter}{target.suffix}")
        if not candidate.exists():
            return candidate
    raise OrganizeError(f"no free file name for {target}")


def create_album_symlink(target: Path, link: Path) -> None:
    """Create a relative symlink at ``link`` pointing to ``target``.

    An existing link is replaced.
    """
    link.parent.mkdir(parents=True, exist_ok=True)
    relative = os.path.relpath(target, link.parent)
    if link.is_symlink() or link.exists():
        link.unlink()
    link.symlink_to(relative)

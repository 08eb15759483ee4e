"""Capture timestamp extraction from exiftool tags and Takeout sidecars."""
from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Any, Mapping, Optional

from ..core.errors import DateParseError, SidecarParseError
from ..core.models import DateSource, ResolvedTimestamp

logger = logging.getLogger(__name__)


# Date tags in order of trust: capture tags, then generic creation, then container
EXIF_DATE_TAGS: tuple[str, ...] = (
    "DateTimeOriginal",
    "CreationDate",
    "CreateDate",
    "MediaCreateDate",
    "DateTimeCreated",
)

EXIF_DATE_FORMATS: tuple[str, ...] = (
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S",
)

# Layout exiftool is asked to use for -dateFormat and for writing
EXIF_WRITE_FORMAT = "%Y:%m:%d %H:%M:%S"

ALBUM_METADATA_FILE = "metadata.json"

_EPOCH_SECONDS = re.compile(r"^-?\d+$")


def parse_exif_date(value: str) -> datetime:
    """Parse an exiftool date string.

    Naive results are taken as UTC.

    Raises:
        DateParseError: If no known layout fits.
    """
    text = value.strip()
    for fmt in EXIF_DATE_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    raise DateParseError(value)


def timestamp_from_tags(
    tags: Mapping[str, str],
    tag_names: tuple[str, ...] = EXIF_DATE_TAGS,
) -> Optional[ResolvedTimestamp]:
    """Return the first tag in priority order whose value parses.

    Unparseable values (e.g. ``0000:00:00 00:00:00``) fall through to the
    next tag.
    """
    for tag in tag_names:
        value = tags.get(tag)
        if not value:
            continue
        try:
            instant = parse_exif_date(value)
        except DateParseError:
            logger.debug("Ignoring unparseable %s=%r", tag, value)
            continue
        return ResolvedTimestamp(instant=instant, source=DateSource.EMBEDDED, tag=tag)
    return None


def load_sidecar(path: Path) -> dict[str, Any]:
    """Read a sidecar as a JSON object.

    Raises:
        SidecarParseError: If the file is unreadable or not a JSON object.
    """
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except OSError as e:
        raise SidecarParseError(path, f"cannot read sidecar: {e}") from e
    except json.JSONDecodeError as e:
        raise SidecarParseError(path, f"invalid JSON: {e}") from e
    except UnicodeDecodeError as e:
        raise SidecarParseError(path, f"invalid encoding: {e}") from e

    if not isinstance(data, dict):
        raise SidecarParseError(path, "sidecar is not a JSON object")
    return data


def sidecar_timestamp(data: Mapping[str, Any], path: Path) -> datetime:
    """Extract ``photoTakenTime.timestamp`` from parsed sidecar data.

    Raises:
        SidecarParseError: If the field is missing or not integer epoch seconds.
    """
    taken = data.get("photoTakenTime")
    if not isinstance(taken, dict) or "timestamp" not in taken:
        raise SidecarParseError(path, "missing photoTakenTime.timestamp")

    raw = taken["timestamp"]
    if not isinstance(raw, str) or not _EPOCH_SECONDS.match(raw.strip()):
        raise SidecarParseError(path, f"invalid timestamp: {raw!r}")

    try:
        return datetime.fromtimestamp(int(raw.strip()), tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise SidecarParseError(path, f"timestamp out of range: {raw!r}") from e


def parse_sidecar_date(path: Path) -> ResolvedTimestamp:
    """Parse the capture instant recorded in a Takeout sidecar."""
    instant = sidecar_timestamp(load_sidecar(path), path)
    return ResolvedTimestamp(
        instant=instant,
        source=DateSource.COMPANION,
        tag="photoTakenTime",
        companion=path,
    )


def format_exif_date(instant: datetime, tz: Optional[tzinfo] = None) -> str:
    """Render an instant for exiftool in ``tz`` (local time when None)."""
    return instant.astimezone(tz).strftime(EXIF_WRITE_FORMAT)


def read_album_title(directory: Path) -> Optional[str]:
    """Return the album title from a directory's ``metadata.json``, if any."""
    path = directory / ALBUM_METADATA_FILE
    if not path.is_file():
        return None
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    title = data.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    return None

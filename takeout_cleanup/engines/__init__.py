"""Engines - sidecar matching, date extraction and the exiftool process."""
from .sidecar import SidecarMatcher, find_sidecar, is_takeout_sidecar
from .dates import parse_exif_date, parse_sidecar_date, timestamp_from_tags
from .exiftool import ExifToolProcess

__all__ = [
    "SidecarMatcher",
    "find_sidecar",
    "is_takeout_sidecar",
    "parse_exif_date",
    "parse_sidecar_date",
    "timestamp_from_tags",
    "ExifToolProcess",
]

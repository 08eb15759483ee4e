"""Service layer - pool management, dispatch and file operations."""
from .exiftool_pool import ExifToolPool
from .dispatcher import TaskDispatcher
from .scanner import MediaScanner
from .organizer import MediaOrganizer

__all__ = [
    "ExifToolPool",
    "TaskDispatcher",
    "MediaScanner",
    "MediaOrganizer",
]

"""ExifTool pool - one persistent exiftool process per worker.

Each worker is bound to its own process for the whole run, so no two
workers ever share a conversation and no global exiftool lock is needed.
"""
from __future__ import annotations

import logging
import shutil
from typing import Callable, Optional, Sequence

from ..core.config import EXIFTOOL_COMMAND
from ..core.errors import ExifToolError, PoolShutdownError, PoolStartError
from ..core.models import WorkerSlot
from ..core.protocols import MetadataTool
from ..engines.exiftool import ExifToolProcess

logger = logging.getLogger(__name__)

HandleFactory = Callable[[Sequence[str]], MetadataTool]


class ExifToolPool:
    """Fixed set of exiftool processes, one per worker slot.

    Usage:
        with ExifToolPool.start(4) as pool:
            handle = pool.slot_for(0).handle
            tags = handle.read_metadata(path)
    """

    def __init__(self, slots: Sequence[WorkerSlot]):
        self._slots = tuple(slots)
        self._closed = False

    @classmethod
    def start(
        cls,
        worker_count: int,
        command: Sequence[str] = EXIFTOOL_COMMAND,
        factory: Optional[HandleFactory] = None,
    ) -> "ExifToolPool":
        """Start ``worker_count`` processes eagerly.

        If any process fails to start, the ones already started are closed
        and no pool is returned.

        Raises:
            PoolStartError: If the executable is missing or a process fails.
        """
        if worker_count < 1:
            raise ValueError("worker_count must be at least 1")

        if factory is None:
            if shutil.which(command[0]) is None:
                raise PoolStartError(f"{command[0]} not found in PATH")
            factory = ExifToolProcess.start

        started: list[WorkerSlot] = []
        for worker_id in range(worker_count):
            try:
                handle = factory(command)
            except (ExifToolError, OSError) as e:
                logger.error("Failed to start exiftool process %d: %s", worker_id, e)
                cls(started).close_all(raise_errors=False)
                raise PoolStartError(
                    f"failed to start exiftool process {worker_id}: {e}"
                ) from e
            started.append(WorkerSlot(worker_id=worker_id, handle=handle))

        logger.debug("Started %d exiftool processes", worker_count)
        return cls(started)

    @property
    def slots(self) -> tuple[WorkerSlot, ...]:
        return self._slots

    def __len__(self) -> int:
        return len(self._slots)

    def slot_for(self, worker_id: int) -> WorkerSlot:
        """Return the slot bound to ``worker_id`` for the run."""
        if not 0 <= worker_id < len(self._slots):
            raise ValueError(f"no slot for worker {worker_id}")
        return self._slots[worker_id]

    def close_all(self, timeout: float = 5.0, raise_errors: bool = True) -> None:
        """Close every process, even when some fail.

        Each failure is logged; the first one is raised after all processes
        have been closed.

        Raises:
            PoolShutdownError: If any process failed to close.
        """
        if self._closed:
            return
        self._closed = True

        first_error: Optional[Exception] = None
        for slot in self._slots:
            try:
                slot.handle.close(timeout=timeout)
            except (ExifToolError, OSError) as e:
                logger.warning("Error closing exiftool process %d: %s", slot.worker_id, e)
                if first_error is None:
                    first_error = e

        if first_error is not None and raise_errors:
            raise PoolShutdownError(f"failed to close exiftool pool: {first_error}") from first_error

    def __enter__(self) -> "ExifToolPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close_all(raise_errors=exc_type is None)

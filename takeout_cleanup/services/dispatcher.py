"""Task dispatcher - fans media files out to the exiftool worker pool.

A fixed number of worker threads pull entries from one bounded job queue.
Worker ``i`` talks only to ``pool.slot_for(i)`` for its whole lifetime.
Every entry produces exactly one Outcome on the outcome queue.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import tzinfo
from typing import Optional, Sequence

from ..core.config import CleanupConfig
from ..core.errors import ExifToolError, OrganizeError, SidecarParseError
from ..core.models import (
    ACTION_NONE,
    ACTION_UPDATED,
    ACTION_WOULD_UPDATE,
    ERROR_NO_DATE,
    MediaEntry,
    Outcome,
    RunSummary,
    WorkerSlot,
)
from ..core.protocols import MetadataTool, ProgressReporter
from ..engines.dates import format_exif_date, parse_sidecar_date, timestamp_from_tags
from ..engines.sidecar import SidecarMatcher
from .exiftool_pool import ExifToolPool
from .organizer import MediaOrganizer

logger = logging.getLogger(__name__)

# Marks the end of the job queue, one per worker
_DONE = None


class TaskDispatcher:
    """Runs the per-file pipeline over a fixed worker pool.

    Per file: read embedded dates -> if missing, resolve the sidecar and
    parse its date -> write the dates back (skipped in dry run) -> optionally
    move the file into the dated layout.
    """

    def __init__(
        self,
        pool: ExifToolPool,
        config: CleanupConfig,
        progress: Optional[ProgressReporter] = None,
        matcher: Optional[SidecarMatcher] = None,
        organizer: Optional[MediaOrganizer] = None,
        tz: Optional[tzinfo] = None,
    ):
        """Initialize the dispatcher.

        Args:
            pool: Started exiftool pool with one slot per worker.
            config: Run configuration.
            progress: Optional progress reporter.
            matcher: Sidecar matcher (built from config when None).
            organizer: File organizer (built from config when move is set).
            tz: Zone used when writing dates back (local when None).
        """
        if len(pool) != config.workers:
            raise ValueError(
                f"pool has {len(pool)} slots but {config.workers} workers are configured"
            )
        self._pool = pool
        self._config = config
        self._progress = progress
        self._matcher = matcher or SidecarMatcher(config.matcher)
        if organizer is None and config.move:
            organizer = MediaOrganizer(config.output, dry_run=config.dry_run, tz=tz)
        self._organizer = organizer
        self._tz = tz

    def run(self, entries: Sequence[MediaEntry]) -> RunSummary:
        """Process every entry and return the aggregated summary."""
        started = time.monotonic()
        total = len(entries)
        jobs: queue.Queue = queue.Queue(maxsize=self._config.workers * 2)
        outcomes: queue.Queue = queue.Queue()

        workers = [
            threading.Thread(
                target=self._worker,
                args=(self._pool.slot_for(worker_id), jobs, outcomes),
                name=f"takeout-worker-{worker_id}",
                daemon=True,
            )
            for worker_id in range(self._config.workers)
        ]
        for worker in workers:
            worker.start()

        feeder = threading.Thread(
            target=self._feed,
            args=(entries, jobs),
            name="takeout-feeder",
            daemon=True,
        )
        feeder.start()

        summary = RunSummary()
        if self._progress:
            self._progress.start_phase("Fixing dates", total)
        try:
            for _ in range(total):
                outcome = outcomes.get()
                summary.record(outcome)
                if not outcome.success and self._progress:
                    self._progress.error(f"{outcome.entry.path} - {outcome.error}")
                if self._progress:
                    self._progress.advance_phase()
        finally:
            if self._progress:
                self._progress.end_phase()

        feeder.join()
        for worker in workers:
            worker.join()

        summary.elapsed_seconds = time.monotonic() - started
        return summary

    def _feed(self, entries: Sequence[MediaEntry], jobs: queue.Queue) -> None:
        for entry in entries:
            jobs.put(entry)
        for _ in range(self._config.workers):
            jobs.put(_DONE)

    def _worker(self, slot: WorkerSlot, jobs: queue.Queue, outcomes: queue.Queue) -> None:
        logger.debug("Worker %d started on %r", slot.worker_id, slot.handle)
        while True:
            entry = jobs.get()
            if entry is _DONE:
                break
            try:
                outcome = self.process_entry(entry, slot.handle)
            except Exception as e:
                # Keep the one-outcome-per-entry invariant even on a bug
                logger.exception("Unexpected error processing %s", entry.path)
                outcome = Outcome.failed(entry, f"unexpected error: {e}")
            outcomes.put(outcome)
        logger.debug("Worker %d finished", slot.worker_id)

    def process_entry(self, entry: MediaEntry, handle: MetadataTool) -> Outcome:
        """Run the pipeline for one file on one exiftool process."""
        try:
            tags = handle.read_metadata(entry.path)
        except ExifToolError as e:
            return Outcome.failed(entry, f"failed to get EXIF data: {e}")

        resolved = timestamp_from_tags(tags)
        action = ""

        if resolved is None:
            sidecar = self._matcher.find(entry)
            if sidecar is None:
                return Outcome.failed(entry, ERROR_NO_DATE)

            try:
                resolved = parse_sidecar_date(sidecar)
            except SidecarParseError as e:
                return Outcome.failed(entry, f"failed to parse sidecar date: {e}")

            if self._config.dry_run:
                action = ACTION_WOULD_UPDATE
            else:
                try:
                    handle.write_metadata(
                        entry.path, format_exif_date(resolved.instant, self._tz)
                    )
                except ExifToolError as e:
                    return Outcome.failed(entry, f"failed to update EXIF date: {e}")
                action = ACTION_UPDATED

        destination = None
        if self._organizer is not None:
            try:
                moved, destination = self._organizer.organize(entry, resolved.instant)
            except OrganizeError as e:
                return Outcome.failed(entry, str(e))
            action = f"{action} | {moved}" if action else moved

        return Outcome(
            entry=entry,
            success=True,
            action=action or ACTION_NONE,
            timestamp=resolved,
            destination=destination,
        )

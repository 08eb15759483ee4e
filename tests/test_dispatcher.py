"""Tests for the task dispatcher."""
import threading
import time
from datetime import timezone
from unittest.mock import MagicMock

import pytest

from takeout_cleanup.core.config import CleanupConfig
from takeout_cleanup.core.errors import ExifToolCommandError
from takeout_cleanup.core.models import (
    ACTION_NONE,
    ACTION_UPDATED,
    ACTION_WOULD_UPDATE,
    ERROR_NO_DATE,
    DateSource,
    MediaEntry,
    WorkerSlot,
)
from takeout_cleanup.services.dispatcher import TaskDispatcher
from takeout_cleanup.services.exiftool_pool import ExifToolPool


class RecordingHandle:
    """In-memory metadata tool that remembers who called it."""

    def __init__(self, tags=None, fail_read=(), fail_write=(), crash_on=(), delay=0.0):
        self.tags = tags or {}
        self.fail_read = fail_read
        self.fail_write = fail_write
        self.crash_on = crash_on
        self.delay = delay
        self.reads = []
        self.writes = []
        self.thread_names = set()

    def read_metadata(self, path):
        self.thread_names.add(threading.current_thread().name)
        self.reads.append(path)
        if self.delay:
            time.sleep(self.delay)
        if path.name in self.crash_on:
            raise RuntimeError("handle bug")
        if path.name in self.fail_read:
            raise ExifToolCommandError("Error: File format error", path)
        return dict(self.tags.get(path.name, {}))

    def write_metadata(self, path, date_string):
        if path.name in self.fail_write:
            raise ExifToolCommandError("Warning: [minor] Bad MakerNotes", path)
        self.writes.append((path, date_string))

    def close(self, timeout=5.0):
        return 0


def make_pool(handles):
    return ExifToolPool([WorkerSlot(worker_id=i, handle=h) for i, h in enumerate(handles)])


def make_config(takeout, tmp_path, **overrides):
    options = {"source": takeout.root, "output": tmp_path / "output", "workers": 1}
    options.update(overrides)
    return CleanupConfig(**options)


def entries_in(takeout):
    return [
        MediaEntry.from_path(path)
        for path in sorted(takeout.root.rglob("*.jpg"))
    ]


class TestProcessEntry:
    """Tests for the per-file pipeline."""

    @pytest.fixture
    def handle(self):
        return RecordingHandle()

    @pytest.fixture
    def dispatcher(self, takeout, tmp_path, handle):
        config = make_config(takeout, tmp_path)
        return TaskDispatcher(make_pool([handle]), config, tz=timezone.utc)

    def test_writes_sidecar_date(self, dispatcher, handle, takeout):
        media = takeout.media("IMG_1.jpg")
        takeout.sidecar("IMG_1.jpg.json")

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert outcome.success
        assert outcome.action == ACTION_UPDATED
        assert outcome.timestamp.source is DateSource.COMPANION
        assert handle.writes == [(media, "2023:01:01 00:00:00")]

    def test_embedded_date_needs_nothing(self, takeout, tmp_path):
        media = takeout.media("IMG_1.jpg")
        takeout.sidecar("IMG_1.jpg.json")
        handle = RecordingHandle(tags={"IMG_1.jpg": {"DateTimeOriginal": "2019:04:04 04:04:04"}})
        dispatcher = TaskDispatcher(make_pool([handle]), make_config(takeout, tmp_path))

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert outcome.success
        assert outcome.action == ACTION_NONE
        assert outcome.timestamp.source is DateSource.EMBEDDED
        assert handle.writes == []

    def test_no_date_anywhere(self, dispatcher, handle, takeout):
        media = takeout.media("IMG_1.jpg")

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert not outcome.success
        assert outcome.error == ERROR_NO_DATE

    def test_bad_sidecar(self, dispatcher, handle, takeout):
        media = takeout.media("IMG_1.jpg")
        takeout.sidecar("IMG_1.jpg.json", timestamp="soon")

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert not outcome.success
        assert outcome.error.startswith("failed to parse sidecar date:")

    def test_read_failure(self, takeout, tmp_path):
        media = takeout.media("IMG_1.jpg")
        handle = RecordingHandle(fail_read=("IMG_1.jpg",))
        dispatcher = TaskDispatcher(make_pool([handle]), make_config(takeout, tmp_path))

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert not outcome.success
        assert outcome.error == "failed to get EXIF data: exiftool error: Error: File format error"

    def test_write_failure(self, takeout, tmp_path):
        media = takeout.media("IMG_1.jpg")
        takeout.sidecar("IMG_1.jpg.json")
        handle = RecordingHandle(fail_write=("IMG_1.jpg",))
        dispatcher = TaskDispatcher(make_pool([handle]), make_config(takeout, tmp_path))

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert not outcome.success
        assert outcome.error.startswith("failed to update EXIF date:")

    def test_dry_run_does_not_write(self, takeout, tmp_path):
        media = takeout.media("IMG_1.jpg")
        takeout.sidecar("IMG_1.jpg.json")
        handle = RecordingHandle()
        config = make_config(takeout, tmp_path, dry_run=True)
        dispatcher = TaskDispatcher(make_pool([handle]), config)

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        assert outcome.success
        assert outcome.action == ACTION_WOULD_UPDATE
        assert handle.writes == []

    def test_move_into_dated_layout(self, takeout, tmp_path):
        media = takeout.media("IMG_1.jpg", folder="Photos from 2023")
        takeout.sidecar("IMG_1.jpg.json", folder="Photos from 2023")
        handle = RecordingHandle()
        config = make_config(takeout, tmp_path, move=True)
        dispatcher = TaskDispatcher(make_pool([handle]), config, tz=timezone.utc)

        outcome = dispatcher.process_entry(MediaEntry.from_path(media), handle)

        expected = tmp_path / "output" / "ALL_PHOTOS" / "2023" / "01" / "01" / "IMG_1.jpg"
        assert outcome.success
        assert outcome.destination == expected
        assert expected.exists()
        assert not media.exists()
        assert outcome.action == f"{ACTION_UPDATED} | Moved to: {expected}"


class TestTaskDispatcherRun:
    """Tests for the worker pool run."""

    def test_pool_size_must_match_workers(self, takeout, tmp_path):
        config = make_config(takeout, tmp_path, workers=2)

        with pytest.raises(ValueError):
            TaskDispatcher(make_pool([RecordingHandle()]), config)

    def test_one_outcome_per_entry(self, takeout, tmp_path):
        for i in range(40):
            takeout.media(f"IMG_{i:03d}.jpg")
            takeout.sidecar(f"IMG_{i:03d}.jpg.json")
        handles = [RecordingHandle() for _ in range(4)]
        config = make_config(takeout, tmp_path, workers=4)
        entries = entries_in(takeout)

        summary = TaskDispatcher(make_pool(handles), config).run(entries)

        assert summary.total == 40
        assert summary.successful == 40
        assert summary.actions[ACTION_UPDATED] == 40
        written = [path for handle in handles for path, _ in handle.writes]
        assert sorted(written) == sorted(entry.path for entry in entries)

    def test_worker_uses_only_its_slot(self, takeout, tmp_path):
        """Worker i only ever talks to the handle in slot i."""
        for i in range(24):
            takeout.media(f"IMG_{i:03d}.jpg")
        handles = [RecordingHandle(delay=0.005) for _ in range(3)]
        config = make_config(takeout, tmp_path, workers=3)

        TaskDispatcher(make_pool(handles), config).run(entries_in(takeout))

        for worker_id, handle in enumerate(handles):
            assert handle.thread_names <= {f"takeout-worker-{worker_id}"}

    def test_mixed_outcomes(self, takeout, tmp_path):
        takeout.media("dated.jpg")
        takeout.media("fixable.jpg")
        takeout.sidecar("fixable.jpg.json")
        takeout.media("orphan.jpg")
        handle = RecordingHandle(tags={"dated.jpg": {"CreateDate": "2020:02:02 02:02:02"}})
        config = make_config(takeout, tmp_path)

        summary = TaskDispatcher(make_pool([handle]), config).run(entries_in(takeout))

        assert summary.as_dict() == {"total": 3, "successful": 2, "failed": 1}
        assert summary.actions == {ACTION_NONE: 1, ACTION_UPDATED: 1}
        assert summary.failures[0].entry.name == "orphan.jpg"
        assert not summary.ok

    def test_unexpected_error_still_yields_outcome(self, takeout, tmp_path):
        takeout.media("bad.jpg")
        takeout.media("good.jpg")
        takeout.sidecar("good.jpg.json")
        handles = [RecordingHandle(crash_on=("bad.jpg",)) for _ in range(2)]
        config = make_config(takeout, tmp_path, workers=2)

        summary = TaskDispatcher(make_pool(handles), config).run(entries_in(takeout))

        assert summary.total == 2
        assert summary.failed == 1
        assert summary.failures[0].error == "unexpected error: handle bug"

    def test_progress_reporting(self, takeout, tmp_path):
        takeout.media("fixable.jpg")
        takeout.sidecar("fixable.jpg.json")
        orphan = takeout.media("orphan.jpg")
        progress = MagicMock()
        config = make_config(takeout, tmp_path)

        TaskDispatcher(make_pool([RecordingHandle()]), config, progress=progress).run(entries_in(takeout))

        progress.start_phase.assert_called_once_with("Fixing dates", 2)
        assert progress.advance_phase.call_count == 2
        progress.end_phase.assert_called_once()
        progress.error.assert_called_once_with(f"{orphan} - {ERROR_NO_DATE}")

    def test_empty_run(self, takeout, tmp_path):
        config = make_config(takeout, tmp_path, workers=2)

        summary = TaskDispatcher(make_pool([RecordingHandle(), RecordingHandle()]), config).run([])

        assert summary.total == 0
        assert summary.ok

    def test_elapsed_time_recorded(self, takeout, tmp_path):
        takeout.media("IMG_1.jpg")
        config = make_config(takeout, tmp_path)

        summary = TaskDispatcher(make_pool([RecordingHandle()]), config).run(entries_in(takeout))

        assert summary.elapsed_seconds > 0

    def test_with_fake_exiftool(self, takeout, tmp_path, fake_exiftool):
        """Full run over real subprocesses."""
        for i in range(6):
            takeout.media(f"IMG_{i}.jpg")
            takeout.sidecar(f"IMG_{i}.jpg.supplemental-metadata.json")
        takeout.media("orphan.jpg")
        config = make_config(takeout, tmp_path, workers=2)

        with ExifToolPool.start(2, fake_exiftool.command()) as pool:
            summary = TaskDispatcher(pool, config, tz=timezone.utc).run(entries_in(takeout))

        assert summary.as_dict() == {"total": 7, "successful": 6, "failed": 1}
        assert len(fake_exiftool.writes()) == 6
        assert all("-AllDates=2023:01:01 00:00:00" in command for command in fake_exiftool.writes())

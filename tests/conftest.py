"""Shared fixtures: Takeout directory builder and the fake exiftool."""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import pytest


FAKE_EXIFTOOL = Path(__file__).parent / "fake_exiftool.py"

# 2023-01-01 00:00:00 UTC
NEW_YEAR_2023 = "1672531200"


class TakeoutBuilder:
    """Writes media files and sidecars the way a Takeout export lays them out."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def folder(self, name: Optional[str] = None) -> Path:
        directory = self.root / name if name else self.root
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def media(self, name: str, folder: Optional[str] = None, content: bytes = b"media") -> Path:
        path = self.folder(folder) / name
        path.write_bytes(content)
        return path

    def sidecar(
        self,
        name: str,
        timestamp: str = NEW_YEAR_2023,
        folder: Optional[str] = None,
        title: str = "photo.jpg",
    ) -> Path:
        data = {
            "title": title,
            "photoTakenTime": {"timestamp": timestamp, "formatted": "Jan 1, 2023"},
        }
        return self.json_file(name, data, folder)

    def json_file(self, name: str, data, folder: Optional[str] = None) -> Path:
        path = self.folder(folder) / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def album(self, folder: str, title: str) -> Path:
        return self.json_file("metadata.json", {"title": title, "description": ""}, folder)


class FakeExifTool:
    """Builds commands that start ``fake_exiftool.py`` and reads back its log."""

    def __init__(self, workdir: Path):
        self.workdir = workdir
        self.log = workdir / "exiftool-commands.jsonl"

    def command(
        self,
        tags: Optional[dict] = None,
        delay: float = 0.0,
        exit_after: Optional[int] = None,
        hang_on_close: bool = False,
    ) -> tuple[str, ...]:
        options = ["--log", str(self.log)]
        if tags is not None:
            tags_file = self.workdir / "exiftool-tags.json"
            tags_file.write_text(json.dumps(tags), encoding="utf-8")
            options += ["--tags", str(tags_file)]
        if delay:
            options += ["--delay", str(delay)]
        if exit_after is not None:
            options += ["--exit-after", str(exit_after)]
        if hang_on_close:
            options.append("--hang-on-close")
        return (sys.executable, str(FAKE_EXIFTOOL), *options, "-stay_open", "True", "-@", "-")

    def commands(self) -> list[list[str]]:
        if not self.log.exists():
            return []
        return [json.loads(line) for line in self.log.read_text(encoding="utf-8").splitlines()]

    def writes(self) -> list[list[str]]:
        return [
            command for command in self.commands()
            if any(arg.startswith("-AllDates=") for arg in command)
        ]


@pytest.fixture
def takeout(tmp_path: Path) -> TakeoutBuilder:
    """Empty Takeout export directory."""
    return TakeoutBuilder(tmp_path / "Takeout")


@pytest.fixture
def fake_exiftool(tmp_path: Path) -> FakeExifTool:
    """Fake exiftool whose commands are logged under tmp_path."""
    workdir = tmp_path / "fake-exiftool"
    workdir.mkdir()
    return FakeExifTool(workdir)

"""Persistent exiftool process speaking the ``-stay_open`` protocol.

Requests are newline-separated arguments terminated by ``-execute``; exiftool
answers with its output followed by a ``{ready}`` line. The protocol has no
correlation id, so a process must never carry two requests at once: every
request runs inside the handle's exclusive conversation.
"""
from __future__ import annotations

import json
import logging
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional, Sequence

from ..core.config import EXIFTOOL_COMMAND
from ..core.errors import (
    ExifToolCommandError,
    ExifToolError,
    ExifToolProtocolError,
    ExifToolStartError,
)
from .dates import EXIF_WRITE_FORMAT

logger = logging.getLogger(__name__)

READY_MARKER = "{ready}"
EXECUTE = "-execute"
PROBLEM_TOKENS = ("Error:", "Warning:")


class Conversation:
    """Exclusive request/response channel to one exiftool process.

    Only obtained through ``ExifToolProcess.conversation()``.
    """

    def __init__(self, stdin: IO[str], stdout: IO[str]):
        self._stdin = stdin
        self._stdout = stdout

    def request(self, args: Sequence[str]) -> list[str]:
        """Send one command and return its output lines up to ``{ready}``."""
        for arg in args:
            if "\n" in arg or "\r" in arg:
                raise ExifToolProtocolError(f"argument contains a line break: {arg!r}")

        payload = "".join(f"{arg}\n" for arg in args) + f"{EXECUTE}\n"
        try:
            self._stdin.write(payload)
            self._stdin.flush()
        except (OSError, ValueError) as e:
            raise ExifToolProtocolError(f"failed to write to exiftool stdin: {e}") from e

        lines: list[str] = []
        while True:
            try:
                line = self._stdout.readline()
            except (OSError, ValueError) as e:
                raise ExifToolProtocolError(f"failed to read exiftool output: {e}") from e
            if not line:
                raise ExifToolProtocolError("exiftool closed its output before {ready}")
            line = line.rstrip("\r\n")
            if line.strip() == READY_MARKER:
                return lines
            lines.append(line)


class ExifToolProcess:
    """One persistent exiftool process.

    Uses exiftool's -stay_open mode, so one process serves every file of a
    worker. Thread-safe: requests are serialized by the conversation lock,
    but the pool gives each worker its own process so the lock is never
    contended during a run.
    """

    def __init__(self, process: subprocess.Popen, command: Sequence[str] = EXIFTOOL_COMMAND):
        self._process = process
        self._command = tuple(command)
        self._lock = threading.Lock()
        self._owner: Optional[int] = None
        self._closed = False

    @classmethod
    def start(cls, command: Sequence[str] = EXIFTOOL_COMMAND) -> "ExifToolProcess":
        """Start an exiftool process.

        Raises:
            ExifToolStartError: If the executable is missing or pipes fail.
        """
        try:
            process = subprocess.Popen(
                list(command),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                # Warnings and errors arrive inside the {ready} framing
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,  # Line buffered
            )
        except (OSError, ValueError) as e:
            raise ExifToolStartError(f"failed to start {command[0]}: {e}") from e

        logger.debug("Started exiftool pid %s", process.pid)
        return cls(process, command)

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def is_alive(self) -> bool:
        """Check if the process is running."""
        return not self._closed and self._process.poll() is None

    @property
    def owner(self) -> Optional[int]:
        """Thread ident currently holding the conversation, if any."""
        return self._owner

    @contextmanager
    def conversation(self) -> Iterator[Conversation]:
        """Hold the exclusive conversation with the process."""
        with self._lock:
            if self._closed:
                raise ExifToolProtocolError("exiftool process is closed")
            if self._process.stdin is None or self._process.stdout is None:
                raise ExifToolProtocolError("exiftool process has no pipes")
            self._owner = threading.get_ident()
            try:
                yield Conversation(self._process.stdin, self._process.stdout)
            finally:
                self._owner = None

    def read_metadata(self, path: Path) -> dict[str, str]:
        """Read the string-valued tags of a file.

        Returns:
            Tag name -> value. Empty when exiftool printed nothing.

        Raises:
            ExifToolProtocolError: On I/O failure or malformed JSON.
            ExifToolCommandError: If exiftool reported an error and no tags.
        """
        with self.conversation() as conversation:
            lines = conversation.request(
                ["-json", "-dateFormat", EXIF_WRITE_FORMAT, str(path)]
            )

        problems = [line for line in lines if line.startswith(PROBLEM_TOKENS)]
        output = "\n".join(
            line for line in lines if not line.startswith(PROBLEM_TOKENS)
        ).strip()

        if not output:
            errors = [line for line in problems if line.startswith("Error:")]
            if errors:
                raise ExifToolCommandError(errors[0], path)
            return {}

        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ExifToolProtocolError(f"failed to parse exiftool JSON: {e}") from e

        if not isinstance(data, list):
            raise ExifToolProtocolError("exiftool JSON is not an array")
        if not data:
            return {}
        if not isinstance(data[0], dict):
            raise ExifToolProtocolError("exiftool JSON array does not hold tag objects")

        return {key: value for key, value in data[0].items() if isinstance(value, str)}

    def write_metadata(self, path: Path, date_string: str) -> None:
        """Overwrite all date tags of a file in place.

        The response is always drained to ``{ready}`` before a problem is
        reported, so the next request starts on a clean boundary.

        Raises:
            ExifToolCommandError: If exiftool printed an error or warning.
            ExifToolProtocolError: On I/O failure.
        """
        with self.conversation() as conversation:
            lines = conversation.request(
                ["-overwrite_original", f"-AllDates={date_string}", str(path)]
            )

        for line in lines:
            if any(token in line for token in PROBLEM_TOKENS):
                raise ExifToolCommandError(line.strip(), path)

    def close(self, timeout: float = 5.0) -> Optional[int]:
        """Shut the process down gracefully, killing it after ``timeout``.

        Safe to call more than once and after the process exited.

        Returns:
            The process exit code.
        """
        # A worker stuck in a request must not block teardown forever
        acquired = self._lock.acquire(timeout=timeout)
        try:
            if self._closed:
                return self._process.returncode
            self._closed = True
            return self._shutdown(timeout, graceful=acquired)
        finally:
            if acquired:
                self._lock.release()

    def _shutdown(self, timeout: float, graceful: bool) -> Optional[int]:
        process = self._process
        stdin = process.stdin

        if graceful and stdin is not None and process.poll() is None:
            try:
                stdin.write("-stay_open\nFalse\n")
                stdin.flush()
            except (BrokenPipeError, OSError, ValueError):
                logger.debug("exiftool pid %s already gone", process.pid)

        if stdin is not None:
            try:
                stdin.close()
            except (BrokenPipeError, OSError):
                pass  # Process already dead

        try:
            returncode = process.wait(timeout=timeout if graceful else 0)
        except subprocess.TimeoutExpired:
            logger.warning(
                "exiftool pid %s did not exit within %.1fs, killing", process.pid, timeout
            )
            process.kill()
            try:
                returncode = process.wait(timeout=timeout)
            except subprocess.TimeoutExpired as e:
                raise ExifToolError(f"exiftool pid {process.pid} survived kill") from e

        if process.stdout is not None:
            process.stdout.close()

        logger.debug("exiftool pid %s exited with %s", process.pid, returncode)
        return returncode

    def __enter__(self) -> "ExifToolProcess":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "alive" if self.is_alive else "closed"
        return f"ExifToolProcess(pid={self.pid}, {state})"

"""Sidecar (companion JSON) resolution for Google Photos Takeout exports.

Takeout writes a JSON file next to every media file, but the exporter caps
file names, so the sidecar of ``IMG_456(1).jpg`` may be any of::

    IMG_456.jpg.supplemental-metadata(1).json
    IMG_456.jpg.supplemental-meta(1).json
    IMG_456.jpg.su(1).json
    IMG_456.jpg(1).json

and long names are cut at an arbitrary character. Resolution runs a fixed,
ordered list of strategies over a set of name variants. Every exact strategy
runs before any fuzzy one, and each structural match is confirmed by looking
at the file content before it is accepted.
"""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from ..core.config import MatcherSettings
from ..core.models import MediaEntry

logger = logging.getLogger(__name__)

JSON_SUFFIX = ".json"

# Duplicate numbering the exporter appends to the media stem: "name(1)"
NUMBERED_STEM = re.compile(r"^(.+)\((\d+)\)$")
NUMBERED_JSON = re.compile(r"\(\d+\)\.json$")


@dataclass(frozen=True, slots=True)
class NameVariant:
    """One interpretation of a media file name.

    ``base`` is the stem used for matching, ``ext`` the media extension
    (with dot, original case) and ``suffix`` the numbering token such as
    ``"(1)"`` which the exporter moves behind the naming token.
    """
    base: str
    ext: str
    suffix: str = ""

    @property
    def bases(self) -> tuple[str, ...]:
        """The literal base plus the base without one trailing underscore."""
        if len(self.base) > 1 and self.base.endswith("_"):
            return (self.base, self.base[:-1])
        return (self.base,)


def name_variants(media_name: str, edited_marker: str = "-edited") -> list[NameVariant]:
    """Build the name variants to try for a media file, in precedence order.

    A trailing ``(N)`` is tried first as duplicate numbering and then as
    literal text. Edited copies (``photo-edited.jpg``) share the sidecar of
    the original, so the unedited name is tried after the file's own name.
    """
    stem, ext = os.path.splitext(media_name)
    stems = [stem]
    if edited_marker and stem.endswith(edited_marker) and len(stem) > len(edited_marker):
        stems.append(stem[: -len(edited_marker)])

    variants: list[NameVariant] = []
    for candidate in stems:
        match = NUMBERED_STEM.match(candidate)
        if match:
            variants.append(NameVariant(match.group(1), ext, f"({match.group(2)})"))
        variants.append(NameVariant(candidate, ext))
    return variants


def is_takeout_sidecar(
    path: Path,
    markers: tuple[str, ...] = MatcherSettings().content_markers,
) -> bool:
    """Check that a JSON file looks like a Takeout photo sidecar.

    This is a containment check on the raw text, not schema validation: it
    rejects album ``metadata.json`` files and other unrelated JSON whose name
    happens to match.
    """
    try:
        content = path.read_text(encoding="utf-8", errors="replace")
    except OSError:
        return False
    return all(marker in content for marker in markers)


def list_directory(directory: Path) -> list[str]:
    """Names of the non-directory entries of ``directory``, sorted."""
    try:
        with os.scandir(directory) as entries:
            return sorted(entry.name for entry in entries if not entry.is_dir())
    except OSError as e:
        logger.warning("Cannot list %s: %s", directory, e)
        return []


Strategy = Callable[[NameVariant, list[str], frozenset[str]], Iterator[str]]


class SidecarMatcher:
    """Resolves the sidecar of a media file from its directory listing.

    Strategies, in precedence order:

    1. ``exact``: literal names built from the known naming tokens.
    2. ``truncated-token``: ``<name>.<anything>.json``, the naming token cut
       at any character (``.supplementa``, ``.suppl``, ``.s``).
    3. ``progressive-prefix``: arbitrary truncation inside the stem itself.

    Resolution is a pure function of the listing and file contents.
    """

    def __init__(self, settings: Optional[MatcherSettings] = None):
        self._settings = settings or MatcherSettings()
        self.strategies: tuple[tuple[str, Strategy], ...] = (
            ("exact", self._exact),
            ("truncated-token", self._truncated_token),
            ("progressive-prefix", self._progressive_prefix),
        )

    @property
    def settings(self) -> MatcherSettings:
        return self._settings

    def candidates(
        self,
        media_name: str,
        listing: Iterable[str],
    ) -> Iterator[tuple[str, str]]:
        """Yield ``(strategy, entry_name)`` structural matches in precedence order.

        Each entry name is yielded at most once.
        """
        names = sorted(listing)
        present = frozenset(names)
        variants = name_variants(media_name, self._settings.edited_marker)
        seen: set[str] = set()

        for strategy_name, strategy in self.strategies:
            for variant in variants:
                for name in strategy(variant, names, present):
                    if name == media_name or name in seen:
                        continue
                    seen.add(name)
                    yield strategy_name, name

    def resolve(
        self,
        media_name: str,
        listing: Iterable[str],
        directory: Path,
    ) -> Optional[Path]:
        """Return the sidecar path for ``media_name``, or None."""
        for strategy_name, name in self.candidates(media_name, listing):
            path = directory / name
            if is_takeout_sidecar(path, self._settings.content_markers):
                logger.debug("%s -> %s (%s)", media_name, name, strategy_name)
                return path
            logger.debug("%s: rejected %s, not a photo sidecar", media_name, name)
        return None

    def find(self, entry: MediaEntry) -> Optional[Path]:
        """Resolve the sidecar of a media entry from its own directory."""
        return self.resolve(entry.name, list_directory(entry.directory), entry.directory)

    # --- Strategies ---

    def _exact(
        self,
        variant: NameVariant,
        names: list[str],
        present: frozenset[str],
    ) -> Iterator[str]:
        for base in variant.bases:
            for token in self._settings.companion_tokens:
                name = f"{base}{variant.ext}{token}{variant.suffix}{JSON_SUFFIX}"
                if name in present:
                    yield name
        # Extension dropped entirely: "name_.jpg" -> "name.json"
        for base in variant.bases:
            name = f"{base}{variant.suffix}{JSON_SUFFIX}"
            if name in present:
                yield name

    def _truncated_token(
        self,
        variant: NameVariant,
        names: list[str],
        present: frozenset[str],
    ) -> Iterator[str]:
        for base in variant.bases:
            pattern = re.compile(
                rf"^{re.escape(base + variant.ext)}(?:\..*)?"
                rf"{re.escape(variant.suffix)}\.json$"
            )
            for name in names:
                if not pattern.match(name):
                    continue
                if not variant.suffix and NUMBERED_JSON.search(name):
                    continue
                yield name

    def _progressive_prefix(
        self,
        variant: NameVariant,
        names: list[str],
        present: frozenset[str],
    ) -> Iterator[str]:
        base = variant.base
        if not base:
            return
        floor = min(self._settings.min_prefix_length, len(base))
        max_diff = len(base) // self._settings.max_length_ratio
        json_names = [name for name in names if name.endswith(JSON_SUFFIX)]

        for length in range(len(base), floor - 1, -1):
            prefix = base[:length]
            for name in json_names:
                if not name.startswith(prefix):
                    continue
                stem = self._candidate_stem(name, variant)
                if stem is None:
                    continue
                if self._length_acceptable(stem, variant, max_diff):
                    yield name

    @staticmethod
    def _candidate_stem(name: str, variant: NameVariant) -> Optional[str]:
        """Entry name without ``.json`` and numbering, or None if numbering disagrees."""
        stem = name[: -len(JSON_SUFFIX)]
        if variant.suffix:
            if not stem.endswith(variant.suffix):
                return None
            return stem[: -len(variant.suffix)]
        if NUMBERED_JSON.search(name):
            return None
        return stem

    @staticmethod
    def _length_acceptable(stem: str, variant: NameVariant, max_diff: int) -> bool:
        # Truncation only shortens, except that the cut may fall inside
        # the extension ("name.j.json", "name..json").
        diff = len(variant.base) - len(stem)
        if abs(diff) > max_diff:
            return False
        return diff >= 0 or (variant.base + variant.ext).startswith(stem)


_default_matcher = SidecarMatcher()


def find_sidecar(entry: MediaEntry) -> Optional[Path]:
    """Resolve a sidecar with the default settings."""
    return _default_matcher.find(entry)

"""CLI with subcommands: fix, info."""
from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional

from . import __version__
from .core.config import CleanupConfig
from .core.errors import ExifToolError, PoolShutdownError, PoolStartError, SidecarParseError
from .core.models import MediaEntry
from .logging.rich_logger import QuietProgressReporter, RichProgressReporter, configure_logging


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="takeout-cleanup",
        description="Restore capture dates on Google Photos Takeout exports from their JSON sidecars.",
    )

    # Global options
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # ============ FIX command ============
    fix_parser = subparsers.add_parser(
        "fix",
        help="Write sidecar dates into media files that lack them",
    )
    fix_parser.add_argument(
        "source",
        type=Path,
        help="Path to the Google Photos Takeout root directory",
    )
    fix_parser.add_argument(
        "-o", "--output",
        type=Path,
        required=True,
        help="Output directory for organized files",
    )
    fix_parser.add_argument(
        "--move",
        action="store_true",
        help="Move files into OUTPUT/ALL_PHOTOS/YYYY/MM/DD and link albums",
    )
    fix_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without changing any file",
    )
    fix_parser.add_argument(
        "-w", "-j", "--workers",
        dest="workers",
        type=int,
        default=4,
        help="Number of parallel workers, one exiftool process each (default: 4)",
    )

    # ============ INFO command ============
    info_parser = subparsers.add_parser(
        "info",
        help="Show how the date of a single media file would be resolved",
    )
    info_parser.add_argument(
        "path",
        type=Path,
        help="Media file to inspect",
    )
    info_parser.add_argument(
        "--no-exiftool",
        action="store_true",
        help="Skip reading embedded metadata",
    )

    return parser


def cmd_fix(args: argparse.Namespace, reporter) -> int:
    """Handle the fix command."""
    from .services.dispatcher import TaskDispatcher
    from .services.exiftool_pool import ExifToolPool
    from .services.scanner import MediaScanner

    try:
        config = CleanupConfig(
            source=args.source,
            output=args.output,
            move=args.move,
            dry_run=args.dry_run,
            workers=args.workers,
        )
    except ValueError as e:
        reporter.error(f"Configuration error: {e}")
        return 1

    reporter.print_header(f"Google Photos Takeout Cleanup v{__version__}")
    reporter.print_config(config.as_display())

    reporter.info("Scanning for media files...")
    entries = MediaScanner().collect(config.source)
    reporter.info(f"Found {len(entries)} media files")

    if not entries:
        reporter.info("No media files found to process.")
        return 0

    try:
        pool = ExifToolPool.start(config.workers, config.exiftool_command)
    except PoolStartError as e:
        reporter.error(f"Failed to initialize ExifTool: {e}")
        return 1

    try:
        summary = TaskDispatcher(pool, config, progress=reporter).run(entries)
    finally:
        try:
            pool.close_all(timeout=config.close_timeout)
        except PoolShutdownError as e:
            reporter.warning(str(e))

    reporter.print_summary(summary)
    if summary.ok:
        reporter.success(f"All {summary.total} files processed")
        return 0
    return 1


def cmd_info(args: argparse.Namespace, reporter) -> int:
    """Handle the info command."""
    from .engines.dates import parse_sidecar_date, timestamp_from_tags
    from .engines.sidecar import SidecarMatcher, list_directory
    from .services.exiftool_pool import ExifToolPool

    path = args.path
    if not path.is_file():
        reporter.error(f"Not a file: {path}")
        return 1

    entry = MediaEntry.from_path(path.resolve())
    matcher = SidecarMatcher()
    reporter.print_header(f"File: {entry.name}")

    listing = list_directory(entry.directory)
    for strategy, name in matcher.candidates(entry.name, listing):
        reporter.debug(f"candidate ({strategy}): {name}")

    sidecar = matcher.find(entry)
    if sidecar is None:
        reporter.info("Sidecar: none")
    else:
        reporter.info(f"Sidecar: {sidecar.name}")
        try:
            resolved = parse_sidecar_date(sidecar)
            reporter.info(f"Sidecar date: {resolved.instant.isoformat()}")
        except SidecarParseError as e:
            reporter.warning(f"Sidecar date: {e}")

    if args.no_exiftool:
        return 0

    try:
        pool = ExifToolPool.start(1)
    except PoolStartError as e:
        reporter.warning(f"Embedded date: unavailable ({e})")
        return 0

    try:
        tags = pool.slot_for(0).handle.read_metadata(entry.path)
        embedded = timestamp_from_tags(tags)
        if embedded is None:
            reporter.info("Embedded date: none")
        else:
            reporter.info(f"Embedded date: {embedded.instant.isoformat()} ({embedded.tag})")
    except ExifToolError as e:
        reporter.error(f"Embedded date: {e}")
        return 1
    finally:
        pool.close_all(raise_errors=False)

    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose)

    if args.quiet:
        reporter = QuietProgressReporter()
    else:
        reporter = RichProgressReporter(verbose=args.verbose)

    # No command specified - show help
    if not args.command:
        parser.print_help()
        return 0

    try:
        if args.command == "fix":
            return cmd_fix(args, reporter)
        elif args.command == "info":
            return cmd_info(args, reporter)
        else:
            reporter.error(f"Unknown command: {args.command}")
            return 1

    except KeyboardInterrupt:
        # Clean exit on Ctrl+C - no stack trace
        return 130


if __name__ == "__main__":
    raise SystemExit(main())

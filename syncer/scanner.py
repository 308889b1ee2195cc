"""
Discovers snapshot directories inside an archive root.

A snapshot directory is any immediate subdirectory whose name parses under the
configured date format. Anything else in the archive root (diff artifacts,
change lists, unrelated folders) is ignored.
"""
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from .exceptions import ArchiveIOError, ConfigError

logger = logging.getLogger(__name__)


def parse_timestamp(name: str, date_format: str) -> Optional[datetime]:
    """Parses a directory name as a snapshot timestamp, or returns None."""
    try:
        return datetime.strptime(name, date_format)
    except ValueError:
        return None


def check_date_format(date_format: str, operation="check date format", path=None) -> str:
    """
    Validates a snapshot naming pattern.

    Two instants one second apart must format differently, since a run names
    both its baseline and its new snapshot from the clock. A formatted name
    must also parse back, or the snapshot would never be found again.

    Raises:
        ConfigError: If the pattern cannot name snapshots.
    """
    if not isinstance(date_format, str) or not date_format:
        raise ConfigError("'date_format' must be a non-empty string", operation=operation, path=path)

    reference = datetime(2001, 2, 3, 4, 5, 6, tzinfo=timezone.utc)
    try:
        name = reference.strftime(date_format)
        next_name = (reference + timedelta(seconds=1)).strftime(date_format)
    except ValueError as e:
        raise ConfigError(f"invalid date_format {date_format!r}: {e}", operation=operation, path=path) from e

    if name == next_name:
        raise ConfigError(
            f"date_format {date_format!r} must include seconds, snapshots are named one second apart",
            operation=operation, path=path
        )
    if parse_timestamp(name, date_format) is None:
        raise ConfigError(f"date_format {date_format!r} produces names that do not parse back",
                          operation=operation, path=path)
    return date_format


def scan_snapshots(archive_dir, date_format: str, log=None, warn: bool = True) -> Iterator[Tuple[datetime, Path]]:
    """
    Yields ``(timestamp, path)`` for each snapshot directory in ``archive_dir``.

    Args:
        archive_dir: The archive root.
        date_format: strptime pattern snapshot names are formatted with.
        log: Logger handle; defaults to this module's logger.
        warn: Whether to log a warning for subdirectories that are not snapshots.
    """
    log = log or logger
    archive_dir = Path(archive_dir)
    try:
        entries = list(os.scandir(archive_dir))
    except OSError as e:
        raise ArchiveIOError(f"unable to read local archive: {e}", operation="read archive", path=archive_dir) from e

    for entry in entries:
        try:
            if not entry.is_dir():
                continue
        except OSError:
            # Removed while scanning
            continue

        timestamp = parse_timestamp(entry.name, date_format)
        if timestamp is None:
            if warn:
                log.warning(f"Strange folder, only timestamped names are expected: {entry.path}")
            continue
        yield timestamp, Path(entry.path)


def list_snapshots(archive_dir, date_format: str, log=None) -> List[Tuple[datetime, Path]]:
    """Returns all snapshots, oldest first."""
    return sorted(scan_snapshots(archive_dir, date_format, log=log), key=lambda item: item[0])


def latest_snapshot(archive_dir, date_format: str, log=None) -> Optional[Tuple[datetime, Path]]:
    """Returns the newest ``(timestamp, path)`` pair, or None for an archive without snapshots."""
    latest = None
    for timestamp, path in scan_snapshots(archive_dir, date_format, log=log):
        if latest is None or timestamp > latest[0]:
            latest = (timestamp, path)
    return latest


def latest_timestamp(archive_dir, date_format: str, log=None) -> Optional[datetime]:
    """Returns the newest snapshot timestamp, or None."""
    latest = latest_snapshot(archive_dir, date_format, log=log)
    return latest[0] if latest else None


def count_snapshots(archive_dir, date_format: str, log=None) -> int:
    """Counts the subdirectories whose name is a snapshot timestamp."""
    return sum(1 for _ in scan_snapshots(archive_dir, date_format, log=log, warn=False))

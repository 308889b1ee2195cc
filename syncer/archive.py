"""
Snapshot lifecycle: one archive run of a working directory into an archive root.

Each run compares the working directory with the latest snapshot. When
something changed, the latest snapshot is either renamed to the run
timestamp (fast-forward, when it is from today and is not the only
snapshot) or copied under the run timestamp (fork). The rsync batch is
then applied to that directory and the change list is saved next to it
as ``<run timestamp>.changes``.

Runs are not locked against each other and nothing is rolled back on
failure.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .changes import ChangeRecord, changes_path, save_change_record
from .exceptions import ArchiveIOError, AuditRecordError
from .rsync import LocalToLocal, apply_diff, extract_diff
from .scanner import check_date_format, count_snapshots, latest_snapshot
from .utils import CpMvMode, fs_copy, fs_move, remove_trailing_slash

logger = logging.getLogger(__name__)

DIFF_SUFFIX = ".diff"


class RunState(str, Enum):
    NO_PRIOR_SNAPSHOT = "no_prior_snapshot"
    FAST_FORWARDABLE = "fast_forwardable"
    MUST_FORK = "must_fork"


def local_now():
    return datetime.now().astimezone()


def is_fast_forwardable(latest: datetime, now: datetime, snapshot_count: int) -> bool:
    """
    Whether the latest snapshot may be renamed instead of copied.

    It must be from today, and it must not be the only snapshot, since
    renaming the sole snapshot would leave no historical copy behind.
    """
    if snapshot_count <= 1:
        return False
    return latest.date() == now.date()


@dataclass
class ArchiveResult:
    run_name: str
    state: RunState
    diff_path: Path
    snapshot_path: Optional[Path] = None
    changes: Optional[ChangeRecord] = None
    changes_path: Optional[Path] = None

    @property
    def changed(self):
        return self.changes is not None

    def to_dict(self):
        result = {
            "run": self.run_name,
            "state": self.state.value,
            "changed": self.changed,
            "diff": str(self.diff_path),
            "snapshot": str(self.snapshot_path) if self.snapshot_path else None,
            "changes_file": str(self.changes_path) if self.changes_path else None,
        }
        if self.changes is not None:
            result["summary"] = self.changes.summary()
        return result


class SnapshotManager:
    """Runs archive passes of one working directory into one archive root."""

    def __init__(self, working_dir, archive_dir, exclude_file, date_format: str,
                 clock: Callable[[], datetime] = None, log: logging.Logger = None):
        """
        Args:
            working_dir: The directory being archived.
            archive_dir: The archive root holding snapshot directories.
            exclude_file: rsync exclude file applied on extract and apply.
            date_format: strftime pattern for snapshot directory names.
            clock: Returns the current time; defaults to the local aware clock.
            log: Logger handle for this run.
        """
        self.working_dir = remove_trailing_slash(working_dir)
        self.archive_dir = remove_trailing_slash(archive_dir)
        self.exclude_file = exclude_file
        self.date_format = check_date_format(date_format)
        self.clock = clock or local_now
        self.log = log or logger

    def _name(self, moment: datetime) -> str:
        return moment.strftime(self.date_format)

    def _create_baseline(self, now: datetime) -> Path:
        # One second earlier so the snapshot forked later in this run gets a different name
        path = self.archive_dir / self._name(now - timedelta(seconds=1))
        self.log.info("Empty archive folder, creating first empty snapshot")
        try:
            path.mkdir()
        except OSError as e:
            raise ArchiveIOError(f"unable to create snapshot folder: {e}", operation="create baseline", path=path) from e
        return path

    def resolve_latest(self, now: datetime):
        """
        Returns ``(latest snapshot path, RunState)`` for a run starting at ``now``.

        Creates an empty baseline snapshot when the archive has none.
        """
        latest = latest_snapshot(self.archive_dir, self.date_format, log=self.log)
        self.log.info(f"Latest archived: {latest[0] if latest else None}")

        if latest is None:
            return self._create_baseline(now), RunState.NO_PRIOR_SNAPSHOT

        latest_time, latest_path = latest
        count = count_snapshots(self.archive_dir, self.date_format, log=self.log)
        if is_fast_forwardable(latest_time, now, count):
            return latest_path, RunState.FAST_FORWARDABLE
        return latest_path, RunState.MUST_FORK

    def run(self) -> ArchiveResult:
        """Performs one archive run."""
        now = self.clock()
        run_name = self._name(now)

        latest_path, state = self.resolve_latest(now)
        diff_path = self.archive_dir / f"{run_name}{DIFF_SUFFIX}"
        result = ArchiveResult(run_name=run_name, state=state, diff_path=diff_path)

        direction = LocalToLocal(source=self.working_dir, destination=latest_path)
        changes = extract_diff(direction, diff_path, self.exclude_file, log=self.log)
        if changes is None:
            self.log.info("No changes")
            return result

        self.log.debug(f"Changed raw: {changes}")
        changes.extract_moves(latest_path, self.working_dir, log=self.log)
        self.log.debug(f"After move detection: {changes}")

        if state is RunState.FAST_FORWARDABLE:
            self.log.info("Fast-forwarding by renaming latest archived folder")
            snapshot_path = fs_move(latest_path, self.archive_dir, CpMvMode.folder_rename(run_name), log=self.log)
        else:
            self.log.info("Copying latest archived folder")
            snapshot_path = fs_copy(latest_path, self.archive_dir, CpMvMode.folder_rename(run_name), log=self.log)
        result.snapshot_path = snapshot_path

        self.log.info("Applying diff file")
        apply_diff(snapshot_path, diff_path, self.exclude_file, log=self.log)

        self.log.info("Saving change list")
        record_path = changes_path(self.archive_dir, run_name)
        try:
            save_change_record(changes, record_path)
        except AuditRecordError as e:
            e.snapshot_path = snapshot_path
            raise
        result.changes = changes
        result.changes_path = record_path
        return result


def archive_local(working_dir, archive_dir, exclude_file, date_format, log=None) -> ArchiveResult:
    """Runs a single archive pass with the local clock."""
    return SnapshotManager(working_dir, archive_dir, exclude_file, date_format, log=log).run()

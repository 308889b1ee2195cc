"""
rsync wrapper: extracts a tree delta into a batch file and applies it elsewhere.

Extract runs::

    rsync -avz --8-bit-output --exclude-from <excludes> --only-write-batch=<diff> --delete \
        --out-format=changed-file:%o;%n [-e 'ssh -p <port>'] <source>/ <destination>

Apply runs::

    rsync -avz --8-bit-output --exclude-from <excludes> --read-batch=<diff> --delete \
        --out-format=changed-file:%o;%n <destination>
"""
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from .changes import OUT_FORMAT, ChangeRecord
from .exceptions import ConfigError, ExternalToolError
from .utils import add_trailing_slash, find_executable, remove_trailing_slash, run_command

logger = logging.getLogger(__name__)

RSYNC = "rsync"
FAILURE_SENTINEL = "no batched update"
# --8-bit-output keeps non-ASCII names as raw bytes instead of \#ooo escapes
BASE_FLAGS = ["-avz", "--8-bit-output"]


@dataclass(frozen=True)
class SshPath:
    """A path on a host reached over ssh."""
    server: str
    username: str
    path: str
    port: int = 22

    def to_args_header(self):
        return ["-e", f"ssh -p {self.port}"]

    def to_args_path(self, trailing_slash=False):
        path = add_trailing_slash(self.path) if trailing_slash else str(remove_trailing_slash(self.path))
        return f"{self.username}@{self.server}:{path}"


@dataclass(frozen=True)
class LocalToLocal:
    source: Path
    destination: Path

    def to_args(self):
        return [add_trailing_slash(self.source), str(remove_trailing_slash(self.destination))]


@dataclass(frozen=True)
class LocalToRemote:
    source: Path
    destination: SshPath

    def to_args(self):
        return (self.destination.to_args_header()
                + [add_trailing_slash(self.source), self.destination.to_args_path(trailing_slash=False)])


@dataclass(frozen=True)
class RemoteToLocal:
    source: SshPath
    destination: Path

    def to_args(self):
        return (self.source.to_args_header()
                + [self.source.to_args_path(trailing_slash=True), str(remove_trailing_slash(self.destination))])


RsyncDirection = Union[LocalToLocal, LocalToRemote, RemoteToLocal]


def _common_args(exclude_file):
    """Flags shared by both passes. Both must see the same exclude file."""
    if exclude_file is None:
        raise ConfigError("an exclude file is required", operation="build rsync command")
    return list(BASE_FLAGS) + ["--exclude-from", str(exclude_file)]


def _check_sentinel(result, operation, command, log):
    output = f"{result.stdout or ''}\n{result.stderr or ''}"
    if FAILURE_SENTINEL in output.lower():
        log.error(f"rsync failed ({FAILURE_SENTINEL})")
        raise ExternalToolError(
            "rsync failure: no batched update",
            operation=operation,
            command=command,
            returncode=result.returncode,
            stderr=result.stderr
        )


def build_extract_command(rsync_path, direction: RsyncDirection, diff_file, exclude_file):
    return ([rsync_path] + _common_args(exclude_file)
            + [f"--only-write-batch={diff_file}", "--delete", f"--out-format={OUT_FORMAT}"]
            + direction.to_args())


def build_apply_command(rsync_path, destination_dir, diff_file, exclude_file):
    return ([rsync_path] + _common_args(exclude_file)
            + [f"--read-batch={diff_file}", "--delete", f"--out-format={OUT_FORMAT}",
               str(remove_trailing_slash(destination_dir))])


def extract_diff(direction: RsyncDirection, diff_file, exclude_file, log=None):
    """
    Writes a batch file describing how to turn the destination into the source.

    The destination is not modified.

    Args:
        direction: Source and destination endpoints.
        diff_file: Where rsync writes the batch.
        exclude_file: rsync exclude file (None for no excludes).
        log: Logger handle; defaults to this module's logger.

    Returns:
        ChangeRecord or None: The parsed change list, None when nothing changed.
    """
    log = log or logger
    operation = "extract diff"
    rsync_path = find_executable(RSYNC, operation=operation)
    command = build_extract_command(rsync_path, direction, diff_file, exclude_file)

    result = run_command(command, operation=operation, log=log)
    _check_sentinel(result, operation, command, log)

    return ChangeRecord.parse(result.stdout or "")


def apply_diff(destination_dir, diff_file, exclude_file, log=None):
    """Applies a batch file written by ``extract_diff`` to a local directory."""
    log = log or logger
    operation = "apply diff"
    rsync_path = find_executable(RSYNC, operation=operation)
    command = build_apply_command(rsync_path, destination_dir, diff_file, exclude_file)

    result = run_command(command, operation=operation, log=log)
    _check_sentinel(result, operation, command, log)

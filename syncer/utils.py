"""
Shared utility functions for syncer: running external commands, trailing-slash
handling, and the copy/move primitives used to fork or fast-forward snapshots.
"""
import logging
import os
import shlex
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .exceptions import ArchiveIOError, ExternalToolError, ExternalToolMissingError

logger = logging.getLogger(__name__)


def find_executable(name, operation=None):
    """
    Locates a binary on PATH.

    Args:
        name (str): The executable name, e.g. 'rsync'.
        operation (str): Description of the operation, used in errors.

    Returns:
        str: Absolute path to the executable.
    """
    path = shutil.which(name)
    if path is None:
        raise ExternalToolMissingError(f"failed to find {name} in PATH", operation=operation, command=[name])
    return path


def run_command(args, cwd=None, operation=None, log=None):
    """
    Runs an external command and logs its output.

    Args:
        args (list): The command and its arguments. The first item must be
            an executable path or a name on PATH.
        cwd (str): The working directory.
        operation (str): Description of the operation, used in errors.
        log (logging.Logger): Logger handle; defaults to this module's logger.

    Returns:
        subprocess.CompletedProcess: The finished process with text stdout/stderr.
    """
    log = log or logger
    args = [str(a) for a in args]
    command_line = shlex.join(args)
    log.debug(f"Running command in '{cwd or os.getcwd()}': {command_line}")

    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            cwd=cwd,
            check=False,  # Handle the exit status manually
            encoding='utf-8',
            errors='surrogateescape'
        )
    except FileNotFoundError as e:
        raise ExternalToolMissingError(f"failed to run {args[0]}: {e}", operation=operation, command=args) from e
    except OSError as e:
        raise ExternalToolError(f"failed to run {args[0]}: {e}", operation=operation, command=args) from e

    if result.stdout and result.stdout.strip():
        log.debug(result.stdout.strip())

    if result.returncode != 0:
        log.error(f"Command failed with exit code {result.returncode}: {command_line}")
        if result.stderr and result.stderr.strip():
            log.error(f"Stderr: {result.stderr.strip()}")
        raise ExternalToolError(
            f"{Path(args[0]).name} exited with an error (exit code {result.returncode})",
            operation=operation,
            command=args,
            returncode=result.returncode,
            stderr=result.stderr
        )

    return result


def add_trailing_slash(path):
    """
    Returns the path as a string ending in exactly one separator.

    rsync copies the contents of a source given this way, not the directory itself.
    """
    text = str(path)
    if text.endswith(os.sep):
        return text
    return text + os.sep


def remove_trailing_slash(path):
    """Returns the path without trailing separators (the filesystem root is kept)."""
    text = str(path)
    stripped = text.rstrip(os.sep)
    return Path(stripped or os.sep)


@dataclass(frozen=True)
class CpMvMode:
    """
    Placement mode for fs_copy and fs_move.

    ``rename_to`` set means "place into the folder under this name",
    otherwise the source keeps its own name.
    """
    is_folder: bool
    rename_to: Optional[str] = None

    @classmethod
    def file(cls):
        return cls(is_folder=False)

    @classmethod
    def file_rename(cls, name):
        return cls(is_folder=False, rename_to=name)

    @classmethod
    def folder(cls):
        return cls(is_folder=True)

    @classmethod
    def folder_rename(cls, name):
        return cls(is_folder=True, rename_to=name)

    def destination(self, src_path, dst_folder):
        """Path the source ends up at inside ``dst_folder``."""
        name = self.rename_to if self.rename_to is not None else Path(src_path).name
        return remove_trailing_slash(dst_folder) / name


def fs_copy(src_path, dst_folder, mode, log=None):
    """
    Copies a file or a directory tree into ``dst_folder``.

    Folder copies preserve metadata and symlinks. An existing destination is
    never overwritten.

    Returns:
        Path: The destination path.
    """
    log = log or logger
    dst_path = mode.destination(src_path, dst_folder)
    log.debug(f"Copying '{src_path}' to '{dst_path}'")

    if dst_path.exists():
        raise ArchiveIOError("destination already exists", operation="copy", path=dst_path)
    try:
        if mode.is_folder:
            shutil.copytree(src_path, dst_path, symlinks=True)
        else:
            shutil.copy2(src_path, dst_path)
    except (OSError, shutil.Error) as e:
        raise ArchiveIOError(f"failed to copy '{src_path}': {e}", operation="copy", path=dst_path) from e
    return dst_path


def fs_move(src_path, dst_folder, mode, log=None):
    """
    Moves (renames) a file or a directory into ``dst_folder``.

    Returns:
        Path: The destination path.
    """
    log = log or logger
    dst_path = mode.destination(src_path, dst_folder)
    log.debug(f"Moving '{src_path}' to '{dst_path}'")

    if dst_path.exists():
        raise ArchiveIOError("destination already exists", operation="rename", path=dst_path)
    try:
        shutil.move(str(src_path), str(dst_path))
    except (OSError, shutil.Error) as e:
        raise ArchiveIOError(f"failed to move '{src_path}': {e}", operation="rename", path=dst_path) from e
    return dst_path

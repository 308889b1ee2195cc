"""
Custom exceptions for syncer.

Every error records the operation that was in progress so that the
top-level caller can report it without re-deriving context.
"""


class SyncerError(Exception):
    """Base exception for all syncer errors."""

    def __init__(self, message: str, operation: str = None, path=None):
        super().__init__(message)
        self.operation = operation
        self.path = path

    def __str__(self):
        message = super().__str__()
        if self.operation:
            message = f"{self.operation}: {message}"
        if self.path is not None:
            message = f"{message} ({self.path})"
        return message


class ConfigError(SyncerError):
    """
    Error in syncer configuration.

    Raised when:
    - Configuration file is missing or cannot be parsed
    - A required key is not set
    """
    pass


class ExternalToolError(SyncerError):
    """
    An external tool (rsync) failed.

    Raised when:
    - The process exits with a non-zero status
    - The output contains the tool's failure sentinel
    """

    def __init__(self, message: str, operation: str = None, command=None,
                 returncode: int = None, stderr: str = None):
        super().__init__(message, operation=operation)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class ExternalToolMissingError(ExternalToolError):
    """The required binary could not be found on PATH."""
    pass


class ArchiveIOError(SyncerError):
    """A filesystem operation (read-dir, stat, mkdir, rename, copy) failed."""
    pass


class AuditRecordError(SyncerError):
    """
    Writing the change list failed.

    This happens after the snapshot was already updated, so the snapshot
    at ``snapshot_path`` is current even though the run reports failure.
    """

    def __init__(self, message: str, operation: str = None, path=None, snapshot_path=None):
        super().__init__(message, operation=operation, path=path)
        self.snapshot_path = snapshot_path

"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import sys
from functools import wraps
from typing import Generator

import click

from .config import setup_logging
from .exceptions import (
    ArchiveIOError, AuditRecordError, ConfigError, ExternalToolError, SyncerError
)

SUCCESS = 0
GENERAL_ERROR = 1
CONFIG_ERROR = 2
TOOL_ERROR = 3
IO_ERROR = 4
AUDIT_ERROR = 5
INTERRUPTED = 130


def get_exit_code_for_exception(error):
    """Maps an exception to the process exit code."""
    if isinstance(error, ConfigError):
        return CONFIG_ERROR
    if isinstance(error, ExternalToolError):
        return TOOL_ERROR
    if isinstance(error, ArchiveIOError):
        return IO_ERROR
    if isinstance(error, AuditRecordError):
        return AUDIT_ERROR
    return GENERAL_ERROR


def error_to_dict(error):
    error_obj = {
        "error": str(error),
        "type": type(error).__name__,
        "exit_code": get_exit_code_for_exception(error),
    }
    if isinstance(error, SyncerError) and error.operation:
        error_obj["operation"] = error.operation
    if isinstance(error, AuditRecordError) and error.snapshot_path is not None:
        # The snapshot is current, only the change list is missing
        error_obj["snapshot"] = str(error.snapshot_path)
        error_obj["snapshot_updated"] = True
    return error_obj


def emit(result):
    """Prints a dict, or each item of a list/generator, as JSON lines on stdout."""
    if result is None:
        return
    if isinstance(result, (Generator, list, tuple)):
        for item in result:
            print(json.dumps(item), flush=True)
    elif isinstance(result, dict):
        print(json.dumps(result), flush=True)
    else:
        print(result, flush=True)


def standard_command(func):
    """
    Decorator that provides standard CLI behavior:
    - A logger handle injected as ``log`` (DEBUG with --verbose)
    - Clean JSON output on stdout, suppressed with --quiet
    - Consistent error reporting and exit codes
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        verbose = kwargs.pop('verbose', False)
        quiet = kwargs.pop('quiet', False)
        log = setup_logging("DEBUG" if verbose else "INFO")
        kwargs['log'] = log

        try:
            result = func(*args, **kwargs)
            if quiet:
                if isinstance(result, Generator):
                    for _ in result:
                        pass
            else:
                emit(result)
            sys.exit(SUCCESS)

        except KeyboardInterrupt:
            log.error("Interrupted by user")
            sys.exit(INTERRUPTED)
        except click.ClickException:
            raise
        except SyncerError as e:
            if isinstance(e, AuditRecordError) and e.snapshot_path is not None:
                log.error(f"Snapshot {e.snapshot_path} was updated but its change list could not be saved: {e}")
            else:
                log.error(str(e))
            if not quiet:
                emit(error_to_dict(e))
            sys.exit(get_exit_code_for_exception(e))
        except Exception as e:
            log.error(f"Command failed: {e}")
            if not quiet:
                emit(error_to_dict(e))
            sys.exit(GENERAL_ERROR)

    return wrapper


common_options = {
    'verbose': click.option('-v', '--verbose', is_flag=True,
                            help='Show debug output, including rsync command lines'),
    'quiet': click.option('-q', '--quiet', is_flag=True,
                          help='Suppress data output, show only logs'),
    'table': click.option('--table/--no-table', default=None,
                          help='Display as formatted table (auto-detected by default)'),
}


def add_common_options(*option_names):
    """
    Decorator to add common options to a command.

    Example:
        @add_common_options('verbose', 'quiet')
        def my_command(verbose, quiet):
            ...
    """
    def decorator(func):
        for name in reversed(option_names):
            if name in common_options:
                func = common_options[name](func)
        return func
    return decorator

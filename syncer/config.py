"""
Configuration and logging setup for syncer.

The configuration file is TOML (or JSON when the file ends in ``.json``)::

    local_working_dir = "~/work"
    local_archive = "/backup/work"
    exclude = ["*.pyc", ".cache/"]      # or a path to an rsync exclude file
    date_format = "%b%d_%Y_%H%M%S%z"
"""
import copy
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path

import toml
from rich.console import Console
from rich.logging import RichHandler

from .exceptions import ConfigError
from .scanner import check_date_format
from .utils import remove_trailing_slash

# Progress and logs go to stderr, data output stays on stdout
console = Console(stderr=True)

LOGGER_NAME = "syncer"

DEFAULT_DATE_FORMAT = "%b%d_%Y_%H%M%S%z"

REQUIRED_KEYS = ("local_working_dir", "local_archive", "exclude")


def setup_logging(level="INFO", log_console=None):
    """
    Build the logger handle used for one invocation.

    The handler is attached to the ``syncer`` logger only, so importing the
    package never reconfigures the root logger.

    Args:
        level (str|int): Logging level name or number.
        log_console (Console): Console to render to (defaults to the shared stderr console).

    Returns:
        logging.Logger: The configured ``syncer`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ConfigError(f"unknown log level {level!r}", operation="configure logging")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(console=log_console or console, rich_tracebacks=True, show_path=False)
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_default_config():
    """Returns the default configuration values."""
    return {
        "date_format": DEFAULT_DATE_FORMAT,
        "log_level": "INFO",
    }


def _read_config_file(config_path):
    try:
        text = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"unable to open config file: {e}", operation="load config", path=config_path) from e

    try:
        if config_path.suffix == ".json":
            return json.loads(text)
        return toml.loads(text)
    except (json.JSONDecodeError, toml.TomlDecodeError) as e:
        raise ConfigError(f"unable to parse config file: {e}", operation="load config", path=config_path) from e


def _resolve_path(value, base_dir):
    path = Path(os.path.expanduser(str(value)))
    if not path.is_absolute():
        path = base_dir / path
    return remove_trailing_slash(path)


def load_config(config_path):
    """
    Loads a configuration file and merges it over the defaults.

    Directory settings are returned as ``Path`` objects without trailing
    slashes. Relative paths are resolved against the config file's directory.

    Args:
        config_path (str|Path): Path to the TOML or JSON config file.

    Returns:
        dict: The merged configuration.
    """
    config_path = Path(os.path.expanduser(str(config_path)))
    data = _read_config_file(config_path)
    if not isinstance(data, dict):
        raise ConfigError("config file must contain a table of settings", operation="load config", path=config_path)

    missing = [key for key in REQUIRED_KEYS if key not in data]
    if missing:
        raise ConfigError(f"missing required settings: {', '.join(missing)}", operation="load config", path=config_path)

    config = copy.deepcopy(get_default_config())
    config.update(data)

    base_dir = config_path.parent
    config["local_working_dir"] = _resolve_path(config["local_working_dir"], base_dir)
    config["local_archive"] = _resolve_path(config["local_archive"], base_dir)

    exclude = config["exclude"]
    if isinstance(exclude, str):
        config["exclude"] = _resolve_path(exclude, base_dir)
    elif isinstance(exclude, list) and all(isinstance(p, str) for p in exclude):
        config["exclude"] = list(exclude)
    else:
        raise ConfigError("'exclude' must be a file path or a list of patterns", operation="load config", path=config_path)

    check_date_format(config["date_format"], operation="load config", path=config_path)

    return config


@contextmanager
def exclude_file(config):
    """
    Yields a path to an rsync exclude file for the configured excludes.

    A list of patterns is written to a temporary file that is removed on exit;
    a configured file path is yielded unchanged.
    """
    exclude = config["exclude"]
    if not isinstance(exclude, list):
        yield Path(exclude)
        return

    with tempfile.TemporaryDirectory(prefix="syncer-") as temp_dir:
        path = Path(temp_dir) / "exclude.txt"
        path.write_text("".join(f"{pattern}\n" for pattern in exclude), encoding="utf-8")
        yield path

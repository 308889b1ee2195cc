#!/usr/bin/env python3
"""
Command line interface for syncer.

    syncer archive CONFIG            # run one archive pass
    syncer snapshots CONFIG          # list snapshot directories
    syncer changes CONFIG SNAPSHOT   # show a saved change list
"""
import logging
import sys

import click

from syncer.archive import SnapshotManager
from syncer.changes import changes_path, load_change_record
from syncer.cli_utils import add_common_options, standard_command
from syncer.config import exclude_file, load_config, setup_logging
from syncer.render import render_changes_table, render_snapshot_table, snapshot_rows
from syncer.scanner import list_snapshots


def _load(config_path, log):
    """Loads the config and applies its log level unless --verbose asked for DEBUG."""
    config = load_config(config_path)
    if log.level > logging.DEBUG:
        log = setup_logging(config["log_level"])
    return config, log


def _use_table(table):
    if table is None:
        return sys.stdout.isatty()
    return table


@click.command(name='archive')
@click.argument('config_path', type=click.Path(dir_okay=False))
@add_common_options('verbose', 'quiet')
@standard_command
def archive_handler(config_path, log):
    """Archive the working directory into a new snapshot.

    \b
    Compares the working directory with the latest snapshot. If anything
    changed, the latest snapshot is renamed (when it is from today and is not
    the only one) or copied to a new timestamped directory, updated with
    rsync, and the change list is saved as <timestamp>.changes.

    Examples:

    \b
        syncer archive ~/.config/syncer/work.toml
        syncer archive work.toml -v        # show rsync command lines
    """
    config, log = _load(config_path, log)
    with exclude_file(config) as excludes:
        manager = SnapshotManager(
            working_dir=config["local_working_dir"],
            archive_dir=config["local_archive"],
            exclude_file=excludes,
            date_format=config["date_format"],
            log=log,
        )
        result = manager.run()
    return result.to_dict()


@click.command(name='snapshots')
@click.argument('config_path', type=click.Path(dir_okay=False))
@add_common_options('table', 'verbose', 'quiet')
@standard_command
def snapshots_handler(config_path, table, log):
    """List snapshot directories, oldest first."""
    config, log = _load(config_path, log)
    archive_dir = config["local_archive"]
    rows = snapshot_rows(list_snapshots(archive_dir, config["date_format"], log=log), archive_dir)
    if _use_table(table):
        render_snapshot_table(rows)
        return None
    return rows


@click.command(name='changes')
@click.argument('config_path', type=click.Path(dir_okay=False))
@click.argument('snapshot')
@add_common_options('table', 'verbose', 'quiet')
@standard_command
def changes_handler(config_path, snapshot, table, log):
    """Show the change list saved for SNAPSHOT (a snapshot directory name)."""
    config, log = _load(config_path, log)
    record = load_change_record(changes_path(config["local_archive"], snapshot))
    if _use_table(table):
        render_changes_table(record)
        return None
    return record.to_dict()


@click.group()
@click.version_option(package_name="syncer")
def cli():
    """Keep a timestamped snapshot history of a directory with rsync."""
    pass


cli.add_command(archive_handler)
cli.add_command(snapshots_handler)
cli.add_command(changes_handler)


def main():
    cli()


if __name__ == "__main__":
    main()

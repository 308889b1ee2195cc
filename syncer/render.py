"""
Output rendering functions for syncer.
Handles formatting snapshots and change lists as rich tables.
"""
from rich.console import Console
from rich.table import Table

from .changes import changes_path

# Data output goes to stdout
console = Console()


def snapshot_rows(snapshots, archive_dir):
    """Converts ``(timestamp, path)`` pairs to dicts, flagging saved change lists."""
    rows = []
    for timestamp, path in snapshots:
        rows.append({
            "name": path.name,
            "timestamp": timestamp.isoformat(),
            "path": str(path),
            "has_changes_file": changes_path(archive_dir, path.name).exists(),
        })
    return rows


def render_snapshot_table(rows, out=None):
    """
    Displays snapshot directories in a table.

    Args:
        rows (list): Dicts as returned by ``snapshot_rows``.
        out (Console): Console to print to.
    """
    out = out or console
    if not rows:
        out.print("[yellow]No snapshots found[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Snapshot", style="cyan")
    table.add_column("Timestamp", style="white")
    table.add_column("Change list", justify="center")

    for row in rows:
        table.add_row(row["name"], row["timestamp"], '✓' if row["has_changes_file"] else '-')

    out.print(table)


def render_changes_table(record, out=None):
    """Displays a change list, one row per entity."""
    out = out or console
    table = Table(title="Changes", show_header=True, header_style="bold magenta")
    table.add_column("Action", style="cyan")
    table.add_column("Type")
    table.add_column("Path", style="white")
    table.add_column("Moved to")

    for entity in record.deleted:
        table.add_row("[red]deleted[/red]", entity.kind.value, entity.path, "")
    for entity, destination in record.moved:
        table.add_row("[blue]moved[/blue]", entity.kind.value, entity.path, destination)
    for entity in record.changed:
        table.add_row("[green]changed[/green]", entity.kind.value, entity.path, "")

    out.print(table)

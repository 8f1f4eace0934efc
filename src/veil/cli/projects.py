"""Project commands: list."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import console, home_option, open_session, veil_errors


def register_project_commands(main: click.Group) -> None:
    """Register the list command."""

    @main.command("list")
    @home_option
    @veil_errors
    def list_cmd(home):
        """List known projects with their secret counts."""
        session = open_session(home)
        if not session.is_initialized():
            console.print("[yellow]Not initialized.[/] Run: veil init")
            return
        projects = session.bundles.list_projects()
        if not projects:
            console.print("  [dim]No projects yet.[/] Add one with: veil set KEY VALUE")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Project", style="cyan")
        table.add_column("Secrets", justify="right")
        table.add_column("Path", style="dim")
        for summary in projects:
            table.add_row(summary.name, str(summary.count), summary.path or "-")
        console.print(table)

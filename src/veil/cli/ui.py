"""Interactive command: ui (also what a bare ``veil`` runs)."""

from __future__ import annotations

from pathlib import Path

import click

from ._common import console, home_option, open_session, veil_errors


def register_ui_commands(main: click.Group) -> None:
    """Register the interactive ui command."""

    @main.command("ui")
    @home_option
    @veil_errors
    def ui(home):
        """Browse and edit secrets interactively."""
        from ..tui import run_tui

        run_tui(open_session(home), console=console, cwd=Path.cwd())

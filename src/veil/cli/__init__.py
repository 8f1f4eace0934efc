"""
Veil CLI -- encrypted per-project secrets from the command line.

Each command group lives in its own module and is registered on the
main Click group via its register function.

Entry point: veil.cli:main
"""

from __future__ import annotations

import logging

import click

from .. import __version__


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="veil")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging to stderr.")
@click.pass_context
def main(ctx, verbose):
    """Veil -- encrypted secrets, one bundle per project, synced across machines.

    Run without a command to open the interactive view.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        ctx.invoke(main.get_command(ctx, "ui"))


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .init_cmd import register_init_commands
from .secret_cmd import register_secret_commands
from .projects import register_project_commands
from .sync_cmd import register_sync_commands
from .ui import register_ui_commands

register_init_commands(main)
register_secret_commands(main)
register_project_commands(main)
register_sync_commands(main)
register_ui_commands(main)

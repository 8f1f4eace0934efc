"""Sync commands: link, sync, status."""

from __future__ import annotations

import click
from rich.panel import Panel

from ._common import console, home_option, open_session, veil_errors
from ..sync.engine import SyncEngine
from ..sync.models import AdoptionDecision

DECISION_STYLE = {
    AdoptionDecision.ADOPTED_NEW: "green",
    AdoptionDecision.ADOPTED_NEWER: "green",
    AdoptionDecision.ADOPTED_LOCAL_CORRUPT: "yellow",
    AdoptionDecision.KEPT_LOCAL: "dim",
    AdoptionDecision.SKIPPED_UNDECRYPTABLE: "red",
    AdoptionDecision.SKIPPED_UNREADABLE: "red",
}


def register_sync_commands(main: click.Group) -> None:
    """Register link, sync and status."""

    @main.command()
    @home_option
    @click.option("--token", default=None, help="GitHub token; stored in the OS keychain.")
    @click.option("--gist", "gist_id", default=None, help="Link to an existing gist id.")
    @click.option("--local", "local_dir", type=click.Path(file_okay=False), default=None,
                  help="Use a directory (USB drive, NAS) instead of a gist.")
    @veil_errors
    def link(home, token, gist_id, local_dir):
        """Create or join the shared remote container."""
        session = open_session(home)
        remote = SyncEngine(session).link(
            token=token,
            container_id=gist_id,
            local_path=local_dir,
            gist=bool(gist_id) and not local_dir,
        )
        console.print(f"\n  [green]Linked[/] {remote.backend.value} container [cyan]{remote.id}[/]")
        if remote.owner:
            console.print(f"  Owner: {remote.owner}")
        console.print(f"  Recipients: [bold]{len(session.config.recipients)}[/]\n")

    @main.command()
    @home_option
    @click.option("--token", default=None, help="GitHub token for this run only.")
    @veil_errors
    def sync(home, token):
        """Pull newer bundles from the remote, then push everything."""
        session = open_session(home)
        report = SyncEngine(session).sync(token=token)

        console.print(f"\n  Synced with [cyan]{report.container_id}[/]")
        for result in report.results:
            style = DECISION_STYLE.get(result.decision, "white")
            console.print(f"    [{style}]{result.decision.value:<22}[/] {result.project}")
        console.print(
            f"  Pushed [bold]{report.pushed}[/] project(s), "
            f"{report.recipients} recipient(s)\n"
        )

    @main.command()
    @home_option
    @veil_errors
    def status(home):
        """Show machine identity and remote linkage."""
        session = open_session(home)
        info = SyncEngine(session).status()
        if not info["initialized"]:
            console.print("[yellow]Not initialized.[/] Run: veil init")
            return

        linked = (
            f"[cyan]{info['container_id']}[/] ({info['backend']})"
            if info["linked"]
            else "[yellow]not linked[/]"
        )
        console.print()
        console.print(
            Panel(
                f"Machine: [cyan]{info['machine_name']}[/] ({info['machine_id']})\n"
                f"Remote: {linked}\n"
                f"Owner: {info['owner'] or '[dim]unknown[/]'}\n"
                f"Location: {info['location'] or '[dim]-[/]'}\n"
                f"Last Sync: {info['last_synced_at'] or '[dim]never[/]'}\n"
                f"Recipients: [bold]{info['recipients']}[/]\n"
                f"Projects: [bold]{info['projects']}[/]",
                title="Veil",
                border_style="magenta",
            )
        )

"""Setup command: init."""

from __future__ import annotations

import click

from ._common import console, home_option, open_session, veil_errors


def register_init_commands(main: click.Group) -> None:
    """Register the init command."""

    @main.command()
    @home_option
    @click.option(
        "--key-storage",
        type=click.Choice(["file", "keychain"]),
        default="file",
        show_default=True,
        help="Where to keep this machine's private key.",
    )
    @click.option("--machine-name", default=None, help="Display name (default: hostname).")
    @click.option("--link", "link_remote", is_flag=True, help="Link the remote container afterwards.")
    @veil_errors
    def init(home, key_storage, machine_name, link_remote):
        """Create this machine's identity.

        Safe to re-run: an initialized home is left as it is.
        """
        session = open_session(home)
        created = session.init(key_storage, machine_name)
        config = session.config
        if created:
            console.print(f"\n  [green]Initialized[/] machine [cyan]{config.machine.id}[/]")
            console.print(f"  Key storage: [bold]{config.key_storage}[/]")
            console.print(f"  Public key:  {config.machine.public_key}\n")
        else:
            console.print(f"  [yellow]Already initialized[/] as machine [cyan]{config.machine.id}[/]")

        if link_remote:
            from ..sync.engine import SyncEngine

            remote = SyncEngine(session).link()
            console.print(f"  [green]Linked[/] {remote.backend.value} container [cyan]{remote.id}[/]")

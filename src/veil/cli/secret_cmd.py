"""Secret commands: set, get, rm, ls, import, export, run."""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from ._common import console, fail, home_option, open_session, project_option, veil_errors
from .._fs import write_private
from ..bundles import get_secret, mask_value, remove_secret, sorted_secrets, upsert_secret
from ..envfile import (
    EXPORT_FORMATS,
    decode_env_bytes,
    import_pairs,
    parse_env_content,
    read_env_file,
    render,
)


def _load(home, project, positional=None):
    session = open_session(home)
    if positional:
        return session, session.bundles.open_project(positional)
    return session, session.resolve_and_load(project, Path.cwd())


def register_secret_commands(main: click.Group) -> None:
    """Register secret CRUD and env commands."""

    @main.command("set")
    @home_option
    @project_option
    @click.option("--group", default=None, help="Group label (default: inferred from key).")
    @click.argument("key")
    @click.argument("value", nargs=-1, required=True)
    @veil_errors
    def set_secret(home, project, group, key, value):
        """Store KEY=VALUE in the current project."""
        key = key.strip()
        if not key or "=" in key:
            fail("key must be non-empty and must not contain =")
        session, bundle = _load(home, project)
        result = upsert_secret(bundle, key, " ".join(value), group)
        session.bundles.save_project(bundle)
        console.print(f"  [green]{result.value.capitalize()}[/] {key} in [cyan]{bundle.project}[/]")

    @main.command("get")
    @home_option
    @project_option
    @click.argument("key")
    @veil_errors
    def get_cmd(home, project, key):
        """Print a secret's raw value."""
        _, bundle = _load(home, project)
        click.echo(get_secret(bundle, key).value)

    @main.command("rm")
    @home_option
    @project_option
    @click.option("-y", "--yes", is_flag=True, help="Do not ask for confirmation.")
    @click.argument("key")
    @veil_errors
    def rm_cmd(home, project, yes, key):
        """Delete a secret from the current project."""
        session, bundle = _load(home, project)
        get_secret(bundle, key)
        if not yes:
            click.confirm(f"Delete {key} from {bundle.project}?", abort=True)
        remove_secret(bundle, key)
        session.bundles.save_project(bundle)
        console.print(f"  [green]Deleted[/] {key}")

    @main.command("ls")
    @home_option
    @project_option
    @click.option("--reveal", is_flag=True, help="Show values unmasked.")
    @click.argument("name", required=False)
    @veil_errors
    def ls_cmd(home, project, reveal, name):
        """List the secrets of a project."""
        _, bundle = _load(home, project, name)
        if not bundle.secrets:
            console.print(f"  [dim]No secrets in {bundle.project}[/]")
            return

        table = Table(title=bundle.project, show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Group", style="magenta")
        table.add_column("Key", style="cyan")
        table.add_column("Value")
        for secret in sorted_secrets(bundle):
            value = secret.value if reveal else mask_value(secret.value)
            table.add_row(secret.group, secret.key, escape(value))
        console.print(table)

    @main.command("import")
    @home_option
    @project_option
    @click.option("--skip-existing", is_flag=True, help="Leave keys that already exist alone.")
    @click.argument("source")
    @veil_errors
    def import_cmd(home, project, skip_existing, source):
        """Import a .env file (or - for stdin) into the current project."""
        if source == "-":
            content = decode_env_bytes(click.get_binary_stream("stdin").read())
        else:
            content = read_env_file(Path(source))
        pairs = parse_env_content(content)
        session, bundle = _load(home, project)
        report = import_pairs(bundle, pairs, skip_existing=skip_existing)
        session.bundles.save_project(bundle)
        console.print(
            f"  Imported [bold]{report.total}[/] keys into [cyan]{bundle.project}[/]: "
            f"[green]{report.added} added[/], {report.updated} updated, "
            f"[dim]{report.skipped} skipped[/]"
        )

    @main.command("export")
    @home_option
    @project_option
    @click.option("--format", "fmt", type=click.Choice(EXPORT_FORMATS), default=None,
                  help="Output format (default: preference, usually env).")
    @click.option("--out", type=click.Path(dir_okay=False), default=None,
                  help="Write to a file (0600) instead of stdout.")
    @click.argument("name", required=False)
    @veil_errors
    def export_cmd(home, project, fmt, out, name):
        """Render a project as .env, JSON or YAML."""
        session, bundle = _load(home, project, name)
        output = render(bundle, fmt or session.config.prefs.export_format)
        if out:
            try:
                write_private(Path(out).expanduser(), output)
            except OSError as exc:
                fail(f"write {out}: {exc.strerror or exc}")
            console.print(f"  [green]Exported[/] {bundle.project} to {out}")
        else:
            click.echo(output, nl=False)

    @main.command("run", context_settings={"ignore_unknown_options": True})
    @home_option
    @project_option
    @click.argument("command", nargs=-1, required=True, type=click.UNPROCESSED)
    @veil_errors
    def run_cmd(home, project, command):
        """Run COMMAND with the project's secrets in its environment.

        Use -- to separate veil options from the command's own.
        """
        _, bundle = _load(home, project)
        env = dict(os.environ)
        env.update({secret.key: secret.value for secret in bundle.secrets})
        try:
            result = subprocess.run(list(command), env=env, check=False)
        except OSError as exc:
            fail(f"run {command[0]}: {exc.strerror or exc}")
        sys.exit(result.returncode)

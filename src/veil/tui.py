"""
Line-driven terminal front end for the interactive controller.

The controller is keypress based; this loop reads whole lines and feeds
them in. Outside input prompts a line is a run of keys: single
characters, or the names ``up``, ``down``, ``esc`` and ``enter``
separated by spaces (``dd`` presses d twice). Inside an input prompt the
line replaces the buffer and commits; an empty line commits the buffer
as shown, ``:cancel`` backs out.

    veil            # no subcommand starts this loop
    veil ui --home /path/to/home
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console, Group
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .interactive import INPUT_MODES, InteractiveController, Mode, Page
from .session import Session

logger = logging.getLogger("veil.tui")

NAMED_KEYS = frozenset({"up", "down", "esc", "enter", "backspace"})
CANCEL = ":cancel"

HELP = {
    Page.HOME: "l open project  a add  i import  S sync  P pages  q quit",
    Page.PROJECT: "up/down move  a add  e edit  d delete  r reveal  / filter  x export  i import  S sync  P pages  q quit",
    Page.SETTINGS: "S sync  P pages  q quit",
}


def feed_line(controller: InteractiveController, line: str) -> None:
    """Translate one line of input into controller key presses."""
    if controller.mode in INPUT_MODES:
        text = line.strip()
        if text == CANCEL:
            controller.press("esc")
            return
        if text:
            controller.buffer = text
        controller.press("enter")
        return

    for token in line.split():
        if token.lower() in NAMED_KEYS:
            controller.press(token.lower())
            continue
        for char in token:
            controller.press(char)
            if controller.quit or controller.mode in INPUT_MODES:
                return


def _home_view(controller: InteractiveController):
    if not controller.projects:
        return Text("No projects yet. Press a to add a secret here.", style="dim")
    table = Table(box=None, padding=(0, 2), show_header=True, header_style="bold")
    table.add_column("Project", style="cyan")
    table.add_column("Secrets", justify="right")
    table.add_column("Path", style="dim")
    for summary in controller.projects:
        marker = "> " if summary.name == controller.current else "  "
        table.add_row(marker + summary.name, str(summary.count), summary.path or "-")
    return table


def _project_view(controller: InteractiveController):
    rows = controller.visible_rows()
    if not rows:
        return Text("No secrets.", style="dim")
    table = Table(box=None, padding=(0, 2), show_header=True, header_style="bold")
    table.add_column("Group", style="magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    selected = min(controller.selected, len(rows) - 1)
    for index, row in enumerate(rows):
        marker = "> " if index == selected else "  "
        table.add_row(marker + row.group, row.key, escape(row.value))
    return table


def _settings_view(controller: InteractiveController):
    config = controller.session.config
    remote = config.remote
    lines = [
        f"Machine: {config.machine.name} ({config.machine.id})",
        f"Key storage: {config.key_storage}",
        f"Remote: {remote.id or 'not linked'} ({remote.backend.value})",
        f"Last sync: {remote.last_synced_at or 'never'}",
        f"Recipients: {len(config.recipients)}",
    ]
    return Text("\n".join(lines))


VIEWS = {Page.HOME: _home_view, Page.PROJECT: _project_view, Page.SETTINGS: _settings_view}


def render(controller: InteractiveController) -> Panel:
    """The full screen for the controller's current state."""
    if controller.needs_init:
        body = Text("This machine has no identity yet.")
    else:
        body = VIEWS[controller.page](controller)

    footer = Text()
    if controller.mode == Mode.PAGE_SELECT:
        footer.append("1 home  2 project  3 settings  esc back", style="dim")
    elif controller.mode in INPUT_MODES:
        footer.append(f"{controller.mode.value}: ", style="bold")
        footer.append(controller.buffer)
        footer.append(f"   (enter to accept, {CANCEL} to back out)", style="dim")
    elif controller.needs_init:
        footer.append("i file key storage  k keychain  q quit", style="dim")
    else:
        footer.append(HELP[controller.page], style="dim")

    title = f"veil | {controller.page.value}"
    if controller.current:
        title += f" | {controller.current}"
    if controller.filter_query:
        title += f" | filter: {controller.filter_query}"
    return Panel(
        Group(body, Text(""), Text(controller.status, style="yellow"), footer),
        title=escape(title),
        border_style="magenta",
    )


def run_tui(
    session: Session,
    console: Optional[Console] = None,
    read_line: Optional[Callable[[str], str]] = None,
    cwd: Optional[Path] = None,
) -> None:
    """Draw, read a line, feed it, until the user quits or input ends."""
    console = console or Console()
    read_line = read_line or console.input
    controller = InteractiveController(session, cwd=cwd)

    while not controller.quit:
        console.print(render(controller))
        try:
            line = read_line("veil> ")
        except (EOFError, KeyboardInterrupt):
            break
        feed_line(controller, line)
    logger.debug("Interactive session ended")

"""Shared utilities for all CLI command modules.

Provides the Rich console instance, session construction and the
error wrapper that turns VeilError into a red message and exit 1.
"""

from __future__ import annotations

import functools
import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from .. import VEIL_HOME
from ..errors import VeilError
from ..session import Session, get_session

console = Console()
logger = logging.getLogger("veil.cli")

home_option = click.option(
    "--home", default=VEIL_HOME, type=click.Path(), help="Veil home directory."
)
project_option = click.option(
    "-p", "--project", "project", default=None, help="Project name (default: detect from cwd)."
)


def fail(message: str) -> None:
    """Print an error and exit non-zero."""
    console.print(f"[bold red]Error:[/] {escape(message)}")
    sys.exit(1)


def open_session(home: str) -> Session:
    """Session for ``home``; exits if the storage layout cannot be created."""
    try:
        return get_session(Path(home))
    except VeilError as exc:
        fail(str(exc))


def veil_errors(func):
    """Report VeilError from a command as a message plus exit status 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except VeilError as exc:
            logger.debug("Command failed", exc_info=True)
            fail(str(exc))

    return wrapper

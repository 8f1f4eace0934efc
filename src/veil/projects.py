"""
Project resolution -- which bundle does this directory belong to?

Resolution order, first hit wins:

    1. explicit name (registered path if known, else current directory)
    2. ``.veil`` marker file in the current directory
    3. longest registered path containing the current directory
    4. language/package marker files -> directory base name
    5. directory base name, or "general" at a filesystem root
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path, PurePath
from typing import NamedTuple, Optional

from .config import ConfigStore, normalize_path

logger = logging.getLogger("veil.projects")

DEFAULT_PROJECT_NAME = "general"
PROJECT_MARKER = ".veil"

MARKER_FILES = (
    "package.json",
    "go.mod",
    "Cargo.toml",
    "pyproject.toml",
    "composer.json",
    "Gemfile",
)

DEFAULT_GROUP = "General"

# Evaluated top to bottom against the upper-cased key; first match wins.
GROUP_RULES: tuple[tuple[str, str], ...] = (
    ("NEXT_PUBLIC_", "Frontend"),
    ("OPENAI_", "API Keys"),
    ("ANTHROPIC_", "API Keys"),
    ("STRIPE_", "Payments"),
    ("SUPABASE_", "Database"),
    ("DATABASE_", "Database"),
    ("POSTGRES_", "Database"),
    ("REDIS_", "Database"),
    ("AWS_", "AWS"),
    ("GITHUB_", "GitHub"),
)

_INVALID_NAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def sanitize_project_name(name: Optional[str]) -> str:
    """Lowercase storage key with every char outside ``[A-Za-z0-9_-]`` as ``-``.

    Leading/trailing dashes are stripped; an empty result maps to
    ``general``. Idempotent.
    """
    name = (name or "").strip()
    name = _INVALID_NAME_CHARS.sub("-", name).strip("-")
    if not name:
        return DEFAULT_PROJECT_NAME
    return name.lower()


def detect_group(key: str) -> str:
    upper = key.strip().upper()
    for prefix, group in GROUP_RULES:
        if upper.startswith(prefix):
            return group
    return DEFAULT_GROUP


class ResolvedProject(NamedTuple):
    name: str
    path: str


def _contains(parent: str, child: str) -> bool:
    return PurePath(child).is_relative_to(PurePath(parent))


class ProjectResolver:
    """Maps an optional explicit name plus a directory to a project.

    Args:
        config_store: Source of the registered name <-> path mappings.
    """

    def __init__(self, config_store: ConfigStore):
        self.config_store = config_store

    def resolve(
        self, explicit: Optional[str] = None, cwd: Optional[str | os.PathLike] = None
    ) -> ResolvedProject:
        """Resolve to ``(project_name, canonical_path)``.

        Args:
            explicit: Project name given by the caller, if any.
            cwd: Directory to resolve from. Defaults to the process cwd.

        Raises:
            OSError: Only if the current directory cannot be read.
        """
        config = self.config_store.load()
        cwd = normalize_path(cwd if cwd is not None else os.getcwd())

        if explicit:
            mapped = config.projects.get(sanitize_project_name(explicit))
            if mapped:
                return ResolvedProject(explicit, mapped)
            return ResolvedProject(explicit, cwd)

        marker_name = self._read_marker(Path(cwd))
        if marker_name:
            return ResolvedProject(marker_name, cwd)

        matches = [
            (path, name)
            for path, name in config.path_projects.items()
            if path and _contains(path, cwd)
        ]
        if matches:
            path, name = max(matches, key=lambda m: len(m[0]))
            logger.debug("Resolved %s via registered path %s", name, path)
            return ResolvedProject(name, path)

        base = os.path.basename(cwd)
        for marker in MARKER_FILES:
            if (Path(cwd) / marker).exists() and base:
                return ResolvedProject(base, cwd)

        if not base or base in (".", os.sep):
            base = DEFAULT_PROJECT_NAME
        return ResolvedProject(base, cwd)

    @staticmethod
    def _read_marker(cwd: Path) -> str:
        try:
            return (cwd / PROJECT_MARKER).read_text(encoding="utf-8").strip()
        except OSError:
            return ""

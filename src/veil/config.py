"""
Config store -- machine identity pointer, recipients, project registry.

The config is one JSON document under the veil home. It never holds a
secret value or private key, only public metadata. Loaded lazily once per
session and cached; every save stamps ``updated_at``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from pydantic import ValidationError

from ._fs import write_private
from .errors import ConfigIOError
from .models import VeilConfig, utcnow

logger = logging.getLogger("veil.config")


def normalize_path(path: Optional[str | os.PathLike]) -> str:
    """Absolute, cleaned form of a path. Empty input stays empty."""
    if not path:
        return ""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def unique_recipients(values: Iterable[str]) -> list[str]:
    """Trimmed, deduplicated, sorted recipient list with blanks dropped."""
    return sorted({v.strip() for v in values if v and v.strip()})


class ConfigStore:
    """Loads and persists ``config.json``.

    Args:
        path: Location of the config file.
    """

    def __init__(self, path: Path):
        self.path = path
        self._config: Optional[VeilConfig] = None

    def load(self) -> VeilConfig:
        """Return the cached config, reading it from disk on first use.

        A missing file yields defaults. Missing or null collections are
        filled with empty ones.

        Raises:
            ConfigIOError: If the file exists but cannot be read or parsed.
        """
        if self._config is not None:
            return self._config

        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("No config at %s, using defaults", self.path)
            self._config = VeilConfig()
            return self._config
        except OSError as exc:
            raise ConfigIOError(f"read config: {exc}") from exc

        try:
            self._config = VeilConfig.model_validate_json(raw)
        except ValidationError as exc:
            raise ConfigIOError(f"decode config {self.path}: {exc}") from exc
        return self._config

    def save(self) -> None:
        """Stamp ``updated_at`` and write the config with 0600 permissions.

        Raises:
            ConfigIOError: If the file cannot be written.
        """
        config = self.load()
        config.updated_at = utcnow()
        try:
            write_private(self.path, config.model_dump_json(indent=2) + "\n")
        except OSError as exc:
            raise ConfigIOError(f"write config: {exc}") from exc
        logger.debug("Config saved to %s", self.path)

    def is_initialized(self) -> bool:
        return self.load().initialized

    def register_project(self, name: str, path: str) -> None:
        """Record the name <-> path mapping for a project."""
        if not name:
            return
        config = self.load()
        norm = normalize_path(path)
        config.projects[name] = norm
        config.path_projects[norm] = name

    def add_recipients(self, *groups: Iterable[str]) -> list[str]:
        """Union new recipients into the trusted set. The set never shrinks."""
        config = self.load()
        merged = list(config.recipients)
        for group in groups:
            merged.extend(group)
        config.recipients = unique_recipients(merged)
        return config.recipients

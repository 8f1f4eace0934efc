"""
.env import/export and structured renderings of a bundle.

Each line is checked for a ``[export ]KEY=VALUE`` shape first, so errors
carry the line number; python-dotenv then decodes the value (quotes,
escapes inside double quotes, trailing ``# comments``). Values are never
interpolated. Multi-line quoted values are not supported.
"""

from __future__ import annotations

import io
import json
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple

import yaml
from dotenv import dotenv_values

from .bundles import UpsertResult, find_secret, upsert_secret
from .errors import EnvFormatError, StoreIOError
from .models import ProjectBundle

EXPORT_FORMATS = ("env", "json", "yaml")

_NEEDS_QUOTING = (" ", "\t", "\n", "\r", "#")


class EnvPair(NamedTuple):
    key: str
    value: str


@dataclass
class ImportReport:
    """Outcome of merging parsed pairs into a bundle."""

    total: int = 0
    added: int = 0
    updated: int = 0
    skipped: int = 0


def decode_env_bytes(data: bytes) -> str:
    """Decode .env bytes as UTF-8 (a leading BOM is dropped).

    Raises:
        EnvFormatError: Pointing at the line holding the first bad byte.
    """
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        line = data[: exc.start].count(b"\n") + 1
        raise EnvFormatError(line, "invalid UTF-8 at .env line") from exc


def read_env_file(path: Path) -> str:
    """Read a .env file as text.

    Raises:
        StoreIOError: If the file cannot be read.
        EnvFormatError: If it is not UTF-8.
    """
    try:
        data = Path(path).expanduser().read_bytes()
    except OSError as exc:
        raise StoreIOError(f"read {path}: {exc.strerror or exc}") from exc
    return decode_env_bytes(data)


def _parse_line(line: str, lineno: int) -> EnvPair:
    body = line[len("export "):] if line.startswith("export ") else line
    idx = body.find("=")
    if idx <= 0:
        raise EnvFormatError(lineno)
    if not body[:idx].strip():
        raise EnvFormatError(lineno, "empty key at line")

    values = dotenv_values(stream=io.StringIO(line), interpolate=False)
    if len(values) != 1:
        raise EnvFormatError(lineno)
    key, value = next(iter(values.items()))
    return EnvPair(key, value or "")


def parse_env_content(content: str) -> list[EnvPair]:
    """Parse .env text into ordered key/value pairs.

    Raises:
        EnvFormatError: On a line without ``=``, with an empty key, or one
            python-dotenv cannot parse (an unbalanced quote, for instance).
    """
    pairs = []
    for lineno, raw in enumerate(content.splitlines(), start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        pairs.append(_parse_line(line, lineno))
    return pairs


def import_pairs(
    bundle: ProjectBundle, pairs: list[EnvPair], skip_existing: bool = False
) -> ImportReport:
    """Upsert parsed pairs into a bundle, optionally leaving existing keys alone."""
    report = ImportReport(total=len(pairs))
    for pair in pairs:
        if skip_existing and find_secret(bundle, pair.key) is not None:
            report.skipped += 1
            continue
        if upsert_secret(bundle, pair.key, pair.value) == UpsertResult.CREATED:
            report.added += 1
        else:
            report.updated += 1
    return report


def _env_value(value: str) -> str:
    quote = (
        any(ch in value for ch in _NEEDS_QUOTING)
        or value != value.strip()
        or value[:1] in ("'", '"')
    )
    return json.dumps(value, ensure_ascii=False) if quote else value


def render_env(bundle: ProjectBundle) -> str:
    """One ``KEY=VALUE`` line per secret, sorted by key."""
    lines = [
        f"{secret.key}={_env_value(secret.value)}\n"
        for secret in sorted(bundle.secrets, key=lambda s: s.key)
    ]
    return "".join(lines)


def render_project_json(bundle: ProjectBundle) -> str:
    return bundle.model_dump_json(indent=2)


def render_project_yaml(bundle: ProjectBundle) -> str:
    return yaml.safe_dump(
        bundle.model_dump(mode="json"), default_flow_style=False, sort_keys=False
    )


def render(bundle: ProjectBundle, fmt: str) -> str:
    """Render a bundle in one of EXPORT_FORMATS.

    Raises:
        ValueError: If the format is unknown.
    """
    fmt = fmt.strip().lower()
    if fmt == "env":
        return render_env(bundle)
    if fmt == "json":
        return render_project_json(bundle)
    if fmt == "yaml":
        return render_project_yaml(bundle)
    raise ValueError(f"invalid format {fmt!r} (use env, json or yaml)")

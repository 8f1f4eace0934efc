"""
Bundle store -- one encrypted file per project.

    ~/.veil/store/<sanitized-name>.json.age

The plaintext is the JSON-encoded ProjectBundle. Every save encrypts for
the union of trusted recipients and the local identity, so every device
that ever joined can still open every bundle.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

from pydantic import ValidationError

from . import crypto
from ._fs import write_private
from .config import ConfigStore, normalize_path
from .errors import (
    DecodeError,
    DecryptError,
    NotInitializedError,
    ProjectNotFoundError,
    SecretNotFoundError,
    StoreIOError,
    VeilError,
)
from .identity import IdentityManager
from .models import ProjectBundle, ProjectSummary, Secret, utcnow
from .projects import detect_group, sanitize_project_name

logger = logging.getLogger("veil.bundles")

PROJECT_SUFFIX = ".json.age"
EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class UpsertResult(str, Enum):
    CREATED = "created"
    UPDATED = "updated"


class BundleStore:
    """Loads, decrypts, encrypts and saves project bundles.

    Args:
        store_dir: Directory holding the ciphertext files.
        config_store: Config for recipients and project registry.
        identities: Source of the local identity.
    """

    def __init__(self, store_dir: Path, config_store: ConfigStore, identities: IdentityManager):
        self.store_dir = store_dir
        self.config_store = config_store
        self.identities = identities

    def project_file(self, name: str) -> Path:
        return self.store_dir / f"{sanitize_project_name(name)}{PROJECT_SUFFIX}"

    def iter_project_files(self) -> Iterator[Path]:
        """Ciphertext files currently in the store, sorted by name."""
        if not self.store_dir.exists():
            return
        for path in sorted(self.store_dir.iterdir()):
            if path.is_file() and path.name.endswith(PROJECT_SUFFIX):
                yield path

    def load_project(self, name: str, path: str = "") -> ProjectBundle:
        """Decrypt and decode a project's bundle.

        A project with no file yet is an empty bundle, not an error.

        Raises:
            NotInitializedError: If the machine has no identity.
            StoreIOError: If the file exists but cannot be read.
            DecryptError: If the local identity cannot open it.
            DecodeError: If the plaintext is not a valid bundle.
        """
        if not self.config_store.is_initialized():
            raise NotInitializedError()
        identity = self.identities.load_identity()

        norm = normalize_path(path)
        file_path = self.project_file(name)
        try:
            ciphertext = file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ProjectBundle(project=name, path=norm)
        except OSError as exc:
            raise StoreIOError(f"read project file: {exc}") from exc

        try:
            plaintext = crypto.decrypt(ciphertext, identity)
        except DecryptError as exc:
            raise DecryptError(f"decrypt project {name!r}: {exc}") from exc
        bundle = decode_bundle(plaintext, name)
        if not bundle.project:
            bundle.project = name
        if not bundle.path:
            bundle.path = norm
        return bundle

    def save_project(self, bundle: ProjectBundle) -> Path:
        """Encrypt the bundle for every trusted recipient and write it.

        Also registers the project in config and saves config.

        Raises:
            EncryptError: If no valid recipient is available.
            StoreIOError: If the ciphertext cannot be written.
        """
        identity = self.identities.load_identity()
        bundle.project = sanitize_project_name(bundle.project)
        bundle.path = normalize_path(bundle.path)

        recipients = self.config_store.add_recipients([identity.recipient])
        ciphertext = crypto.encrypt(bundle.model_dump_json(indent=2).encode("utf-8"), recipients)

        file_path = self.project_file(bundle.project)
        try:
            write_private(file_path, ciphertext)
        except OSError as exc:
            raise StoreIOError(f"write project file: {exc}") from exc

        self.config_store.register_project(bundle.project, bundle.path)
        self.config_store.save()
        logger.info(
            "Saved project %s (%d secrets, %d recipients)",
            bundle.project,
            len(bundle.secrets),
            len(recipients),
        )
        return file_path

    def open_project(self, name: str) -> ProjectBundle:
        """Load a project that must already exist, by name.

        Raises:
            ProjectNotFoundError: If the project is neither registered nor stored.
        """
        config = self.config_store.load()
        sanitized = sanitize_project_name(name)
        if sanitized not in config.projects and not self.project_file(sanitized).exists():
            raise ProjectNotFoundError(f"project {name!r} not found")
        return self.load_project(sanitized, config.projects.get(sanitized, ""))

    def list_projects(self) -> list[ProjectSummary]:
        """Registered and on-disk projects with secret counts.

        Projects that fail to load are left out.
        """
        config = self.config_store.load()
        names = {sanitize_project_name(n) for n in config.projects}
        names.update(p.name[: -len(PROJECT_SUFFIX)] for p in self.iter_project_files())

        summaries = []
        for name in sorted(names):
            try:
                bundle = self.load_project(name, config.projects.get(name, ""))
            except VeilError as exc:
                logger.warning("Skipping project %s: %s", name, exc)
                continue
            summaries.append(
                ProjectSummary(name=name, path=bundle.path, count=len(bundle.secrets))
            )
        return summaries


def decode_bundle(plaintext: bytes, name: str = "") -> ProjectBundle:
    """Parse decrypted JSON into a ProjectBundle.

    Raises:
        DecodeError: If the payload is not a valid bundle.
    """
    try:
        return ProjectBundle.model_validate_json(plaintext)
    except ValidationError as exc:
        raise DecodeError(f"decode project {name!r}: {exc}") from exc


def find_secret(bundle: ProjectBundle, key: str) -> Optional[Secret]:
    for secret in bundle.secrets:
        if secret.key == key:
            return secret
    return None


def get_secret(bundle: ProjectBundle, key: str) -> Secret:
    """Return the secret for ``key``.

    Raises:
        SecretNotFoundError: If the key is absent.
    """
    secret = find_secret(bundle, key)
    if secret is None:
        raise SecretNotFoundError(key, bundle.project)
    return secret


def upsert_secret(
    bundle: ProjectBundle, key: str, value: str, group: Optional[str] = None
) -> UpsertResult:
    """Set ``key`` to ``value``, creating the secret if needed.

    An existing secret keeps its group unless a non-empty group is given.
    A new secret without a group gets one inferred from its key prefix.
    """
    now = utcnow()
    existing = find_secret(bundle, key)
    if existing is not None:
        existing.value = value
        if group:
            existing.group = group
        existing.updated_at = now
        return UpsertResult.UPDATED

    bundle.secrets.append(
        Secret(
            key=key,
            value=value,
            group=group or detect_group(key),
            created_at=now,
            updated_at=now,
        )
    )
    return UpsertResult.CREATED


def remove_secret(bundle: ProjectBundle, key: str) -> bool:
    """Drop the first secret named ``key``. Returns whether one was found."""
    for idx, secret in enumerate(bundle.secrets):
        if secret.key == key:
            del bundle.secrets[idx]
            return True
    return False


def sorted_secrets(bundle: ProjectBundle) -> list[Secret]:
    """Secrets ordered by (group, key) for display."""
    return sorted(bundle.secrets, key=lambda s: (s.group, s.key))


def mask_value(value: str) -> str:
    """Show the first six characters, star the rest. Short values are fully starred."""
    if not value:
        return ""
    if len(value) <= 6:
        return "*" * len(value)
    return value[:6] + "*" * (len(value) - 6)


def latest_update(bundle: ProjectBundle) -> datetime:
    """Newest ``updated_at`` across the bundle's secrets, or the epoch if empty."""
    latest = EPOCH
    for secret in bundle.secrets:
        ts = secret.updated_at
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        if ts > latest:
            latest = ts
    return latest

"""
Veil session -- one per invocation, threaded through every operation.

Owns the home layout and the lazily loaded config and identity. Nothing
is cached across processes; two sessions on the same home race at the
filesystem level and the last writer wins.
"""

from __future__ import annotations

import logging
import secrets
import socket
from pathlib import Path
from typing import Optional

from . import VEIL_HOME
from ._fs import ensure_private_dir
from .bundles import BundleStore
from .config import ConfigStore
from .errors import ConfigIOError, InvalidKeyStorageError
from .identity import IdentityManager
from .models import KeyStorage, MachineConfig, ProjectBundle, utcnow
from .projects import ProjectResolver

logger = logging.getLogger("veil.session")

DEFAULT_MACHINE_NAME = "veil-machine"


def random_machine_id() -> str:
    return secrets.token_hex(8)


class Session:
    """Everything one veil invocation needs.

    Args:
        home: Veil home directory. Defaults to $VEIL_HOME or ~/.veil.
    """

    def __init__(self, home: Optional[Path] = None):
        self.home = Path(home or VEIL_HOME).expanduser().absolute()
        self.store_dir = self.home / "store"
        self.config_path = self.home / "config.json"

        self.config_store = ConfigStore(self.config_path)
        self.identities = IdentityManager(self.home, self.config_store)
        self.bundles = BundleStore(self.store_dir, self.config_store, self.identities)
        self.resolver = ProjectResolver(self.config_store)

    def ensure_layout(self) -> None:
        """Create the home and store directories.

        Raises:
            ConfigIOError: If the directories cannot be created.
        """
        try:
            ensure_private_dir(self.home)
            ensure_private_dir(self.store_dir)
        except OSError as exc:
            raise ConfigIOError(f"create store directory: {exc}") from exc

    @property
    def config(self):
        return self.config_store.load()

    def is_initialized(self) -> bool:
        return self.config_store.is_initialized()

    def init(self, key_storage: str = "file", machine_name: Optional[str] = None) -> bool:
        """Create this machine's identity once.

        Re-running on an initialized home is a no-op.

        Args:
            key_storage: ``file`` or ``keychain``.
            machine_name: Display name. Defaults to the hostname.

        Returns:
            True if a new identity was created.

        Raises:
            InvalidKeyStorageError: If ``key_storage`` is not a known mode.
        """
        try:
            mode = KeyStorage(key_storage or KeyStorage.FILE.value)
        except ValueError as exc:
            raise InvalidKeyStorageError(
                f"invalid key storage {key_storage!r} (use file or keychain)"
            ) from exc

        self.ensure_layout()
        config = self.config_store.load()
        if config.initialized:
            logger.debug("Already initialized as machine %s", config.machine.id)
            return False

        if not machine_name:
            machine_name = socket.gethostname() or DEFAULT_MACHINE_NAME

        identity = self.identities.generate_identity()
        machine_id = random_machine_id()
        self.identities.persist_private_key(mode, machine_id, identity)

        config.machine = MachineConfig(
            id=machine_id,
            name=machine_name,
            public_key=identity.recipient,
            added_at=utcnow(),
        )
        config.key_storage = mode.value
        self.identities.remember(identity)
        self.config_store.add_recipients([identity.recipient])
        self.config_store.save()
        logger.info("Initialized machine %s (%s key storage)", machine_id, mode.value)
        return True

    def resolve_and_load(
        self, explicit: Optional[str] = None, cwd: Optional[Path] = None
    ) -> ProjectBundle:
        """Resolve the project for a directory and load its bundle."""
        name, path = self.resolver.resolve(explicit, cwd)
        return self.bundles.load_project(name, path)


def get_session(home: Optional[Path] = None) -> Session:
    """Build a session and make sure its storage layout exists."""
    session = Session(home)
    session.ensure_layout()
    return session

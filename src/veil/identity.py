"""
Identity manager -- the machine's private key and where it lives.

Exactly one persistent location per machine:

    file      ~/.veil/keys/<machine-id>.txt   (0600)
    keychain  OS secret store, service "veil", account "key_<machine-id>"

The loaded identity is cached for the rest of the session.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import keyring
from keyring.errors import KeyringError

from ._fs import PRIVATE_DIR_MODE, write_private
from .config import ConfigStore
from .crypto import Identity
from .errors import IdentityLoadError, KeyStorageError, NotInitializedError
from .models import KeyStorage

logger = logging.getLogger("veil.identity")

SERVICE_NAME = "veil"


def keychain_account(machine_id: str) -> str:
    return f"key_{machine_id}"


class IdentityManager:
    """Generates, persists and loads the local identity.

    Args:
        home: Veil home directory.
        config_store: Config store holding the machine record.
    """

    def __init__(self, home: Path, config_store: ConfigStore):
        self.home = home
        self.keys_dir = home / "keys"
        self.config_store = config_store
        self._identity: Optional[Identity] = None

    @staticmethod
    def generate_identity() -> Identity:
        return Identity.generate()

    def key_file_for(self, machine_id: str) -> Path:
        return self.keys_dir / f"{machine_id}.txt"

    def persist_private_key(
        self, mode: KeyStorage, machine_id: str, identity: Identity
    ) -> Optional[Path]:
        """Store the private key in the backend chosen by ``mode``.

        Updates ``config.key_file`` so exactly one location is active:
        the file path in file mode, nothing in keychain mode.

        Returns:
            The key file path in file mode, None in keychain mode.

        Raises:
            KeyStorageError: If the backend rejects the write.
        """
        config = self.config_store.load()
        if mode == KeyStorage.KEYCHAIN:
            try:
                keyring.set_password(SERVICE_NAME, keychain_account(machine_id), str(identity))
            except KeyringError as exc:
                raise KeyStorageError(f"save identity to keychain: {exc}") from exc
            config.key_file = None
            logger.info("Identity stored in keychain for machine %s", machine_id)
            return None

        path = self.key_file_for(machine_id)
        try:
            self.keys_dir.mkdir(parents=True, exist_ok=True, mode=PRIVATE_DIR_MODE)
            write_private(path, str(identity) + "\n")
        except OSError as exc:
            raise KeyStorageError(f"write identity file: {exc}") from exc
        config.key_file = str(path)
        logger.info("Identity stored at %s", path)
        return path

    def remember(self, identity: Identity) -> None:
        self._identity = identity

    def load_identity(self) -> Identity:
        """Return the session identity, loading it on first use.

        Keychain mode tries the secret store first and falls back to the
        configured key file on a miss or parse failure.

        Raises:
            NotInitializedError: If no machine id / key storage is recorded.
            IdentityLoadError: If the key source is missing or unparseable.
        """
        if self._identity is not None:
            return self._identity

        config = self.config_store.load()
        if not config.initialized:
            raise NotInitializedError()

        if config.key_storage == KeyStorage.KEYCHAIN.value:
            identity = self._from_keychain(config.machine.id)
            if identity is not None:
                self._identity = identity
                return identity

        if not config.key_file:
            raise IdentityLoadError("missing key file path")
        try:
            text = Path(config.key_file).read_text(encoding="utf-8")
        except OSError as exc:
            raise IdentityLoadError(f"read identity file: {exc}") from exc
        try:
            identity = Identity.parse(text)
        except ValueError as exc:
            raise IdentityLoadError(f"parse identity file: {exc}") from exc

        self._identity = identity
        return identity

    def _from_keychain(self, machine_id: str) -> Optional[Identity]:
        try:
            secret = keyring.get_password(SERVICE_NAME, keychain_account(machine_id))
        except KeyringError as exc:
            logger.warning("Keychain lookup failed: %s", exc)
            return None
        if not secret:
            return None
        try:
            return Identity.parse(secret)
        except ValueError:
            logger.warning("Keychain entry for %s is not a valid identity", machine_id)
            return None

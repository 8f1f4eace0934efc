"""
Error taxonomy for veil.

Every failure a caller can act on is a VeilError subclass carrying a
human-readable message. The CLI prints the message and exits non-zero.
"""

from __future__ import annotations


class VeilError(Exception):
    """Base class for all veil errors."""


class ConfigIOError(VeilError):
    """Config file (or the storage layout) could not be read or written."""


class NotInitializedError(VeilError):
    """No machine identity has been set up yet."""

    def __init__(self, message: str = "veil is not initialized (run `veil init`)"):
        super().__init__(message)


class InvalidKeyStorageError(VeilError):
    """Key storage mode is neither 'file' nor 'keychain'."""


class KeyStorageError(VeilError):
    """The private key could not be persisted to its backend."""


class IdentityLoadError(VeilError):
    """The configured private key source is missing or unparseable."""


class EncryptError(VeilError):
    """Encryption failed, usually because no valid recipient was given."""


class DecryptError(VeilError):
    """Ciphertext could not be opened with the local identity."""


class DecodeError(VeilError):
    """Decrypted payload is not a valid project bundle."""


class StoreIOError(VeilError):
    """A project ciphertext file could not be read or written."""


class ProjectNotFoundError(VeilError):
    """Requested project is unknown."""


class SecretNotFoundError(VeilError):
    """Requested key does not exist in the bundle."""

    def __init__(self, key: str, project: str = ""):
        self.key = key
        self.project = project
        where = f" in project {project!r}" if project else ""
        super().__init__(f"key {key!r} not found{where}")


class EnvFormatError(VeilError):
    """A .env line could not be parsed."""

    def __init__(self, line: int, reason: str = "invalid .env line"):
        self.line = line
        super().__init__(f"{reason} {line}")


class NotLinkedError(VeilError):
    """Sync was requested but no remote container is linked."""

    def __init__(self, message: str = "no remote container linked (run `veil link`)"):
        super().__init__(message)


class RemoteAPIError(VeilError):
    """The remote blob container API failed or returned an error."""


class TokenResolutionError(VeilError):
    """No access token could be obtained from any source."""


class DeviceFlowTimeoutError(TokenResolutionError):
    """The device authorization deadline passed without a token."""

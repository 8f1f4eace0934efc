"""
age encryption for project bundles.

Thin layer over pyrage: X25519 identities, multi-recipient encryption and
the standard age ASCII armor, so ciphertext can live in text files and
gists and stays readable by any other age client.

Any one recipient's identity is enough to open the envelope.

    ciphertext = encrypt(b"...", ["age1...", "age1..."])
    plaintext = decrypt(ciphertext, Identity.parse(secret))
"""

from __future__ import annotations

import base64
import binascii
import textwrap
from typing import Iterable

import pyrage
from pyrage import x25519

from .errors import DecryptError, EncryptError

IDENTITY_PREFIX = "AGE-SECRET-KEY-1"
RECIPIENT_PREFIX = "age1"
ARMOR_BEGIN = "-----BEGIN AGE ENCRYPTED FILE-----"
ARMOR_END = "-----END AGE ENCRYPTED FILE-----"
ARMOR_COLUMNS = 64


class Identity:
    """An age X25519 identity. The string form is the private key; keep it secret."""

    def __init__(self, identity: x25519.Identity):
        self._identity = identity
        self._recipient = str(identity.to_public())

    @classmethod
    def generate(cls) -> "Identity":
        """Create a fresh identity from the OS CSPRNG."""
        return cls(x25519.Identity.generate())

    @classmethod
    def parse(cls, text: str) -> "Identity":
        """Parse an ``AGE-SECRET-KEY-1...`` string.

        Key files written by age-keygen carry ``#`` comment lines; those are
        skipped.

        Raises:
            ValueError: If the text is not a valid identity.
        """
        lines = [
            line.strip()
            for line in (text or "").splitlines()
            if line.strip() and not line.strip().startswith("#")
        ]
        if len(lines) != 1 or not lines[0].upper().startswith(IDENTITY_PREFIX):
            raise ValueError("not an age identity")
        try:
            return cls(x25519.Identity.from_str(lines[0]))
        except pyrage.IdentityError as exc:
            raise ValueError(f"malformed identity: {exc}") from exc

    @property
    def recipient(self) -> str:
        """Public half, shareable with every other device."""
        return self._recipient

    @property
    def age_identity(self) -> x25519.Identity:
        return self._identity

    def __str__(self) -> str:
        return str(self._identity)

    def __repr__(self) -> str:
        return f"Identity(recipient={self.recipient!r})"


def parse_recipient(text: str) -> x25519.Recipient:
    """Parse an ``age1...`` recipient string.

    Raises:
        ValueError: If the text is not a valid recipient.
    """
    text = (text or "").strip()
    if not text.startswith(RECIPIENT_PREFIX):
        raise ValueError("not an age recipient")
    try:
        return x25519.Recipient.from_str(text)
    except pyrage.RecipientError as exc:
        raise ValueError(f"malformed recipient: {exc}") from exc


def is_valid_recipient(text: str) -> bool:
    try:
        parse_recipient(text)
    except ValueError:
        return False
    return True


def armor(data: bytes) -> str:
    body = "\n".join(textwrap.wrap(base64.b64encode(data).decode("ascii"), ARMOR_COLUMNS))
    return f"{ARMOR_BEGIN}\n{body}\n{ARMOR_END}\n"


def dearmor(text: str) -> bytes:
    """Strip armor lines and decode the base64 body.

    Raises:
        DecryptError: If the armor is missing or the body is not base64.
    """
    lines = [line.strip() for line in (text or "").strip().splitlines()]
    if len(lines) < 2 or lines[0] != ARMOR_BEGIN or lines[-1] != ARMOR_END:
        raise DecryptError("ciphertext is not an armored age file")
    try:
        return base64.b64decode("".join(lines[1:-1]), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecryptError(f"corrupt armor body: {exc}") from exc


def encrypt(plaintext: bytes, recipients: Iterable[str]) -> str:
    """Encrypt for every valid recipient and return armored text.

    Blank and unparseable recipients are skipped.

    Raises:
        EncryptError: If no valid recipient remains or age refuses to encrypt.
    """
    keys = []
    for raw in recipients:
        raw = (raw or "").strip()
        if not raw:
            continue
        try:
            keys.append(parse_recipient(raw))
        except ValueError:
            continue
    if not keys:
        raise EncryptError("no valid age recipients configured")

    try:
        sealed = pyrage.encrypt(plaintext, keys)
    except pyrage.EncryptError as exc:
        raise EncryptError(f"encrypt: {exc}") from exc
    return armor(sealed)


def decrypt(ciphertext: str, identity: Identity) -> bytes:
    """Open an armored age file with a local identity.

    Raises:
        DecryptError: If the armor is malformed, the file was not encrypted
            for this identity, or it fails authentication.
    """
    sealed = dearmor(ciphertext)
    try:
        return pyrage.decrypt(sealed, [identity.age_identity])
    except pyrage.DecryptError as exc:
        raise DecryptError(f"decrypt: {exc}") from exc

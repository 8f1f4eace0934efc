"""Shared test fixtures for veil."""

from __future__ import annotations

from pathlib import Path

import pytest


class FakeKeyring:
    """In-memory stand-in for the OS secret store."""

    def __init__(self):
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, account: str):
        return self.entries.get((service, account))

    def set_password(self, service: str, account: str, secret: str) -> None:
        self.entries[(service, account)] = secret


@pytest.fixture(autouse=True)
def fake_keyring(monkeypatch) -> FakeKeyring:
    """Keep every test away from the real OS keychain."""
    import keyring

    fake = FakeKeyring()
    monkeypatch.setattr(keyring, "get_password", fake.get_password)
    monkeypatch.setattr(keyring, "set_password", fake.set_password)
    return fake


@pytest.fixture(autouse=True)
def no_token_env(monkeypatch) -> None:
    """Tests decide for themselves which token sources exist."""
    for name in ("GH_TOKEN", "GITHUB_TOKEN", "VEIL_GITHUB_CLIENT_ID"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def veil_home(tmp_path: Path) -> Path:
    """Provide a temporary veil home directory."""
    return tmp_path / ".veil"


@pytest.fixture
def session(veil_home: Path):
    """A session on an empty home."""
    from veil.session import get_session

    return get_session(veil_home)


@pytest.fixture
def initialized_session(session):
    """A session with a file-mode identity already created."""
    session.init("file", "test-machine")
    return session


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    """An empty working directory named ``myapp``."""
    path = tmp_path / "work" / "myapp"
    path.mkdir(parents=True)
    return path

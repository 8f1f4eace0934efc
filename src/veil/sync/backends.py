"""
Remote container backends -- where the ciphertext travels.

Every backend speaks the same three verbs:

    create(files)        -> RemoteContainer
    get(container_id)    -> RemoteContainer
    update(container_id, files)

Gist: private GitHub gist over the REST API, bearer-token auth.
Local: a directory per container. For USB drives, NAS, shared mounts.
"""

from __future__ import annotations

import getpass
import logging
import secrets
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import requests

from .._fs import ensure_private_dir, write_private
from ..errors import RemoteAPIError
from ..models import RemoteBackendType, RemoteConfig
from .models import RemoteContainer, RemoteFile

logger = logging.getLogger("veil.sync.backends")

GIST_DESCRIPTION = "Veil encrypted secrets"


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return ""


def _is_plain_name(name: str) -> bool:
    """True for one path component that is neither "." nor ".."."""
    return bool(name) and name not in (".", "..") and Path(name).name == name


class RemoteBackend(ABC):
    """Abstract remote blob container."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    @abstractmethod
    def create(self, files: dict[str, str]) -> RemoteContainer:
        """Create a new container seeded with ``files``."""

    @abstractmethod
    def get(self, container_id: str) -> RemoteContainer:
        """Fetch a container and its file listing."""

    @abstractmethod
    def update(self, container_id: str, files: dict[str, str]) -> None:
        """Create or overwrite the named files in a container."""

    def read_file(self, remote_file: RemoteFile) -> str:
        """Full content of a file, following its raw URL when not inline."""
        if remote_file.content and not remote_file.truncated:
            return remote_file.content
        if remote_file.raw_url:
            return self.fetch_raw(remote_file.raw_url)
        return remote_file.content or ""

    def fetch_raw(self, url: str) -> str:
        raise RemoteAPIError(f"{self.name} backend cannot fetch {url}")


class GistBackend(RemoteBackend):
    """GitHub gist container.

    Args:
        token: GitHub access token with the ``gist`` scope.
        api_url: API base, for GitHub Enterprise.
        timeout: Per-request timeout in seconds.
        http: Optional requests session.
    """

    API_URL = "https://api.github.com"

    def __init__(
        self,
        token: str,
        api_url: Optional[str] = None,
        timeout: float = 30,
        http: Optional[requests.Session] = None,
    ):
        self._token = token
        self.api_url = (api_url or self.API_URL).rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    @property
    def name(self) -> str:
        return "gist"

    def _request(
        self, method: str, endpoint: str, payload: Optional[dict] = None, op: str = "request"
    ) -> dict[str, Any]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "Authorization": f"Bearer {self._token}",
        }
        try:
            resp = self.http.request(
                method,
                f"{self.api_url}{endpoint}",
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RemoteAPIError(f"github gist {op} failed: {exc}") from exc

        if resp.status_code >= 300:
            raise RemoteAPIError(
                f"github gist {op} failed: {resp.status_code} {resp.text.strip()}"
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteAPIError(f"github gist {op} returned invalid JSON") from exc

    @staticmethod
    def _files_payload(files: dict[str, str]) -> dict[str, dict[str, str]]:
        return {name: {"content": content} for name, content in files.items()}

    @staticmethod
    def _container(data: dict[str, Any]) -> RemoteContainer:
        files = {}
        for name, raw in (data.get("files") or {}).items():
            raw = raw or {}
            files[name] = RemoteFile(
                filename=raw.get("filename") or name,
                content=raw.get("content"),
                raw_url=raw.get("raw_url"),
                truncated=bool(raw.get("truncated")),
                size=int(raw.get("size") or 0),
            )
        owner = (data.get("owner") or {}).get("login")
        return RemoteContainer(id=str(data.get("id") or ""), owner=owner, files=files)

    def create(self, files: dict[str, str]) -> RemoteContainer:
        payload = {
            "description": GIST_DESCRIPTION,
            "public": False,
            "files": self._files_payload(files),
        }
        container = self._container(self._request("POST", "/gists", payload, op="create"))
        logger.info("Created gist %s", container.id)
        return container

    def get(self, container_id: str) -> RemoteContainer:
        return self._container(self._request("GET", f"/gists/{container_id}", op="get"))

    def update(self, container_id: str, files: dict[str, str]) -> None:
        payload = {"files": self._files_payload(files)}
        self._request("PATCH", f"/gists/{container_id}", payload, op="update")
        logger.info("Updated gist %s (%d files)", container_id, len(files))

    def fetch_raw(self, url: str) -> str:
        try:
            resp = self.http.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RemoteAPIError(f"fetch raw content: {exc}") from exc
        if resp.status_code >= 300:
            raise RemoteAPIError(f"fetch raw content: {resp.status_code}")
        return resp.text


class LocalBackend(RemoteBackend):
    """Directory-backed containers: ``<root>/<container-id>/<file>``.

    Args:
        root: Directory holding the containers.
    """

    OWNER_FILE = ".owner"

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    @property
    def name(self) -> str:
        return "local"

    def _dir(self, container_id: str) -> Path:
        path = self.root / container_id
        if not _is_plain_name(container_id) or not path.is_dir():
            raise RemoteAPIError(f"local container {container_id!r} not found in {self.root}")
        return path

    def create(self, files: dict[str, str]) -> RemoteContainer:
        container_id = secrets.token_hex(16)
        try:
            path = ensure_private_dir(self.root / container_id)
            write_private(path / self.OWNER_FILE, _current_user())
        except OSError as exc:
            raise RemoteAPIError(f"create local container: {exc}") from exc
        self.update(container_id, files)
        logger.info("Created local container %s", path)
        return self.get(container_id)

    def get(self, container_id: str) -> RemoteContainer:
        path = self._dir(container_id)
        files = {}
        owner = None
        try:
            for entry in sorted(path.iterdir()):
                if not entry.is_file():
                    continue
                content = entry.read_text(encoding="utf-8")
                if entry.name == self.OWNER_FILE:
                    owner = content.strip() or None
                    continue
                files[entry.name] = RemoteFile(
                    filename=entry.name, content=content, size=len(content)
                )
        except OSError as exc:
            raise RemoteAPIError(f"read local container: {exc}") from exc
        return RemoteContainer(id=container_id, owner=owner, files=files)

    def update(self, container_id: str, files: dict[str, str]) -> None:
        path = self._dir(container_id)
        try:
            for name, content in files.items():
                target = path / name
                if not _is_plain_name(name) or name == self.OWNER_FILE:
                    raise RemoteAPIError(f"invalid file name {name!r}")
                write_private(target, content)
        except OSError as exc:
            raise RemoteAPIError(f"write local container: {exc}") from exc


def create_backend(remote: RemoteConfig, token: Optional[str] = None) -> RemoteBackend:
    """Build the backend a remote linkage points at.

    Raises:
        RemoteAPIError: If the linkage is incomplete.
    """
    if remote.backend == RemoteBackendType.LOCAL:
        if not remote.location:
            raise RemoteAPIError("local backend has no location configured")
        return LocalBackend(Path(remote.location))
    if remote.backend == RemoteBackendType.GIST:
        if not token:
            raise RemoteAPIError("gist backend requires an access token")
        return GistBackend(token)
    raise RemoteAPIError(f"unsupported backend: {remote.backend}")

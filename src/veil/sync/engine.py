"""
Sync Engine -- reconciles the local store with a remote container.

    veil link  ->  create/validate container -> merge recipients -> push ledger
    veil sync  ->  fetch -> merge recipients -> adopt newer bundles -> push all

Merging is whole-bundle last-write-wins: a remote bundle replaces the
local one only when its newest secret timestamp is strictly later.
Adopted files are copied byte-for-byte, so they keep whatever recipient
set they were encrypted for. Nothing is committed to config until every
remote call has succeeded.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from .. import crypto
from .._fs import write_private
from ..bundles import PROJECT_SUFFIX, decode_bundle, latest_update
from ..config import normalize_path, unique_recipients
from ..crypto import Identity
from ..errors import (
    DecodeError,
    DecryptError,
    KeyStorageError,
    NotInitializedError,
    NotLinkedError,
    RemoteAPIError,
    StoreIOError,
)
from ..models import RemoteBackendType, RemoteConfig, utcnow
from ..projects import sanitize_project_name
from ..session import Session
from .backends import RemoteBackend, create_backend
from .models import (
    RECIPIENTS_FILE,
    AdoptionDecision,
    ProjectSyncResult,
    RemoteContainer,
    SyncReport,
    parse_ledger,
    render_ledger,
)
from .tokens import TokenResolver, store_token

logger = logging.getLogger("veil.sync.engine")


class SyncEngine:
    """Links a session to a remote container and keeps the two in step.

    Args:
        session: The invocation's session.
        tokens: Token chain for backends that need one.
        backend_factory: Builds a backend from a RemoteConfig and token.
    """

    def __init__(
        self,
        session: Session,
        tokens: Optional[TokenResolver] = None,
        backend_factory: Callable[[RemoteConfig, Optional[str]], RemoteBackend] = create_backend,
    ):
        self.session = session
        self.tokens = tokens or TokenResolver()
        self.backend_factory = backend_factory

    def _require_identity(self) -> Identity:
        if not self.session.is_initialized():
            raise NotInitializedError()
        return self.session.identities.load_identity()

    def _backend(self, remote: RemoteConfig, token: Optional[str]) -> RemoteBackend:
        if remote.backend == RemoteBackendType.GIST and not token:
            token = self.tokens.resolve()
        return self.backend_factory(remote, token)

    def _remote_recipients(self, backend: RemoteBackend, container: RemoteContainer) -> list[str]:
        ledger = container.files.get(RECIPIENTS_FILE)
        if ledger is None:
            return []
        return parse_ledger(backend.read_file(ledger))

    def link(
        self,
        token: Optional[str] = None,
        container_id: Optional[str] = None,
        local_path: Optional[str | Path] = None,
        gist: bool = False,
    ) -> RemoteConfig:
        """Create or validate the remote container and merge recipients.

        Args:
            token: Access token. Stored in the OS secret store when given.
            container_id: Link to an existing container instead of the
                configured one.
            local_path: Use the local directory backend rooted here.
            gist: Switch back to the gist backend.

        Returns:
            The committed remote linkage.

        Raises:
            NotInitializedError: If this machine has no identity.
            TokenResolutionError: If no token can be found for the gist backend.
            RemoteAPIError: If any remote call fails. Config is left untouched.
        """
        identity = self._require_identity()
        config = self.session.config

        pending = config.remote.model_copy()
        if local_path:
            location = normalize_path(Path(local_path).expanduser())
            if pending.backend != RemoteBackendType.LOCAL or pending.location != location:
                pending = RemoteConfig(backend=RemoteBackendType.LOCAL, location=location)
        elif gist and pending.backend != RemoteBackendType.GIST:
            pending = RemoteConfig(backend=RemoteBackendType.GIST)
        if container_id:
            pending.id = container_id

        if token:
            try:
                store_token(token)
            except KeyStorageError as exc:
                logger.warning("Could not store token: %s", exc)

        backend = self._backend(pending, token)
        if not pending.id:
            created = backend.create({RECIPIENTS_FILE: render_ledger([identity.recipient])})
            if not created.id:
                raise RemoteAPIError(f"{backend.name} create returned no container id")
            pending.id = created.id

        container = backend.get(pending.id)
        merged = unique_recipients(
            config.recipients
            + self._remote_recipients(backend, container)
            + [identity.recipient]
        )
        backend.update(pending.id, {RECIPIENTS_FILE: render_ledger(merged)})

        pending.owner = container.owner
        config.remote = pending
        self.session.config_store.add_recipients(merged)
        self.session.config_store.save()
        logger.info("Linked %s container %s (%d recipients)", backend.name, pending.id, len(merged))
        return config.remote

    def sync(self, token: Optional[str] = None) -> SyncReport:
        """Pull newer bundles, then push every local bundle and the ledger.

        Raises:
            NotInitializedError: If this machine has no identity.
            NotLinkedError: If no remote container is linked.
            RemoteAPIError: If fetching or pushing fails.
            StoreIOError: If an adopted bundle cannot be written.
        """
        identity = self._require_identity()
        config = self.session.config
        remote = config.remote
        if not remote.id:
            raise NotLinkedError()

        backend = self._backend(remote, token)
        container = backend.get(remote.id)
        recipients = unique_recipients(
            config.recipients
            + self._remote_recipients(backend, container)
            + [identity.recipient]
        )

        results = []
        for name in sorted(container.files):
            if name == RECIPIENTS_FILE or not name.endswith(PROJECT_SUFFIX):
                continue
            project = name[: -len(PROJECT_SUFFIX)]
            if not project or sanitize_project_name(project) != project:
                logger.warning("Ignoring remote file with unsafe name %r", name)
                continue

            try:
                content = backend.read_file(container.files[name])
            except RemoteAPIError as exc:
                logger.warning("Skipping %s: %s", project, exc)
                content = ""
            if not content.strip():
                results.append(ProjectSyncResult(project=project, decision=AdoptionDecision.SKIPPED_UNREADABLE))
                continue

            decision = self._decide(project, content, identity)
            if decision.adopted:
                self._adopt(project, content)
                logger.info("Adopted remote %s (%s)", project, decision.value)
            elif decision == AdoptionDecision.KEPT_LOCAL:
                logger.info("Kept local %s", project)
            else:
                logger.warning("Skipped remote %s (%s)", project, decision.value)
            results.append(ProjectSyncResult(project=project, decision=decision))

        files = {}
        for path in self.session.bundles.iter_project_files():
            try:
                files[path.name] = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise StoreIOError(f"read project file: {exc}") from exc
        files[RECIPIENTS_FILE] = render_ledger(recipients)
        backend.update(remote.id, files)

        synced_at = utcnow()
        remote.last_synced_at = synced_at
        self.session.config_store.add_recipients(recipients)
        self.session.config_store.save()

        report = SyncReport(
            container_id=remote.id,
            results=results,
            pushed=len(files) - 1,
            recipients=len(recipients),
            synced_at=synced_at,
        )
        logger.info(
            "Synced %s: %d adopted, %d pushed", remote.id, len(report.adopted), report.pushed
        )
        return report

    def _decide(self, project: str, remote_text: str, identity: Identity) -> AdoptionDecision:
        """Apply the whole-bundle last-write-wins rule to one remote blob."""
        local_file = self.session.bundles.project_file(project)
        try:
            local_text = local_file.read_text(encoding="utf-8")
        except FileNotFoundError:
            local_text = ""
        except (OSError, UnicodeDecodeError) as exc:
            logger.debug("Local %s unreadable, presumed corrupt: %s", project, exc)
            local_text = None
        if local_text is not None and not local_text.strip():
            # Missing or blank counts as no local copy.
            return AdoptionDecision.ADOPTED_NEW

        try:
            remote_bundle = decode_bundle(crypto.decrypt(remote_text, identity), project)
        except (DecryptError, DecodeError) as exc:
            logger.debug("Remote %s unreadable with local identity: %s", project, exc)
            return AdoptionDecision.SKIPPED_UNDECRYPTABLE

        if local_text is None:
            return AdoptionDecision.ADOPTED_LOCAL_CORRUPT
        try:
            local_plain = crypto.decrypt(local_text, identity)
        except DecryptError as exc:
            logger.debug("Local %s unreadable, presumed corrupt: %s", project, exc)
            return AdoptionDecision.ADOPTED_LOCAL_CORRUPT
        try:
            local_bundle = decode_bundle(local_plain, project)
        except DecodeError as exc:
            logger.warning("Local %s does not decode, leaving it alone: %s", project, exc)
            return AdoptionDecision.KEPT_LOCAL

        if latest_update(remote_bundle) > latest_update(local_bundle):
            return AdoptionDecision.ADOPTED_NEWER
        return AdoptionDecision.KEPT_LOCAL

    def _adopt(self, project: str, content: str) -> None:
        try:
            write_private(self.session.bundles.project_file(project), content)
        except OSError as exc:
            raise StoreIOError(f"write project file: {exc}") from exc

    def status(self) -> dict[str, Any]:
        """Current linkage and store summary."""
        config = self.session.config
        remote = config.remote
        return {
            "initialized": config.initialized,
            "machine_id": config.machine.id,
            "machine_name": config.machine.name,
            "linked": bool(remote.id),
            "backend": remote.backend.value,
            "container_id": remote.id,
            "owner": remote.owner,
            "location": remote.location,
            "last_synced_at": remote.last_synced_at,
            "recipients": len(config.recipients),
            "projects": sum(1 for _ in self.session.bundles.iter_project_files()),
        }

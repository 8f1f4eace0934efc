"""
Sync data models -- the remote container and the outcome of a sync.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

RECIPIENTS_FILE = "recipients.txt"


class RemoteFile(BaseModel):
    """One blob in a remote container.

    Large files may come back without inline content; ``raw_url`` then
    points at the full body.
    """

    filename: str = ""
    content: Optional[str] = None
    raw_url: Optional[str] = None
    truncated: bool = False
    size: int = 0


class RemoteContainer(BaseModel):
    """A remote blob container: recipients ledger plus one blob per project."""

    id: str
    owner: Optional[str] = None
    files: dict[str, RemoteFile] = Field(default_factory=dict)


class AdoptionDecision(str, Enum):
    """What sync did with one remote project blob."""

    ADOPTED_NEW = "adopted-new"
    ADOPTED_NEWER = "adopted-newer"
    ADOPTED_LOCAL_CORRUPT = "adopted-local-corrupt"
    KEPT_LOCAL = "kept-local"
    SKIPPED_UNDECRYPTABLE = "skipped-undecryptable"
    SKIPPED_UNREADABLE = "skipped-unreadable"

    @property
    def adopted(self) -> bool:
        return self.value.startswith("adopted")


class ProjectSyncResult(BaseModel):
    project: str
    decision: AdoptionDecision


class SyncReport(BaseModel):
    """Summary of a completed sync."""

    container_id: str
    results: list[ProjectSyncResult] = Field(default_factory=list)
    pushed: int = 0
    recipients: int = 0
    synced_at: Optional[datetime] = None

    @property
    def adopted(self) -> list[str]:
        return [r.project for r in self.results if r.decision.adopted]


def parse_ledger(content: Optional[str]) -> list[str]:
    """Recipients ledger is newline separated; blank lines are ignored."""
    return [line.strip() for line in (content or "").splitlines() if line.strip()]


def render_ledger(recipients: list[str]) -> str:
    return "\n".join(sorted(recipients)) + "\n"

"""
Pydantic models for veil's on-disk state.

Config holds only public metadata: machine record, recipients, project
registry and remote linkage. ProjectBundle is the plaintext that gets
encrypted into one file per project.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, field_validator

CONFIG_VERSION = 1
DEFAULT_EXPORT_FORMAT = "env"


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


class KeyStorage(str, Enum):
    """Where the machine's private key lives."""

    FILE = "file"
    KEYCHAIN = "keychain"


class RemoteBackendType(str, Enum):
    """Supported remote container transports."""

    GIST = "gist"
    LOCAL = "local"


class MachineConfig(BaseModel):
    """This installation's identity record. The id never changes once set."""

    id: str = ""
    name: str = ""
    public_key: str = ""
    added_at: Optional[datetime] = None


class RemoteConfig(BaseModel):
    """Linkage to the shared remote container."""

    id: Optional[str] = None
    owner: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    backend: RemoteBackendType = RemoteBackendType.GIST
    location: Optional[str] = None


class Preferences(BaseModel):
    """User preferences."""

    export_format: str = DEFAULT_EXPORT_FORMAT

    @field_validator("export_format", mode="before")
    @classmethod
    def default_format(cls, v: Optional[str]) -> str:
        return v or DEFAULT_EXPORT_FORMAT


class VeilConfig(BaseModel):
    """Complete machine configuration persisted to config.json."""

    version: int = CONFIG_VERSION
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    machine: MachineConfig = Field(default_factory=MachineConfig)
    key_storage: str = ""
    key_file: Optional[str] = None
    projects: dict[str, str] = Field(default_factory=dict)
    path_projects: dict[str, str] = Field(default_factory=dict)
    recipients: list[str] = Field(default_factory=list)
    # Older configs name this section "gist".
    remote: RemoteConfig = Field(
        default_factory=RemoteConfig, validation_alias=AliasChoices("remote", "gist")
    )
    prefs: Preferences = Field(default_factory=Preferences)

    @field_validator("projects", "path_projects", mode="before")
    @classmethod
    def empty_mapping(cls, v: Optional[dict]) -> dict:
        return v if v is not None else {}

    @field_validator("recipients", mode="before")
    @classmethod
    def empty_recipients(cls, v: Optional[list]) -> list:
        return v if v is not None else []

    @field_validator("machine", "remote", "prefs", mode="before")
    @classmethod
    def empty_section(cls, v: Optional[dict]) -> dict:
        return v if v is not None else {}

    @property
    def initialized(self) -> bool:
        """True once a machine id and key storage mode are recorded."""
        return bool(self.machine.id and self.key_storage)


class Secret(BaseModel):
    """One named secret value inside a project bundle."""

    key: str
    value: str = Field(repr=False)
    group: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ProjectBundle(BaseModel):
    """All secrets for one project. Encrypted and stored as a single unit."""

    project: str = ""
    path: str = ""
    secrets: list[Secret] = Field(default_factory=list)

    @field_validator("secrets", mode="before")
    @classmethod
    def empty_secrets(cls, v: Optional[list]) -> list:
        return v if v is not None else []

    @field_validator("project", "path", mode="before")
    @classmethod
    def empty_string(cls, v: Optional[str]) -> str:
        return v if v is not None else ""


class ProjectSummary(BaseModel):
    """Row for project listings."""

    name: str
    path: str = ""
    count: int = 0

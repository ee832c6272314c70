from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

DEFAULT_PORT = 22


class Server(BaseModel):
    """SSH server definition, independent of the source it came from."""

    id: str = ""
    display_name: str = ""
    host: str = ""
    user: str = ""
    port: int = DEFAULT_PORT
    identity_file: str = ""
    proxy: str = ""
    tags: list[str] = Field(default_factory=list)
    notes: str = ""
    project_ids: list[str] = Field(default_factory=list)
    vault_id: str = ""
    favorite: bool = False
    last_connected: datetime | None = None
    remote_project_path: str = ""
    credential_id: str = ""
    vpn_required: bool = False
    source: str = ""

    def check(self) -> None:
        """Raise ValueError if required fields are missing or out of range."""
        if not self.host:
            raise ValueError("server host is required")
        if self.port != 0 and not 1 <= self.port <= 65535:
            raise ValueError(f"server port must be between 1 and 65535, got {self.port}")
        if not self.display_name:
            raise ValueError("server display name is required")

    def target(self) -> str:
        """Return user@host, or just host when no user is set."""
        return f"{self.user}@{self.host}" if self.user else self.host

    def display(self) -> str:
        """Return formatted server display string."""
        return f"{self.display_name}  [{self.target()}:{self.port or DEFAULT_PORT}]"


class Project(BaseModel):
    """Group of servers, usually matched by git remote."""

    id: str = ""
    name: str = ""
    description: str = ""
    git_remote_urls: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def check(self) -> None:
        if not self.name:
            raise ValueError("project name is required")


class CredentialType(str, Enum):
    KEY_FILE = "key_file"
    SSH_AGENT = "ssh_agent"
    PASSWORD = "password"


class Credential(BaseModel):
    """Reference to an authentication method. Secrets live elsewhere."""

    id: str = ""
    name: str = ""
    type: CredentialType = CredentialType.KEY_FILE
    key_file_path: str = ""
    notes: str = ""

    def check(self) -> None:
        if not self.name:
            raise ValueError("credential name is required")
        if self.type is CredentialType.KEY_FILE and not self.key_file_path:
            raise ValueError("key file path is required when credential type is key_file")

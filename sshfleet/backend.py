"""Backend contract shared by every server source.

``Backend`` is the mandatory read surface. Writing, filtering and syncing are
optional capabilities; probe for them with ``isinstance``::

    if isinstance(backend, Writer):
        backend.create_server(server)
    if isinstance(backend, Syncer):
        backend.sync_from_backend(timeout=5.0)

A backend that implements none of them is still fully usable through
``Backend`` alone.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from .models import Credential, Project, Server


class BackendStatus(str, Enum):
    """Availability of a backend, as seen by its most recent health probe."""

    UNKNOWN = "unknown"
    AVAILABLE = "available"
    LOCKED = "locked"
    UNAVAILABLE = "unavailable"

    def __str__(self) -> str:
        return self.value.capitalize()


class ServerFilter(BaseModel):
    """Server query criteria. Unset fields do not constrain the result.

    ``project_id`` must be one of the server's project ids, every entry of
    ``tags`` must be present (case-insensitive), ``favorite`` is tri-state and
    ``query`` is a case-insensitive substring of name, host, user or notes.
    """

    project_id: str = ""
    tags: list[str] = Field(default_factory=list)
    favorite: bool | None = None
    query: str = ""


def match_server(server: Server, criteria: ServerFilter) -> bool:
    """Return True if ``server`` satisfies every set field of ``criteria``."""
    if criteria.project_id and criteria.project_id not in server.project_ids:
        return False
    if criteria.tags:
        have = {t.lower() for t in server.tags}
        if not all(t.lower() in have for t in criteria.tags):
            return False
    if criteria.favorite is not None and server.favorite != criteria.favorite:
        return False
    if criteria.query:
        needle = criteria.query.lower()
        haystack = (server.display_name, server.host, server.user, server.notes)
        if not any(needle in value.lower() for value in haystack):
            return False
    return True


class Backend(ABC):
    """Read-only contract every data source implements."""

    name = "backend"

    @abstractmethod
    def get_server(self, server_id: str) -> Server:
        """Return a server by id or raise ServerNotFoundError."""

    @abstractmethod
    def list_servers(self) -> list[Server]:
        """Return all servers known to the backend."""

    @abstractmethod
    def get_project(self, project_id: str) -> Project:
        """Return a project by id or raise ProjectNotFoundError."""

    @abstractmethod
    def list_projects(self) -> list[Project]:
        """Return all projects; empty when the source has none."""

    @abstractmethod
    def get_credential(self, credential_id: str) -> Credential:
        """Return a credential by id or raise CredentialNotFoundError."""

    @abstractmethod
    def list_credentials(self) -> list[Credential]:
        """Return all credentials; empty when the source has none."""

    @abstractmethod
    def close(self) -> None:
        """Release resources. Calling it twice is harmless."""


@runtime_checkable
class Writer(Protocol):
    def create_server(self, server: Server) -> None: ...

    def update_server(self, server: Server) -> None: ...

    def delete_server(self, server_id: str) -> None: ...

    def create_project(self, project: Project) -> None: ...

    def update_project(self, project: Project) -> None: ...

    def delete_project(self, project_id: str) -> None: ...

    def create_credential(self, credential: Credential) -> None: ...

    def update_credential(self, credential: Credential) -> None: ...

    def delete_credential(self, credential_id: str) -> None: ...


@runtime_checkable
class Filterer(Protocol):
    def filter_servers(self, criteria: ServerFilter) -> list[Server]: ...


@runtime_checkable
class Syncer(Protocol):
    def sync_from_backend(self, timeout: float | None = None) -> None: ...

    def get_status(self) -> BackendStatus: ...

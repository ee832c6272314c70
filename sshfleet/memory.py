from __future__ import annotations

from collections.abc import Iterable

from .backend import Backend, ServerFilter, match_server
from .errors import (
    BackendUnavailableError,
    CredentialNotFoundError,
    DuplicateIDError,
    ProjectNotFoundError,
    ServerNotFoundError,
)
from .locks import ReadWriteLock
from .models import Credential, Project, Server


class MemoryBackend(Backend):
    """Thread-safe in-memory backend with full write and filter support.

    Everything stored or returned is a deep copy, so callers can mutate what
    they pass in or get back without touching the backend's state.
    """

    def __init__(self, name: str = "memory"):
        self.name = name
        self._lock = ReadWriteLock()
        self._servers: dict[str, Server] = {}
        self._projects: dict[str, Project] = {}
        self._credentials: dict[str, Credential] = {}
        self._closed = False

    def seed(
        self,
        servers: Iterable[Server] = (),
        projects: Iterable[Project] = (),
        credentials: Iterable[Credential] = (),
    ) -> None:
        """Load initial data, replacing entries with the same id."""
        with self._lock.write():
            for srv in servers:
                self._servers[srv.id] = srv.model_copy(deep=True)
            for prj in projects:
                self._projects[prj.id] = prj.model_copy(deep=True)
            for cred in credentials:
                self._credentials[cred.id] = cred.model_copy(deep=True)

    def _check_closed(self, op: str) -> None:
        # caller must hold the lock
        if self._closed:
            raise BackendUnavailableError(op, self.name)

    # servers

    def get_server(self, server_id: str) -> Server:
        with self._lock.read():
            self._check_closed("get_server")
            srv = self._servers.get(server_id)
            if srv is None:
                raise ServerNotFoundError("get_server", self.name)
            return srv.model_copy(deep=True)

    def list_servers(self) -> list[Server]:
        with self._lock.read():
            self._check_closed("list_servers")
            return [s.model_copy(deep=True) for s in self._servers.values()]

    def filter_servers(self, criteria: ServerFilter) -> list[Server]:
        with self._lock.read():
            self._check_closed("filter_servers")
            return [s.model_copy(deep=True) for s in self._servers.values() if match_server(s, criteria)]

    def create_server(self, server: Server) -> None:
        with self._lock.write():
            self._check_closed("create_server")
            if server.id in self._servers:
                raise DuplicateIDError("create_server", self.name)
            self._servers[server.id] = server.model_copy(deep=True)

    def update_server(self, server: Server) -> None:
        with self._lock.write():
            self._check_closed("update_server")
            if server.id not in self._servers:
                raise ServerNotFoundError("update_server", self.name)
            self._servers[server.id] = server.model_copy(deep=True)

    def delete_server(self, server_id: str) -> None:
        with self._lock.write():
            self._check_closed("delete_server")
            if self._servers.pop(server_id, None) is None:
                raise ServerNotFoundError("delete_server", self.name)

    # projects

    def get_project(self, project_id: str) -> Project:
        with self._lock.read():
            self._check_closed("get_project")
            prj = self._projects.get(project_id)
            if prj is None:
                raise ProjectNotFoundError("get_project", self.name)
            return prj.model_copy(deep=True)

    def list_projects(self) -> list[Project]:
        with self._lock.read():
            self._check_closed("list_projects")
            return [p.model_copy(deep=True) for p in self._projects.values()]

    def create_project(self, project: Project) -> None:
        with self._lock.write():
            self._check_closed("create_project")
            if project.id in self._projects:
                raise DuplicateIDError("create_project", self.name)
            self._projects[project.id] = project.model_copy(deep=True)

    def update_project(self, project: Project) -> None:
        with self._lock.write():
            self._check_closed("update_project")
            if project.id not in self._projects:
                raise ProjectNotFoundError("update_project", self.name)
            self._projects[project.id] = project.model_copy(deep=True)

    def delete_project(self, project_id: str) -> None:
        with self._lock.write():
            self._check_closed("delete_project")
            if self._projects.pop(project_id, None) is None:
                raise ProjectNotFoundError("delete_project", self.name)

    # credentials

    def get_credential(self, credential_id: str) -> Credential:
        with self._lock.read():
            self._check_closed("get_credential")
            cred = self._credentials.get(credential_id)
            if cred is None:
                raise CredentialNotFoundError("get_credential", self.name)
            return cred.model_copy(deep=True)

    def list_credentials(self) -> list[Credential]:
        with self._lock.read():
            self._check_closed("list_credentials")
            return [c.model_copy(deep=True) for c in self._credentials.values()]

    def create_credential(self, credential: Credential) -> None:
        with self._lock.write():
            self._check_closed("create_credential")
            if credential.id in self._credentials:
                raise DuplicateIDError("create_credential", self.name)
            self._credentials[credential.id] = credential.model_copy(deep=True)

    def update_credential(self, credential: Credential) -> None:
        with self._lock.write():
            self._check_closed("update_credential")
            if credential.id not in self._credentials:
                raise CredentialNotFoundError("update_credential", self.name)
            self._credentials[credential.id] = credential.model_copy(deep=True)

    def delete_credential(self, credential_id: str) -> None:
        with self._lock.write():
            self._check_closed("delete_credential")
            if self._credentials.pop(credential_id, None) is None:
                raise CredentialNotFoundError("delete_credential", self.name)

    def close(self) -> None:
        with self._lock.write():
            self._closed = True

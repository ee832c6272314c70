"""Aggregation of several backends behind one ``Backend``.

Backends are given lowest to highest priority. Reads prefer the highest
priority source: ``list_servers`` keeps the last server seen for each
case-insensitive display name, and lookups by id scan backends in reverse.
Writes go the other way and land on the first writer-capable backend, so the
write target stays stable when more read sources are stacked on top.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import TypeVar

from .backend import Backend, Syncer, Writer
from .errors import (
    CredentialNotFoundError,
    NotFoundError,
    ProjectNotFoundError,
    ReadOnlyError,
    ServerNotFoundError,
)
from .locks import ReadWriteLock
from .models import Credential, Project, Server

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MultiBackend(Backend):
    """Merges servers from several backends and delegates writes."""

    name = "multi"

    def __init__(self, *backends: Backend):
        self._lock = ReadWriteLock()
        self._backends: list[Backend] = list(backends)

    @property
    def backends(self) -> tuple[Backend, ...]:
        with self._lock.read():
            return tuple(self._backends)

    def add_backend(self, backend: Backend) -> None:
        """Append ``backend`` as the new highest priority source."""
        with self._lock.write():
            self._backends.append(backend)

    def syncers(self) -> list[Backend]:
        """Return the constituent backends that support syncing."""
        return [b for b in self.backends if isinstance(b, Syncer)]

    # reads

    def list_servers(self) -> list[Server]:
        merged: dict[str, Server] = {}
        for backend in self.backends:
            try:
                servers = backend.list_servers()
            except Exception as exc:
                logger.debug("Skipping %s in list_servers: %s", backend.name, exc)
                continue
            for server in servers:
                merged[server.display_name.lower()] = server
        return list(merged.values())

    def get_server(self, server_id: str) -> Server:
        found = self._first_hit(lambda b: b.get_server(server_id))
        if found is None:
            raise ServerNotFoundError("get_server", self.name, "server not found in any backend")
        return found

    def get_project(self, project_id: str) -> Project:
        found = self._first_hit(lambda b: b.get_project(project_id))
        if found is None:
            raise ProjectNotFoundError("get_project", self.name, "project not found in any backend")
        return found

    def get_credential(self, credential_id: str) -> Credential:
        found = self._first_hit(lambda b: b.get_credential(credential_id))
        if found is None:
            raise CredentialNotFoundError("get_credential", self.name, "credential not found in any backend")
        return found

    def list_projects(self) -> list[Project]:
        return self._concat(lambda b: b.list_projects())

    def list_credentials(self) -> list[Credential]:
        return self._concat(lambda b: b.list_credentials())

    def _first_hit(self, fetch: Callable[[Backend], T | None]) -> T | None:
        for backend in reversed(self.backends):
            try:
                result = fetch(backend)
            except NotFoundError:
                continue
            except Exception as exc:
                logger.debug("Skipping %s in lookup: %s", backend.name, exc)
                continue
            if result is not None:
                return result
        return None

    def _concat(self, fetch: Callable[[Backend], Iterable[T]]) -> list[T]:
        result: list[T] = []
        for backend in self.backends:
            try:
                result.extend(fetch(backend))
            except Exception as exc:
                logger.debug("Skipping %s: %s", backend.name, exc)
        return result

    # writes

    def _writer(self, op: str) -> Writer:
        for backend in self.backends:
            if isinstance(backend, Writer):
                return backend
        raise ReadOnlyError(op, self.name, "no writer-capable backend available")

    def create_server(self, server: Server) -> None:
        self._writer("create_server").create_server(server)

    def update_server(self, server: Server) -> None:
        self._writer("update_server").update_server(server)

    def delete_server(self, server_id: str) -> None:
        self._writer("delete_server").delete_server(server_id)

    def create_project(self, project: Project) -> None:
        self._writer("create_project").create_project(project)

    def update_project(self, project: Project) -> None:
        self._writer("update_project").update_project(project)

    def delete_project(self, project_id: str) -> None:
        self._writer("delete_project").delete_project(project_id)

    def create_credential(self, credential: Credential) -> None:
        self._writer("create_credential").create_credential(credential)

    def update_credential(self, credential: Credential) -> None:
        self._writer("update_credential").update_credential(credential)

    def delete_credential(self, credential_id: str) -> None:
        self._writer("delete_credential").delete_credential(credential_id)

    def close(self) -> None:
        """Close every backend, then raise the first failure if any."""
        first_error: Exception | None = None
        # closing a vault joins its poller, whose observer may read through us
        for backend in self.backends:
            try:
                backend.close()
            except Exception as exc:
                logger.warning("Closing %s failed: %s", backend.name, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

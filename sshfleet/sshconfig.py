from __future__ import annotations

import threading
from pathlib import Path

import paramiko

from .backend import Backend
from .errors import (
    BackendError,
    BackendUnavailableError,
    CredentialNotFoundError,
    ProjectNotFoundError,
    ServerNotFoundError,
)
from .models import DEFAULT_PORT, Credential, Project, Server

SOURCE_NAME = "ssh-config"


def parse_port(value: str | None) -> int:
    """Return ``value`` as a port number, 22 when empty or invalid."""
    try:
        port = int(value or "")
    except ValueError:
        return DEFAULT_PORT
    return port if 1 <= port <= 65535 else DEFAULT_PORT


def _is_pattern(name: str) -> bool:
    return any(ch in name for ch in "*?!")


class SSHConfigBackend(Backend):
    """Read-only view of the concrete Host entries in an OpenSSH config file.

    Wildcard Host patterns are not listed but their options still apply to
    the hosts they match.
    """

    name = "sshconfig"

    def __init__(self, config_path: str | Path):
        self.config_path = Path(config_path).expanduser()
        self._lock = threading.Lock()
        self._closed = False
        try:
            config = paramiko.SSHConfig.from_path(str(self.config_path))
        except OSError as exc:
            raise BackendError("open", self.name, exc) from exc
        aliases = sorted(name for name in config.get_hostnames() if not _is_pattern(name))
        self._servers = [self._to_server(config, alias) for alias in aliases]

    def _to_server(self, config: paramiko.SSHConfig, alias: str) -> Server:
        options = config.lookup(alias)
        identity_files = options.get("identityfile") or []
        return Server(
            id=alias,
            display_name=alias,
            host=options.get("hostname") or alias,
            user=options.get("user", ""),
            port=parse_port(options.get("port")),
            identity_file=identity_files[0] if identity_files else "",
            proxy=options.get("proxyjump", ""),
            notes=f"Source: {self.config_path}",
            source=SOURCE_NAME,
        )

    def _check_closed(self, op: str) -> None:
        with self._lock:
            if self._closed:
                raise BackendUnavailableError(op, self.name)

    def get_server(self, server_id: str) -> Server:
        self._check_closed("get_server")
        for server in self._servers:
            if server.id == server_id:
                return server.model_copy(deep=True)
        raise ServerNotFoundError("get_server", self.name)

    def list_servers(self) -> list[Server]:
        self._check_closed("list_servers")
        return [s.model_copy(deep=True) for s in self._servers]

    def get_project(self, project_id: str) -> Project:
        self._check_closed("get_project")
        raise ProjectNotFoundError("get_project", self.name)

    def list_projects(self) -> list[Project]:
        self._check_closed("list_projects")
        return []

    def get_credential(self, credential_id: str) -> Credential:
        self._check_closed("get_credential")
        raise CredentialNotFoundError("get_credential", self.name)

    def list_credentials(self) -> list[Credential]:
        self._check_closed("list_credentials")
        return []

    def close(self) -> None:
        with self._lock:
            self._closed = True

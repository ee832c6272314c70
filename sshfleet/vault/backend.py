"""Backend that keeps servers as tagged items in a password-manager vault.

Only items carrying the membership tag are treated as servers. The backend
keeps the last scan in memory, tracks whether the vault answered its most
recent health probe, and can persist every successful sync to a fallback
cache file that is loaded on the next start while the vault is still locked.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from ..backend import Backend, BackendStatus, ServerFilter, match_server
from ..cache import read_cache, write_cache
from ..errors import (
    BackendError,
    BackendUnavailableError,
    BackendValidationError,
    CredentialNotFoundError,
    ProjectNotFoundError,
    ReadOnlyError,
    ServerNotFoundError,
)
from ..locks import ReadWriteLock
from ..models import Credential, Project, Server
from .client import Client, Vault, VaultTimeoutError
from .mapping import SOURCE_NAME, MappingError, has_membership_tag, item_to_server, server_to_item
from .poller import Poller
from .status import classify_probe_error

logger = logging.getLogger(__name__)


def _remaining(deadline: float | None) -> float | None:
    if deadline is None:
        return None
    left = deadline - time.monotonic()
    if left <= 0:
        raise VaultTimeoutError("sync deadline exceeded")
    return left


class VaultBackend(Backend):
    name = "vault"

    def __init__(self, client: Client, cache_path: Path | None = None):
        self._client = client
        self._cache_path = Path(cache_path) if cache_path is not None else None
        self._lock = ReadWriteLock()
        self._servers: list[Server] = []
        self._status = BackendStatus.UNKNOWN
        self._closed = False
        self._last_write: float | None = None
        self._last_sync: datetime | None = None
        self._poller: Poller | None = None
        self._poller_lock = threading.Lock()

    def _check_closed(self, op: str) -> None:
        # caller must hold the lock
        if self._closed:
            raise BackendUnavailableError(op, self.name)

    def _cached(self, server_id: str) -> Server | None:
        # caller must hold the lock
        for server in self._servers:
            if server.id == server_id:
                return server
        return None

    def _collect(self, vaults: list[Vault], deadline: float | None) -> list[Server]:
        """Map every tagged item of ``vaults``. Vaults and items that fail are skipped."""
        servers: list[Server] = []
        for vault in vaults:
            try:
                items = self._client.list_items(vault.id, timeout=_remaining(deadline))
            except Exception as exc:
                if deadline is not None and isinstance(exc, TimeoutError):
                    raise
                logger.warning("Skipping vault %s: %s", vault.name or vault.id, exc)
                continue
            for item in items:
                if not has_membership_tag(item.tags):
                    continue
                try:
                    servers.append(item_to_server(item))
                except MappingError as exc:
                    logger.warning("Skipping item: %s", exc)
        return servers

    # reads

    def list_servers(self) -> list[Server]:
        """Rescan the vault and return copies of the tagged servers.

        When the vault cannot be listed, the servers from the last sync or
        cache load are returned instead.
        """
        with self._lock.read():
            self._check_closed("list_servers")
        try:
            servers = self._collect(self._client.list_vaults(), None)
        except Exception as exc:
            logger.info("Vault unreachable, serving cached servers: %s", exc)
            with self._lock.read():
                self._check_closed("list_servers")
                return [s.model_copy(deep=True) for s in self._servers]
        with self._lock.write():
            self._check_closed("list_servers")
            self._servers = servers
            return [s.model_copy(deep=True) for s in servers]

    def get_server(self, server_id: str) -> Server:
        with self._lock.read():
            self._check_closed("get_server")
            server = self._cached(server_id)
            if server is None:
                raise ServerNotFoundError("get_server", self.name)
            return server.model_copy(deep=True)

    def filter_servers(self, criteria: ServerFilter) -> list[Server]:
        """Filter the cached servers without contacting the vault."""
        with self._lock.read():
            self._check_closed("filter_servers")
            return [s.model_copy(deep=True) for s in self._servers if match_server(s, criteria)]

    def get_project(self, project_id: str) -> Project:
        with self._lock.read():
            self._check_closed("get_project")
        raise ProjectNotFoundError("get_project", self.name)

    def list_projects(self) -> list[Project]:
        # projects live as tags on items
        with self._lock.read():
            self._check_closed("list_projects")
        return []

    def get_credential(self, credential_id: str) -> Credential:
        with self._lock.read():
            self._check_closed("get_credential")
        raise CredentialNotFoundError("get_credential", self.name)

    def list_credentials(self) -> list[Credential]:
        # credentials are embedded in items
        with self._lock.read():
            self._check_closed("list_credentials")
        return []

    # writes

    def create_server(self, server: Server) -> None:
        """Create ``server`` in the vault named by ``server.vault_id``."""
        with self._lock.read():
            self._check_closed("create_server")
        if not server.vault_id:
            raise BackendValidationError("create_server", self.name, "vault_id must be set")
        try:
            server.check()
        except ValueError as exc:
            raise BackendValidationError("create_server", self.name, exc) from exc

        try:
            created = self._client.create_item(server_to_item(server, server.vault_id))
            new_server = item_to_server(created)
        except Exception as exc:
            raise BackendError("create_server", self.name, exc) from exc

        with self._lock.write():
            self._check_closed("create_server")
            self._servers.append(new_server)
            self._last_write = time.monotonic()

    def update_server(self, server: Server) -> None:
        """Update the vault item behind ``server``.

        The vault comes from the cached copy when there is one, otherwise
        from ``server.vault_id``.
        """
        with self._lock.read():
            self._check_closed("update_server")
            cached = self._cached(server.id)
            vault_id = cached.vault_id if cached is not None and cached.vault_id else server.vault_id
        if not vault_id:
            raise ServerNotFoundError("update_server", self.name)
        try:
            server.check()
        except ValueError as exc:
            raise BackendValidationError("update_server", self.name, exc) from exc

        try:
            existing = self._client.get_item(vault_id, server.id)
            updated = server_to_item(server, vault_id)
            updated.id = existing.id
            updated.vault_id = existing.vault_id
            self._client.update_item(updated)
        except Exception as exc:
            raise BackendError("update_server", self.name, exc) from exc

        stored = server.model_copy(deep=True)
        stored.vault_id = vault_id
        with self._lock.write():
            self._check_closed("update_server")
            for i, current in enumerate(self._servers):
                if current.id == server.id:
                    self._servers[i] = stored
                    break
            else:
                self._servers.append(stored)
            self._last_write = time.monotonic()

    def delete_server(self, server_id: str) -> None:
        with self._lock.read():
            self._check_closed("delete_server")
            cached = self._cached(server_id)
            vault_id = cached.vault_id if cached is not None else ""
        if not vault_id:
            raise ServerNotFoundError("delete_server", self.name)

        try:
            self._client.delete_item(vault_id, server_id)
        except Exception as exc:
            raise BackendError("delete_server", self.name, exc) from exc

        with self._lock.write():
            self._check_closed("delete_server")
            self._servers = [s for s in self._servers if s.id != server_id]
            self._last_write = time.monotonic()

    def create_project(self, project: Project) -> None:
        raise ReadOnlyError("create_project", self.name)

    def update_project(self, project: Project) -> None:
        raise ReadOnlyError("update_project", self.name)

    def delete_project(self, project_id: str) -> None:
        raise ReadOnlyError("delete_project", self.name)

    def create_credential(self, credential: Credential) -> None:
        raise ReadOnlyError("create_credential", self.name)

    def update_credential(self, credential: Credential) -> None:
        raise ReadOnlyError("update_credential", self.name)

    def delete_credential(self, credential_id: str) -> None:
        raise ReadOnlyError("delete_credential", self.name)

    # sync and status

    def get_status(self) -> BackendStatus:
        with self._lock.read():
            return self._status

    def _set_status(self, status: BackendStatus) -> None:
        with self._lock.write():
            self._status = status

    @property
    def last_sync(self) -> datetime | None:
        """Time of the last successful sync, or of the loaded cache snapshot."""
        with self._lock.read():
            return self._last_sync

    def mark_written(self) -> None:
        """Record a local write so the poller holds off for a while."""
        with self._lock.write():
            self._last_write = time.monotonic()

    def seconds_since_last_write(self) -> float | None:
        with self._lock.read():
            if self._last_write is None:
                return None
            return time.monotonic() - self._last_write

    def sync_from_vault(self, timeout: float | None = None) -> None:
        """Refresh the servers from the vault and update the status.

        A failed vault probe sets LOCKED or UNAVAILABLE, keeps the current
        servers, and raises BackendUnavailableError. A successful sync
        replaces the servers, sets AVAILABLE and writes the fallback cache.
        """
        with self._lock.read():
            self._check_closed("sync_from_vault")
        deadline = time.monotonic() + timeout if timeout is not None else None

        try:
            vaults = self._client.list_vaults(timeout=_remaining(deadline))
            servers = self._collect(vaults, deadline)
        except Exception as exc:
            status = classify_probe_error(exc)
            self._set_status(status)
            logger.debug("Vault sync failed (%s): %s", status, exc)
            raise BackendUnavailableError("sync_from_vault", self.name, exc) from exc

        synced_at = datetime.now(timezone.utc)
        with self._lock.write():
            self._check_closed("sync_from_vault")
            self._servers = servers
            self._status = BackendStatus.AVAILABLE
            self._last_sync = synced_at

        if self._cache_path is not None:
            try:
                write_cache(servers, self._cache_path, last_sync=synced_at)
            except Exception as exc:
                logger.warning("Could not write vault cache %s: %s", self._cache_path, exc)

    def sync_from_backend(self, timeout: float | None = None) -> None:
        self.sync_from_vault(timeout=timeout)

    def load_from_cache(self) -> None:
        """Replace the in-memory servers with the fallback cache file."""
        if self._cache_path is None:
            raise BackendError("load_from_cache", self.name, "cache path not set")
        try:
            servers, last_sync = read_cache(self._cache_path)
        except Exception as exc:
            raise BackendError("load_from_cache", self.name, exc) from exc
        for server in servers:
            server.source = SOURCE_NAME
        with self._lock.write():
            self._check_closed("load_from_cache")
            self._servers = servers
            self._last_sync = last_sync

    # polling

    def start_polling(
        self,
        interval: float | None = None,
        on_change: Callable[[BackendStatus], None] | None = None,
    ) -> Poller:
        """Start a background poller, replacing any running one."""
        with self._poller_lock:
            with self._lock.read():
                self._check_closed("start_polling")
            if self._poller is not None:
                self._poller.stop()
            self._poller = Poller(self, interval=interval, on_change=on_change)
            self._poller.start()
            return self._poller

    def stop_polling(self) -> None:
        with self._poller_lock:
            poller, self._poller = self._poller, None
        if poller is not None:
            poller.stop()

    def close(self) -> None:
        with self._lock.write():
            if self._closed:
                return
            self._closed = True
        self.stop_polling()
        try:
            self._client.close()
        except Exception as exc:
            raise BackendError("close", self.name, exc) from exc

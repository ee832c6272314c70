from __future__ import annotations

import threading
import uuid

from .client import Client, Item, Vault, VaultClientError


class MemoryClient(Client):
    """In-memory vault client for tests and offline demos.

    Errors can be injected per operation (``set_error("list_vaults", exc)``)
    or per vault (``set_vault_error("vault-1", exc)``, raised by list_items).
    Every call is appended to ``calls`` as ``(operation, *args)``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._vaults: dict[str, Vault] = {}
        self._items: dict[str, Item] = {}
        self._errors: dict[str, Exception] = {}
        self._vault_errors: dict[str, Exception] = {}
        self.calls: list[tuple] = []
        self.closed = False

    def add_vault(self, vault: Vault) -> None:
        with self._lock:
            self._vaults[vault.id] = vault.model_copy()

    def add_item(self, item: Item) -> None:
        with self._lock:
            self._items[item.id] = item.model_copy(deep=True)

    def set_error(self, operation: str, err: Exception) -> None:
        with self._lock:
            self._errors[operation] = err

    def clear_error(self, operation: str) -> None:
        with self._lock:
            self._errors.pop(operation, None)

    def set_vault_error(self, vault_id: str, err: Exception) -> None:
        with self._lock:
            self._vault_errors[vault_id] = err

    def _enter(self, operation: str, *args: object) -> None:
        # caller must hold the lock
        self.calls.append((operation, *args))
        if self.closed:
            raise VaultClientError("client is closed")
        err = self._errors.get(operation)
        if err is not None:
            raise err

    def list_vaults(self, *, timeout: float | None = None) -> list[Vault]:
        with self._lock:
            self._enter("list_vaults")
            return [v.model_copy() for v in self._vaults.values()]

    def list_items(self, vault_id: str, *, timeout: float | None = None) -> list[Item]:
        with self._lock:
            self._enter("list_items", vault_id)
            if vault_id in self._vault_errors:
                raise self._vault_errors[vault_id]
            if vault_id not in self._vaults:
                raise VaultClientError(f"vault not found: {vault_id}")
            return [i.model_copy(deep=True) for i in self._items.values() if i.vault_id == vault_id]

    def get_item(self, vault_id: str, item_id: str, *, timeout: float | None = None) -> Item:
        with self._lock:
            self._enter("get_item", vault_id, item_id)
            item = self._items.get(item_id)
            if item is None:
                raise VaultClientError(f"item not found: {item_id}")
            if item.vault_id != vault_id:
                raise VaultClientError(f"item {item_id} not in vault {vault_id}")
            return item.model_copy(deep=True)

    def create_item(self, item: Item, *, timeout: float | None = None) -> Item:
        with self._lock:
            self._enter("create_item", item.id)
            if item.vault_id not in self._vaults:
                raise VaultClientError(f"vault not found: {item.vault_id}")
            stored = item.model_copy(deep=True)
            if not stored.id:
                stored.id = uuid.uuid4().hex
            if stored.id in self._items:
                raise VaultClientError(f"item already exists: {stored.id}")
            self._items[stored.id] = stored
            return stored.model_copy(deep=True)

    def update_item(self, item: Item, *, timeout: float | None = None) -> Item:
        with self._lock:
            self._enter("update_item", item.id)
            if item.id not in self._items:
                raise VaultClientError(f"item not found: {item.id}")
            self._items[item.id] = item.model_copy(deep=True)
            return item.model_copy(deep=True)

    def delete_item(self, vault_id: str, item_id: str, *, timeout: float | None = None) -> None:
        with self._lock:
            self._enter("delete_item", vault_id, item_id)
            item = self._items.get(item_id)
            if item is None:
                raise VaultClientError(f"item not found: {item_id}")
            if item.vault_id != vault_id:
                raise VaultClientError(f"item {item_id} not in vault {vault_id}")
            del self._items[item_id]

    def close(self) -> None:
        with self._lock:
            self.closed = True

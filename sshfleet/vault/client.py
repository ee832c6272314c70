"""Vault data types and the client contract the vault backend talks to."""

from __future__ import annotations

from abc import ABC, abstractmethod

from pydantic import BaseModel, Field


class VaultClientError(Exception):
    """A vault operation failed."""


class VaultLockedError(VaultClientError):
    """The vault is locked or the session is not signed in."""


class VaultTimeoutError(VaultClientError, TimeoutError):
    """A vault operation did not finish in time."""


class Vault(BaseModel):
    id: str
    name: str = ""


class ItemField(BaseModel):
    id: str = ""
    title: str = ""
    section_id: str | None = None
    value: str = ""
    field_type: str = "Text"


class Item(BaseModel):
    id: str = ""
    title: str = ""
    vault_id: str = ""
    category: str = "server"
    tags: list[str] = Field(default_factory=list)
    fields: list[ItemField] = Field(default_factory=list)


class Client(ABC):
    """Vault and item CRUD.

    ``timeout`` is the number of seconds the call may take; ``None`` leaves it
    to the implementation.
    """

    @abstractmethod
    def list_vaults(self, *, timeout: float | None = None) -> list[Vault]: ...

    @abstractmethod
    def list_items(self, vault_id: str, *, timeout: float | None = None) -> list[Item]: ...

    @abstractmethod
    def get_item(self, vault_id: str, item_id: str, *, timeout: float | None = None) -> Item: ...

    @abstractmethod
    def create_item(self, item: Item, *, timeout: float | None = None) -> Item: ...

    @abstractmethod
    def update_item(self, item: Item, *, timeout: float | None = None) -> Item: ...

    @abstractmethod
    def delete_item(self, vault_id: str, item_id: str, *, timeout: float | None = None) -> None: ...

    @abstractmethod
    def close(self) -> None: ...

"""Vault client that drives the 1Password ``op`` command line tool."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from collections.abc import Callable

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from .client import Client, Item, ItemField, Vault, VaultClientError, VaultLockedError, VaultTimeoutError

logger = logging.getLogger(__name__)

LOCKED_STDERR_MARKERS = (
    "locked",
    "session expired",
    "not currently signed in",
    "not signed in",
    "authorization prompt dismissed",
)

Runner = Callable[..., subprocess.CompletedProcess]


class _CLIVault(BaseModel):
    id: str
    name: str = ""


class _CLIRef(BaseModel):
    id: str = ""


class _CLIField(BaseModel):
    id: str = ""
    label: str = ""
    type: str = ""
    value: str = ""
    section: _CLIRef | None = None


class _CLIItem(BaseModel):
    id: str
    title: str = ""
    category: str = ""
    tags: list[str] = Field(default_factory=list)
    vault: _CLIRef = Field(default_factory=_CLIRef)
    fields: list[_CLIField] = Field(default_factory=list)


_vault_list = TypeAdapter(list[_CLIVault])
_overview_list = TypeAdapter(list[_CLIRef])


def map_field_type(cli_type: str) -> str:
    if cli_type.lower() in ("concealed", "password"):
        return "Concealed"
    return "Text"


def _to_item(cli_item: _CLIItem) -> Item:
    return Item(
        id=cli_item.id,
        title=cli_item.title,
        vault_id=cli_item.vault.id,
        category=cli_item.category.lower(),
        tags=list(cli_item.tags),
        fields=[
            ItemField(
                id=f.id,
                title=f.label,
                section_id=f.section.id if f.section else None,
                value=f.value,
                field_type=map_field_type(f.type),
            )
            for f in cli_item.fields
        ],
    )


def _assignments(item: Item) -> list[str]:
    return [f"{field.title}[text]={field.value}" for field in item.fields]


class CLIClient(Client):
    """Runs ``op <args> --format json`` and parses the output.

    ``runner`` defaults to ``subprocess.run`` and is replaceable in tests.
    """

    def __init__(
        self,
        op_path: str = "op",
        account: str | None = None,
        timeout: float = 15.0,
        runner: Runner | None = None,
    ):
        resolved = shutil.which(op_path) if runner is None else op_path
        if resolved is None:
            raise VaultClientError(f"op CLI not found in PATH: {op_path}")
        self.op_path = resolved
        self.account = account
        self.timeout = timeout
        self._run = runner or subprocess.run

    def _op(self, *args: str, timeout: float | None = None) -> str:
        cmd = [self.op_path]
        if self.account:
            cmd += ["--account", self.account]
        cmd += list(args)
        env = {**os.environ, "OP_BIOMETRIC_UNLOCK_ENABLED": "true"}
        logger.debug("Running %s", " ".join(cmd[:4]))
        try:
            proc = self._run(  # noqa: S603
                cmd,
                capture_output=True,
                text=True,
                env=env,
                timeout=timeout if timeout is not None else self.timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise VaultTimeoutError(f"op command timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise VaultClientError(f"op command failed: {exc}") from exc

        if proc.returncode != 0:
            stderr = (proc.stderr or "").strip()
            message = f"op command failed with exit code {proc.returncode}"
            if stderr:
                message += f" (stderr: {stderr})"
            if any(marker in stderr.lower() for marker in LOCKED_STDERR_MARKERS):
                raise VaultLockedError(message)
            raise VaultClientError(message)
        return proc.stdout

    def list_vaults(self, *, timeout: float | None = None) -> list[Vault]:
        output = self._op("vault", "list", "--format", "json", timeout=timeout)
        try:
            vaults = _vault_list.validate_json(output)
        except ValidationError as exc:
            raise VaultClientError(f"failed to parse vault list response: {exc}") from exc
        return [Vault(id=v.id, name=v.name) for v in vaults]

    def list_items(self, vault_id: str, *, timeout: float | None = None) -> list[Item]:
        output = self._op("item", "list", "--vault", vault_id, "--format", "json", timeout=timeout)
        try:
            overviews = _overview_list.validate_json(output)
        except ValidationError as exc:
            raise VaultClientError(f"failed to parse item list response: {exc}") from exc

        items = []
        for overview in overviews:
            try:
                items.append(self.get_item(vault_id, overview.id, timeout=timeout))
            except VaultTimeoutError:
                raise
            except VaultClientError as exc:
                # deleted concurrently, or no access
                logger.debug("Skipping item %s in vault %s: %s", overview.id, vault_id, exc)
        return items

    def get_item(self, vault_id: str, item_id: str, *, timeout: float | None = None) -> Item:
        output = self._op("item", "get", item_id, "--vault", vault_id, "--format", "json", timeout=timeout)
        try:
            return _to_item(_CLIItem.model_validate_json(output))
        except ValidationError as exc:
            raise VaultClientError(f"failed to parse item response: {exc}") from exc

    def create_item(self, item: Item, *, timeout: float | None = None) -> Item:
        args = ["item", "create", "--category", item.category, "--vault", item.vault_id, "--title", item.title]
        if item.tags:
            args += ["--tags", ",".join(item.tags)]
        args += ["--format", "json"]
        output = self._op(*args, *_assignments(item), timeout=timeout)
        try:
            created = _CLIRef.model_validate_json(output)
        except ValidationError as exc:
            raise VaultClientError(f"failed to parse create item response: {exc}") from exc
        return self.get_item(item.vault_id, created.id, timeout=timeout)

    def update_item(self, item: Item, *, timeout: float | None = None) -> Item:
        if not item.id:
            raise VaultClientError("item ID is required for update")
        args = ["item", "edit", item.id, "--vault", item.vault_id]
        if item.title:
            args += ["--title", item.title]
        if item.tags:
            args += ["--tags", ",".join(item.tags)]
        args += ["--format", "json"]
        self._op(*args, *_assignments(item), timeout=timeout)
        return self.get_item(item.vault_id, item.id, timeout=timeout)

    def delete_item(self, vault_id: str, item_id: str, *, timeout: float | None = None) -> None:
        self._op("item", "delete", item_id, "--vault", vault_id, timeout=timeout)

    def close(self) -> None:
        """Nothing to release; every call is a separate process."""

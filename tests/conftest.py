"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from sshfleet.models import Server
from sshfleet.vault.backend import VaultBackend
from sshfleet.vault.client import Item, ItemField, Vault
from sshfleet.vault.memory import MemoryClient


@pytest.fixture
def runner() -> CliRunner:
    """Provide Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def temp_config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Create temporary config directory and patch settings and cache paths."""
    config_dir = tmp_path / "config"
    config_dir.mkdir(parents=True, exist_ok=True)

    def mock_get_paths() -> tuple[Path, Path, Path]:
        return config_dir, config_dir / "settings.json", tmp_path / "cache" / "vault-cache.json"

    monkeypatch.setattr("sshfleet.config.get_paths", mock_get_paths)
    monkeypatch.setattr("sshfleet.cli.get_paths", mock_get_paths)
    return config_dir


@pytest.fixture
def history_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect the connection history to a temporary file."""
    path = tmp_path / "data" / "history.jsonl"
    monkeypatch.setattr("sshfleet.history.get_history_path", lambda: path)
    return path


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "cache" / "vault-cache.json"


def make_item(
    item_id: str,
    title: str,
    host: str,
    user: str = "deploy",
    vault_id: str = "vault-1",
    tags: list[str] | None = None,
    **extra: str,
) -> Item:
    """Build a vault item the way the vault stores a server."""
    fields = [ItemField(title="hostname", value=host), ItemField(title="user", value=user)]
    fields += [ItemField(title=key, value=value) for key, value in extra.items()]
    return Item(
        id=item_id,
        title=title,
        vault_id=vault_id,
        tags=["sshfleet"] if tags is None else tags,
        fields=fields,
    )


@pytest.fixture
def memory_client() -> MemoryClient:
    """Vault client with two vaults, two tagged servers and one unrelated login."""
    client = MemoryClient()
    client.add_vault(Vault(id="vault-1", name="Personal"))
    client.add_vault(Vault(id="vault-2", name="Work"))
    client.add_item(make_item("item-1", "prod-web", "10.0.0.1", tags=["sshfleet", "prod"], port="2222"))
    client.add_item(make_item("item-2", "staging-db", "10.0.0.2", vault_id="vault-2", tags=["SSHFleet"]))
    client.add_item(make_item("item-3", "bank login", "bank.example.com", tags=["finance"]))
    return client


@pytest.fixture
def vault_backend(memory_client: MemoryClient, cache_path: Path):
    backend = VaultBackend(memory_client, cache_path=cache_path)
    yield backend
    backend.close()


@pytest.fixture
def sample_servers() -> list[Server]:
    """Provide sample servers for tests."""
    return [
        Server(
            id="srv-1",
            display_name="prod-web",
            host="192.168.1.10",
            user="admin",
            tags=["prod", "web"],
            notes="Production web server",
            project_ids=["shop"],
            favorite=True,
        ),
        Server(id="srv-2", display_name="dev-box", host="192.168.1.20", user="root", port=2222, tags=["dev"]),
        Server(id="srv-3", display_name="bastion", host="example.com", user="user"),
    ]

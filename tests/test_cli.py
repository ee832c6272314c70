"""Tests for CLI commands."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from sshfleet.cli import app, find_server
from sshfleet.history import HistoryEntry, load_history
from sshfleet.memory import MemoryBackend
from sshfleet.models import Server
from sshfleet.multi import MultiBackend
from sshfleet.vault.backend import VaultBackend
from sshfleet.vault.client import VaultLockedError
from sshfleet.vault.memory import MemoryClient

pytestmark = pytest.mark.usefixtures("history_file")


class KeptMemoryBackend(MemoryBackend):
    """Memory backend that stays readable after the CLI closes it."""

    def __init__(self) -> None:
        super().__init__("memory")
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1


@pytest.fixture
def memory(sample_servers: list[Server]) -> KeptMemoryBackend:
    backend = KeptMemoryBackend()
    backend.seed(servers=sample_servers)
    return backend


@pytest.fixture
def use_backends(monkeypatch: pytest.MonkeyPatch):
    """Make the CLI use the given backends instead of the user's configuration."""

    def install(*backends) -> None:
        monkeypatch.setattr("sshfleet.cli.build_backend", lambda: MultiBackend(*backends))

    return install


def test_cli_help(runner: CliRunner):
    """Test --help output."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "sshfleet" in result.stdout
    assert "Commands" in result.stdout or "commands" in result.stdout.lower()


def test_help_flag_alias(runner: CliRunner):
    """Test -h alias for --help flag."""
    result = runner.invoke(app, ["-h"])
    assert result.exit_code == 0
    assert "sshfleet" in result.stdout


def test_list_command_empty(runner: CliRunner, use_backends):
    """Test list command with no servers."""
    use_backends()
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "No servers" in result.stdout


def test_list_command_with_servers(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test list command shows servers and closes the backends."""
    use_backends(memory)
    result = runner.invoke(app, ["list"])
    assert result.exit_code == 0
    assert "prod-web" in result.stdout
    assert "dev-box" in result.stdout
    assert "bastion" in result.stdout
    assert memory.close_calls == 1


def test_list_merges_vault(runner: CliRunner, use_backends, memory: KeptMemoryBackend, memory_client: MemoryClient):
    """Test vault servers override same-named servers from earlier sources."""
    use_backends(memory, VaultBackend(memory_client))
    result = runner.invoke(app, ["ls"])
    assert result.exit_code == 0
    assert "staging-db" in result.stdout
    assert "vault" in result.stdout
    assert "192.168.1.10" not in result.stdout


@pytest.mark.parametrize(
    ("command", "alias"),
    [
        ("list", "ls"),
        ("show", "s"),
        ("add", "a"),
        ("edit", "e"),
        ("remove", "rm"),
        ("connect", "c"),
    ],
)
def test_command_aliases(runner: CliRunner, command: str, alias: str):
    """Test every command alias is registered."""
    main = runner.invoke(app, [command, "--help"])
    short = runner.invoke(app, [alias, "--help"])
    assert main.exit_code == 0
    assert short.exit_code == 0


def test_show(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test show prints the details of one server."""
    use_backends(memory)
    result = runner.invoke(app, ["show", "prod"])
    assert result.exit_code == 0
    assert "Production web server" in result.stdout
    assert "shop" in result.stdout


def test_show_not_found(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test show with an unknown query."""
    use_backends(memory)
    result = runner.invoke(app, ["show", "nonexistent"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_add_to_vault(runner: CliRunner, use_backends, memory_client: MemoryClient):
    """Test add creates a tagged item in the chosen vault."""
    use_backends(VaultBackend(memory_client))
    result = runner.invoke(
        app,
        ["add", "--name", "new-box", "--host", "10.0.0.9", "--user", "ops", "--port", "22", "--vault", "vault-1"],
    )
    assert result.exit_code == 0
    assert "Added" in result.stdout
    assert ("create_item", "") in memory_client.calls


def test_add_without_writer(runner: CliRunner, use_backends):
    """Test add fails when no source can store servers."""
    use_backends()
    result = runner.invoke(
        app,
        ["add", "--name", "x", "--host", "h", "--user", "u", "--port", "22", "--vault", "vault-1"],
    )
    assert result.exit_code == 1
    assert "Add failed" in result.stdout


def test_edit(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test edit saves prompted values and keeps defaults."""
    use_backends(memory)
    result = runner.invoke(app, ["edit", "bastion"], input="jump-host\n\n\n2200\n\n\nedge\n")
    assert result.exit_code == 0
    assert "Saved" in result.stdout

    server = memory.get_server("srv-3")
    assert server.display_name == "jump-host"
    assert server.host == "example.com"
    assert server.port == 2200
    assert server.tags == ["edge"]


def test_remove_confirmed(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test remove deletes after confirmation."""
    use_backends(memory)
    result = runner.invoke(app, ["rm", "dev-box"], input="y\n")
    assert result.exit_code == 0
    assert "Removed" in result.stdout
    assert {s.id for s in memory.list_servers()} == {"srv-1", "srv-3"}


def test_remove_declined(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test remove keeps the server when not confirmed."""
    use_backends(memory)
    result = runner.invoke(app, ["remove", "dev-box"], input="n\n")
    assert result.exit_code == 1
    assert len(memory.list_servers()) == 3


def test_connect(runner: CliRunner, use_backends, memory: KeptMemoryBackend, monkeypatch: pytest.MonkeyPatch):
    """Test connect hands the selected server to ssh and returns its exit code."""
    connected: list[Server] = []

    def fake_connect(server: Server) -> int:
        connected.append(server)
        return 5

    monkeypatch.setattr("sshfleet.cli.connect", fake_connect)
    use_backends(memory)
    result = runner.invoke(app, ["c", "srv-2"])
    assert result.exit_code == 5
    assert connected[0].display_name == "dev-box"


def test_connect_records_history(
    runner: CliRunner, use_backends, memory: KeptMemoryBackend, monkeypatch: pytest.MonkeyPatch, history_file: Path
):
    """Test a connection is written to the history."""
    monkeypatch.setattr("sshfleet.cli.connect", lambda server: 0)
    use_backends(memory)

    result = runner.invoke(app, ["connect", "dev-box"])

    assert result.exit_code == 0
    entries = load_history(history_file)
    assert [(e.host_name, e.hostname, e.user) for e in entries] == [("dev-box", "192.168.1.20", "root")]


def test_connect_without_ssh_records_nothing(
    runner: CliRunner, use_backends, memory: KeptMemoryBackend, monkeypatch: pytest.MonkeyPatch, history_file: Path
):
    """Test no history is written when ssh is missing."""
    monkeypatch.setattr("sshfleet.cli.connect", lambda server: 127)
    use_backends(memory)

    result = runner.invoke(app, ["connect", "dev-box"])

    assert result.exit_code == 127
    assert not history_file.exists()


def test_show_last_connected(runner: CliRunner, use_backends, memory: KeptMemoryBackend, history_file: Path):
    """Test show includes the last connection time from the history."""
    when = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
    history_file.parent.mkdir(parents=True)
    history_file.write_text(HistoryEntry(timestamp=when, host_name="bastion").model_dump_json() + "\n")
    use_backends(memory)

    result = runner.invoke(app, ["show", "bastion"])

    assert result.exit_code == 0
    assert "Last connected" in result.stdout
    assert when.astimezone().strftime("%m-%d %H:%M") in result.stdout


def test_recent(runner: CliRunner, history_file: Path):
    """Test recent lists hosts newest first."""
    history_file.parent.mkdir(parents=True)
    history_file.write_text(
        HistoryEntry(timestamp=datetime(2026, 10, 18, tzinfo=timezone.utc), host_name="old-box").model_dump_json()
        + "\n"
        + HistoryEntry(timestamp=datetime(2026, 10, 19, tzinfo=timezone.utc), host_name="new-box").model_dump_json()
        + "\n"
    )

    result = runner.invoke(app, ["recent"])

    assert result.exit_code == 0
    assert result.stdout.index("new-box") < result.stdout.index("old-box")


def test_recent_empty(runner: CliRunner):
    """Test recent without history."""
    result = runner.invoke(app, ["recent"])
    assert result.exit_code == 0
    assert "No connections" in result.stdout


def test_sync_available(runner: CliRunner, use_backends, memory_client: MemoryClient):
    """Test sync reports an available vault."""
    use_backends(VaultBackend(memory_client))
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 0
    assert "Available" in result.stdout


def test_sync_locked(runner: CliRunner, use_backends, memory_client: MemoryClient):
    """Test sync reports a locked vault and fails."""
    memory_client.set_error("list_vaults", VaultLockedError("locked"))
    use_backends(VaultBackend(memory_client))
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "Locked" in result.stdout


def test_sync_without_vault(runner: CliRunner, use_backends, memory: KeptMemoryBackend):
    """Test sync needs a sync-capable source."""
    use_backends(memory)
    result = runner.invoke(app, ["sync"])
    assert result.exit_code == 1
    assert "No sync-capable source" in result.stdout


def test_status(runner: CliRunner, use_backends, memory_client: MemoryClient):
    """Test status probes the vault and prints the result."""
    memory_client.set_error("list_vaults", VaultLockedError("locked"))
    use_backends(VaultBackend(memory_client))
    result = runner.invoke(app, ["status"])
    assert result.exit_code == 0
    assert "vault" in result.stdout
    assert "Locked" in result.stdout


def test_watch_without_vault(runner: CliRunner, use_backends):
    """Test watch needs a vault source."""
    use_backends()
    result = runner.invoke(app, ["watch"])
    assert result.exit_code == 1
    assert "not configured" in result.stdout


@pytest.mark.parametrize(
    ("query", "expected_id"),
    [
        ("srv-2", "srv-2"),
        ("PROD-WEB", "srv-1"),
        ("bast", "srv-3"),
        ("o", None),
        ("missing", None),
    ],
)
def test_find_server(sample_servers: list[Server], query: str, expected_id: str | None):
    """Test lookup by id, exact name and unique partial name."""
    found = find_server(sample_servers, query)
    assert (found.id if found else None) == expected_id

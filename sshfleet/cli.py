from __future__ import annotations

import contextlib
import logging
import os
import time
from collections.abc import Iterator
from datetime import datetime

import typer
from InquirerPy import inquirer
from rich.console import Console
from rich.table import Table

from . import history
from .backend import BackendStatus, Syncer
from .config import get_paths, load_settings
from .errors import BackendError
from .log import configure_logging
from .models import DEFAULT_PORT, Server
from .multi import MultiBackend
from .ssh import connect
from .sshconfig import SSHConfigBackend
from .vault.backend import VaultBackend
from .vault.cli_client import CLIClient
from .vault.client import VaultClientError
from .vault.poller import SYNC_TIMEOUT

logger = logging.getLogger(__name__)


class OrderCommands(typer.core.TyperGroup):
    """Custom group to sort commands alphabetically in help."""

    def list_commands(self, ctx):
        return sorted(super().list_commands(ctx))


app = typer.Typer(
    help="sshfleet: SSH servers from your ssh config and your 1Password vault in one list.",
    cls=OrderCommands,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)
console = Console()

STATUS_STYLES = {
    BackendStatus.AVAILABLE: "green",
    BackendStatus.LOCKED: "yellow",
    BackendStatus.UNAVAILABLE: "red",
    BackendStatus.UNKNOWN: "dim",
}


@app.callback()
def main_options(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs")) -> None:
    configure_logging(verbose)


def build_backend() -> MultiBackend:
    """Assemble the configured sources, lowest priority first."""
    settings = load_settings()
    _, _, cache_file = get_paths()
    multi = MultiBackend()

    try:
        multi.add_backend(SSHConfigBackend(settings.ssh_config_path))
    except BackendError as exc:
        logger.info("SSH config not loaded: %s", exc)

    if settings.vault_enabled:
        try:
            client = CLIClient(settings.op_path, account=settings.vault_account, timeout=settings.command_timeout)
        except VaultClientError as exc:
            logger.warning("Vault disabled: %s", exc)
        else:
            vault = VaultBackend(client, cache_path=cache_file)
            try:
                vault.load_from_cache()
            except BackendError as exc:
                logger.debug("No vault cache: %s", exc)
            multi.add_backend(vault)
    return multi


@contextlib.contextmanager
def open_backend() -> Iterator[MultiBackend]:
    multi = build_backend()
    try:
        yield multi
    finally:
        try:
            multi.close()
        except BackendError as exc:
            logger.warning("Close failed: %s", exc)


def _format_when(when: datetime | None) -> str:
    if when is None:
        return ""
    return when.astimezone().strftime("%m-%d %H:%M")


def _with_history(servers: list[Server]) -> list[Server]:
    try:
        history.apply_last_connected(servers)
    except OSError as exc:
        logger.warning("Could not read connection history: %s", exc)
    return servers


def _print_servers(servers: list[Server]) -> None:
    """Print servers table."""
    table = Table(title="Servers")
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Name", style="bold")
    table.add_column("Connection")
    table.add_column("Source", justify="center", no_wrap=True)
    table.add_column("Tags")
    table.add_column("Last", no_wrap=True)

    for s in servers:
        table.add_row(
            s.id[:8],
            s.display_name,
            f"{s.target()}:{s.port or DEFAULT_PORT}",
            s.source,
            ", ".join(s.tags),
            _format_when(s.last_connected),
        )

    console.print(table)


def _status_line(backend: Syncer) -> str:
    status = backend.get_status()
    style = STATUS_STYLES[status]
    line = f"{getattr(backend, 'name', 'backend')}: [{style}]{status}[/{style}]"
    last_sync = getattr(backend, "last_sync", None)
    if last_sync is not None:
        line += f" [dim](last sync {last_sync:%Y-%m-%d %H:%M:%S} UTC)[/dim]"
    return line


def find_server(servers: list[Server], query: str) -> Server | None:
    """Find server by ID, exact name, or unique partial name."""
    for s in servers:
        if s.id == query:
            return s
    matches = [s for s in servers if s.display_name.lower() == query.lower()]
    if len(matches) == 1:
        return matches[0]
    contains = [s for s in servers if query.lower() in s.display_name.lower()]
    if len(contains) == 1:
        return contains[0]
    return None


def _select_server(servers: list[Server], query: str | None, action: str, default: str | None = None) -> Server:
    if not servers:
        console.print("[yellow]No servers found.[/yellow]")
        raise typer.Exit(1)

    if query is not None:
        srv = find_server(servers, query)
        if not srv:
            console.print("[red]Server not found[/red]")
            raise typer.Exit(1)
        return srv

    ordered = sorted(servers, key=lambda x: x.display_name.lower())
    preselected = next((s.display() for s in ordered if default and s.display_name == default), None)
    try:
        selected = inquirer.select(
            message=f"Select server to {action}:",
            choices=[s.display() for s in ordered],
            default=preselected,
            cycle=True,
            vi_mode=False,
            instruction="↑↓ navigate, search by name",
        ).execute()
    except KeyboardInterrupt:
        console.print("\n[dim]Cancelled.[/dim]")
        raise typer.Exit(0)

    for s in ordered:
        if s.display() == selected:
            return s
    console.print("[red]Failed to identify server[/red]")
    raise typer.Exit(1)


def _split_tags(value: str) -> list[str]:
    return [t.strip() for t in value.split(",") if t.strip()]


@app.command("list", help="Show servers from all sources. Alias: ls")
@app.command("ls", hidden=True)
def list_servers() -> None:
    """Show servers from all sources."""
    with open_backend() as multi:
        servers = _with_history(multi.list_servers())
    if not servers:
        console.print("[yellow]No servers found. Add one: sshfleet add[/yellow]")
        return
    _print_servers(sorted(servers, key=lambda s: s.display_name.lower()))


@app.command("show", help="Show server details. Alias: s")
@app.command("s", hidden=True)
def show(query: str = typer.Argument(..., help="ID/name/partial name")) -> None:
    """Show server details."""
    with open_backend() as multi:
        srv = _select_server(_with_history(multi.list_servers()), query, "show")

    table = Table(show_header=False, box=None)
    table.add_column(style="bold")
    table.add_column()
    for label, value in [
        ("ID", srv.id),
        ("Name", srv.display_name),
        ("Connection", f"{srv.target()}:{srv.port or DEFAULT_PORT}"),
        ("Identity file", srv.identity_file),
        ("Proxy", srv.proxy),
        ("Remote path", srv.remote_project_path),
        ("Projects", ", ".join(srv.project_ids)),
        ("Tags", ", ".join(srv.tags)),
        ("Vault", srv.vault_id),
        ("Source", srv.source),
        ("Notes", srv.notes),
        ("Last connected", _format_when(srv.last_connected)),
    ]:
        if value:
            table.add_row(label, value)
    console.print(table)


@app.command("add", help="Add a server to the vault. Alias: a")
@app.command("a", hidden=True)
def add_server(
    name: str = typer.Option(..., prompt=True, help="Display name"),
    host: str = typer.Option(..., prompt=True),
    user: str = typer.Option(..., prompt=True),
    port: int = typer.Option(DEFAULT_PORT, prompt=True),
    vault: str = typer.Option(..., prompt=True, help="Target vault ID"),
    identity_file: str = typer.Option("", help="Path to private key"),
    proxy: str = typer.Option("", help="ProxyJump host"),
    tags: str = typer.Option("", help="Comma separated tags"),
    notes: str = typer.Option("", help="Free-form notes"),
):
    """Add a server to the vault."""
    server = Server(
        display_name=name,
        host=host,
        user=user,
        port=port,
        vault_id=vault,
        identity_file=identity_file,
        proxy=proxy,
        tags=_split_tags(tags),
        notes=notes,
    )
    with open_backend() as multi:
        try:
            multi.create_server(server)
        except BackendError as exc:
            console.print(f"[red]Add failed: {exc}[/red]")
            raise typer.Exit(1)
    console.print(f"[green]Added:[/green] {server.display()}")


@app.command("edit", help="Edit a vault server. Alias: e")
@app.command("e", hidden=True)
def edit(query: str = typer.Argument(..., help="ID/name/partial name")):
    """Edit a vault server."""
    with open_backend() as multi:
        srv = _select_server(multi.list_servers(), query, "edit")
        try:
            srv.display_name = typer.prompt("Name", default=srv.display_name)
            srv.host = typer.prompt("Host", default=srv.host)
            srv.user = typer.prompt("User", default=srv.user)
            srv.port = int(typer.prompt("Port", default=str(srv.port or DEFAULT_PORT)))
            srv.identity_file = typer.prompt("Key path (empty for none)", default=srv.identity_file)
            srv.proxy = typer.prompt("ProxyJump (empty for none)", default=srv.proxy)
            srv.tags = _split_tags(typer.prompt("Tags", default=", ".join(srv.tags)))
        except (KeyboardInterrupt, typer.Abort):
            console.print("\n[dim]Cancelled.[/dim]")
            raise typer.Exit(0)

        try:
            multi.update_server(srv)
        except BackendError as exc:
            console.print(f"[red]Save failed: {exc}[/red]")
            raise typer.Exit(1)
    console.print("[green]Saved.[/green]")


@app.command("remove", help="Remove a vault server. Alias: rm")
@app.command("rm", hidden=True)
def remove(query: str | None = typer.Argument(None, help="ID/name/partial name (optional)")):
    """Remove a vault server."""
    with open_backend() as multi:
        srv = _select_server(multi.list_servers(), query, "remove")
        try:
            if not typer.confirm(f"Remove '{srv.display_name}' ({srv.target()}:{srv.port or DEFAULT_PORT})?"):
                raise typer.Exit(1)
        except (KeyboardInterrupt, typer.Abort):
            console.print("\n[dim]Cancelled.[/dim]")
            raise typer.Exit(0)

        try:
            multi.delete_server(srv.id)
        except BackendError as exc:
            console.print(f"[red]Remove failed: {exc}[/red]")
            raise typer.Exit(1)
    console.print("[green]Removed.[/green]")


@app.command("connect", help="Connect to a server. Alias: c")
@app.command("c", hidden=True)
def connect_cmd(query: str | None = typer.Argument(None, help="ID/name/partial name (optional)")):
    """Connect to a server."""
    last_here = None
    if query is None:
        try:
            last_here = history.last_connected_for_path(os.getcwd())
        except OSError as exc:
            logger.debug("No connection history: %s", exc)

    with open_backend() as multi:
        srv = _select_server(
            multi.list_servers(), query, "connect", default=last_here.host_name if last_here else None
        )
    rc = connect(srv)
    if rc != 127:
        try:
            history.record_connection(srv)
        except OSError as exc:
            logger.warning("Could not record connection: %s", exc)
    raise typer.Exit(rc)


@app.command("recent")
def recent(limit: int = typer.Option(10, "--limit", "-n", help="Number of hosts to show")) -> None:
    """Show the most recently connected hosts."""
    hosts = history.recent_hosts(limit=limit)
    if not hosts:
        console.print("[yellow]No connections recorded yet.[/yellow]")
        return
    table = Table(title="Recent connections")
    table.add_column("Name", style="bold")
    table.add_column("Last connected", no_wrap=True)
    for name, when in hosts.items():
        table.add_row(name, when.astimezone().strftime("%Y-%m-%d %H:%M"))
    console.print(table)


@app.command("sync")
def sync() -> None:
    """Sync every sync-capable source once and show its status."""
    failed = False
    with open_backend() as multi:
        syncers = multi.syncers()
        if not syncers:
            console.print("[yellow]No sync-capable source configured.[/yellow]")
            raise typer.Exit(1)
        for backend in syncers:
            try:
                backend.sync_from_backend(timeout=SYNC_TIMEOUT)
            except BackendError as exc:
                failed = True
                logger.info("Sync failed: %s", exc)
            console.print(_status_line(backend))
    if failed:
        raise typer.Exit(1)


@app.command("status")
def status() -> None:
    """Show the status of every sync-capable source."""
    with open_backend() as multi:
        syncers = multi.syncers()
        if not syncers:
            console.print("[yellow]No sync-capable source configured.[/yellow]")
            return
        for backend in syncers:
            with contextlib.suppress(BackendError):
                backend.sync_from_backend(timeout=SYNC_TIMEOUT)
            console.print(_status_line(backend))


@app.command("watch")
def watch(
    interval: float = typer.Option(0.0, help="Seconds between polls (0 uses SSHFLEET_VAULT_POLL_INTERVAL or 5s)"),
) -> None:
    """Poll the vault and print status changes until interrupted."""

    def report(new_status: BackendStatus) -> None:
        style = STATUS_STYLES[new_status]
        console.print(f"{time.strftime('%H:%M:%S')} vault: [{style}]{new_status}[/{style}]")

    with open_backend() as multi:
        vaults = [b for b in multi.backends if isinstance(b, VaultBackend)]
        if not vaults:
            console.print("[yellow]Vault source is not configured.[/yellow]")
            raise typer.Exit(1)
        for vault in vaults:
            vault.start_polling(interval=interval or None, on_change=report)
        console.print("[dim]Watching vault status, Ctrl+C to stop.[/dim]")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            console.print("\n[dim]Stopped.[/dim]")


def main():
    app()


if __name__ == "__main__":
    main()

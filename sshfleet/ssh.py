from __future__ import annotations

import platform
import shlex
import shutil
import subprocess

from rich.console import Console

from .models import Server
from .sshconfig import SOURCE_NAME as SSH_CONFIG_SOURCE

console = Console()


def has_ssh() -> bool:
    """Check if SSH client is available."""
    return shutil.which("ssh") is not None


def build_ssh_command(server: Server) -> list[str]:
    """Return the ssh argv for ``server``.

    Hosts from the SSH config are addressed by alias so ssh applies the
    config's own options.
    """
    if server.source == SSH_CONFIG_SOURCE:
        return ["ssh", server.id]
    cmd = ["ssh"]
    if server.port:
        cmd += ["-p", str(server.port)]
    if server.identity_file:
        cmd += ["-i", server.identity_file]
    if server.proxy:
        cmd += ["-J", server.proxy]
    if server.remote_project_path:
        cmd.append("-t")
    cmd.append(server.target())
    if server.remote_project_path:
        cmd.append(f"cd {shlex.quote(server.remote_project_path)} && exec $SHELL -l")
    return cmd


def connect(server: Server) -> int:
    """Connect to SSH server. Returns exit code."""
    if not has_ssh():
        console.print("[red]SSH client not found.[/red]")
        system = platform.system()
        if system == "Windows":
            console.print("Install OpenSSH Client: [cyan]winget install --id Microsoft.OpenSSH.Client -e[/cyan]")
        elif system == "Darwin":
            console.print("Try: [cyan]brew install openssh[/cyan]")
        else:
            console.print(
                "Install SSH client via package manager:\n"
                "  • Ubuntu/Debian: [cyan]sudo apt install openssh-client[/cyan]\n"
                "  • Fedora/RHEL: [cyan]sudo dnf install openssh-clients[/cyan]"
            )
        return 127

    cmd = build_ssh_command(server)
    console.print(f"[cyan]SSH: {' '.join(cmd)}[/cyan]")
    try:
        return subprocess.call(cmd)  # noqa: S603
    except KeyboardInterrupt:
        return 130
    except OSError as e:
        console.print(f"[red]SSH execution error: {e}[/red]")
        return 1

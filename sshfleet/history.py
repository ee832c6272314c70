"""Connection history.

Every connection is appended as one JSON object per line to ``history.jsonl``
in the user data directory. Unreadable lines are skipped when reading back.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from platformdirs import user_data_dir
from pydantic import BaseModel, Field, ValidationError

from .config import APP_NAME
from .models import Server

logger = logging.getLogger(__name__)


class HistoryEntry(BaseModel):
    """One recorded connection."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    working_dir: str = ""
    host_name: str = ""
    hostname: str = ""
    user: str = ""


def get_history_path() -> Path:
    return Path(user_data_dir(APP_NAME, appauthor=False)) / "history.jsonl"


def record_connection(server: Server, path: Path | None = None, working_dir: str | None = None) -> HistoryEntry:
    """Append a connection to ``server`` and return the stored entry."""
    path = Path(path) if path is not None else get_history_path()
    if working_dir is None:
        try:
            working_dir = os.getcwd()
        except OSError:
            working_dir = ""
    entry = HistoryEntry(
        working_dir=working_dir,
        host_name=server.display_name,
        hostname=server.host,
        user=server.user,
    )
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as fh:
        fh.write(entry.model_dump_json() + "\n")
    os.chmod(path, 0o600)
    return entry


def load_history(path: Path | None = None) -> list[HistoryEntry]:
    """Return all readable entries, oldest first. A missing file means no history."""
    path = Path(path) if path is not None else get_history_path()
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return []
    entries = []
    for line in lines:
        if not line.strip():
            continue
        try:
            entries.append(HistoryEntry.model_validate_json(line))
        except ValidationError:
            logger.debug("Skipping malformed history line: %r", line[:80])
    return entries


def recent_hosts(path: Path | None = None, limit: int | None = None) -> dict[str, datetime]:
    """Map each host name to its latest connection time, newest first.

    ``limit`` keeps only the most recently used hosts.
    """
    latest: dict[str, datetime] = {}
    for entry in load_history(path):
        seen = latest.get(entry.host_name)
        if seen is None or entry.timestamp > seen:
            latest[entry.host_name] = entry.timestamp
    ordered = sorted(latest.items(), key=lambda kv: kv[1], reverse=True)
    if limit is not None:
        ordered = ordered[:limit]
    return dict(ordered)


def last_connected_for_path(working_dir: str, path: Path | None = None) -> HistoryEntry | None:
    """Return the most recent connection made from ``working_dir``."""
    for entry in reversed(load_history(path)):
        if entry.working_dir == working_dir:
            return entry
    return None


def apply_last_connected(servers: list[Server], path: Path | None = None) -> None:
    """Fill ``last_connected`` on ``servers`` from the history, matched by name."""
    latest = recent_hosts(path)
    for server in servers:
        server.last_connected = latest.get(server.display_name)

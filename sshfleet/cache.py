"""Durable snapshot of the servers from the last successful vault sync.

The file is JSON::

    {"version": 1, "last_sync": "2026-10-19T08:00:00Z", "servers": [...]}

Empty optional fields are left out of each server record. Writes go through a
temporary file in the same directory followed by ``os.replace``, so readers
only ever see a complete file.
"""

from __future__ import annotations

import contextlib
import json
import os
import stat
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .models import DEFAULT_PORT, Server

CACHE_VERSION = 1

_OPTIONAL_FIELDS = ("identity_file", "proxy", "remote_project_path", "project_ids", "tags", "notes")


class CacheError(Exception):
    """Cache file exists but cannot be used."""


class CachedServer(BaseModel):
    id: str = ""
    display_name: str = ""
    host: str = ""
    user: str = ""
    port: int = DEFAULT_PORT
    identity_file: str = ""
    proxy: str = ""
    remote_project_path: str = ""
    project_ids: list[str] = Field(default_factory=list)
    vault_id: str = ""
    tags: list[str] = Field(default_factory=list)
    notes: str = ""

    @classmethod
    def from_server(cls, server: Server) -> CachedServer:
        return cls.model_validate(server.model_dump(include=set(cls.model_fields)))

    def to_server(self) -> Server:
        return Server.model_validate(self.model_dump())

    def to_record(self) -> dict:
        record = self.model_dump()
        for key in _OPTIONAL_FIELDS:
            if not record[key]:
                del record[key]
        return record


class CacheFile(BaseModel):
    version: int = CACHE_VERSION
    last_sync: datetime
    servers: list[CachedServer] = Field(default_factory=list)


def write_cache(servers: list[Server], path: Path, last_sync: datetime | None = None) -> None:
    """Atomically replace the cache at ``path`` with ``servers``."""
    path = Path(path)
    stamp = last_sync or datetime.now(timezone.utc)
    payload = {
        "version": CACHE_VERSION,
        "last_sync": stamp.isoformat(),
        "servers": [CachedServer.from_server(s).to_record() for s in servers],
    }
    data = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")

    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fsync(fh.fileno())
        os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def read_cache(path: Path) -> tuple[list[Server], datetime]:
    """Load servers and the last sync time.

    Raises FileNotFoundError when there is no cache yet and CacheError when
    the content is malformed or written by an unknown version.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CacheError(f"decode cache {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise CacheError(f"decode cache {path}: expected an object")
    if data.get("version") != CACHE_VERSION:
        raise CacheError(f"unsupported cache version {data.get('version')!r} in {path}")
    try:
        cache = CacheFile.model_validate(data)
    except ValidationError as exc:
        raise CacheError(f"invalid cache {path}: {exc}") from exc
    return [c.to_server() for c in cache.servers], cache.last_sync

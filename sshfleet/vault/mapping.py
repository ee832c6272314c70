"""Conversion between vault items and servers."""

from __future__ import annotations

from ..models import DEFAULT_PORT, Server
from .client import Item, ItemField

MEMBERSHIP_TAG = "sshfleet"
SOURCE_NAME = "vault"


class MappingError(ValueError):
    """Item lacks a field required to build a server."""


def has_membership_tag(tags: list[str]) -> bool:
    return any(tag.lower() == MEMBERSHIP_TAG for tag in tags)


def _split_list(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def item_to_server(item: Item) -> Server:
    """Build a server from ``item``; raise MappingError if hostname or user is missing."""
    server = Server(
        id=item.id,
        display_name=item.title,
        vault_id=item.vault_id,
        port=DEFAULT_PORT,
        tags=[t for t in item.tags if t.lower() != MEMBERSHIP_TAG],
        source=SOURCE_NAME,
    )

    for field in item.fields:
        title = field.title.lower()
        value = field.value
        if title == "hostname":
            server.host = value
        elif title == "user":
            server.user = value
        elif title == "port":
            try:
                server.port = int(value)
            except ValueError:
                pass
        elif title == "identity_file":
            server.identity_file = value
        elif title == "remote_project_path":
            server.remote_project_path = value
        elif title == "project_tags":
            server.project_ids = _split_list(value)
        elif title == "proxy_jump":
            server.proxy = value
        elif title == "notes":
            server.notes = value

    if not server.host:
        raise MappingError(f"item {item.title!r} (id: {item.id}) missing required field: hostname")
    if not server.user:
        raise MappingError(f"item {item.title!r} (id: {item.id}) missing required field: user")
    return server


def server_to_item(server: Server, vault_id: str) -> Item:
    """Build the item for ``server``. The membership tag always comes first, exactly once."""
    tags = [MEMBERSHIP_TAG] + [t for t in server.tags if t.lower() != MEMBERSHIP_TAG]

    values = [("hostname", server.host), ("user", server.user)]
    if server.port not in (0, DEFAULT_PORT):
        values.append(("port", str(server.port)))
    values += [
        ("identity_file", server.identity_file),
        ("remote_project_path", server.remote_project_path),
        ("project_tags", ",".join(server.project_ids)),
        ("proxy_jump", server.proxy),
        ("notes", server.notes),
    ]
    required = {"hostname", "user"}
    fields = [ItemField(title=title, value=value) for title, value in values if value or title in required]

    return Item(
        id=server.id,
        title=server.display_name,
        vault_id=vault_id,
        category="server",
        tags=tags,
        fields=fields,
    )

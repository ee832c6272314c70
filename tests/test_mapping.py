"""Tests for converting vault items to servers and back."""

from __future__ import annotations

import pytest
from conftest import make_item

from sshfleet.models import Server
from sshfleet.vault.client import Item, ItemField
from sshfleet.vault.mapping import (
    MEMBERSHIP_TAG,
    MappingError,
    has_membership_tag,
    item_to_server,
    server_to_item,
)


@pytest.mark.parametrize(
    ("tags", "expected"),
    [
        (["sshfleet"], True),
        (["prod", "SSHFLEET"], True),
        (["sshfleet-old"], False),
        ([], False),
    ],
)
def test_has_membership_tag(tags: list[str], expected: bool):
    """Test the membership tag matches whole tags case-insensitively."""
    assert has_membership_tag(tags) is expected


def test_item_to_server_full():
    """Test every known field is mapped."""
    item = make_item(
        "item-1",
        "prod-web",
        "10.0.0.1",
        user="deploy",
        tags=["sshfleet", "prod"],
        port="2222",
        identity_file="~/.ssh/id_ed25519",
        remote_project_path="/srv/app",
        project_tags="shop, blog",
        proxy_jump="bastion",
        notes="primary",
    )

    server = item_to_server(item)

    assert server.id == "item-1"
    assert server.display_name == "prod-web"
    assert server.vault_id == "vault-1"
    assert server.host == "10.0.0.1"
    assert server.user == "deploy"
    assert server.port == 2222
    assert server.identity_file == "~/.ssh/id_ed25519"
    assert server.remote_project_path == "/srv/app"
    assert server.project_ids == ["shop", "blog"]
    assert server.proxy == "bastion"
    assert server.notes == "primary"
    assert server.tags == ["prod"]
    assert server.source == "vault"


def test_item_field_titles_are_case_insensitive():
    """Test field titles are matched regardless of case."""
    item = Item(
        id="i",
        title="web",
        tags=["sshfleet"],
        fields=[ItemField(title="Hostname", value="h"), ItemField(title="USER", value="u")],
    )
    server = item_to_server(item)
    assert (server.host, server.user) == ("h", "u")


def test_item_bad_port_defaults():
    """Test an unparsable port falls back to 22."""
    assert item_to_server(make_item("i", "web", "h", port="ssh")).port == 22


@pytest.mark.parametrize(
    ("fields", "missing"),
    [
        ([ItemField(title="user", value="u")], "hostname"),
        ([ItemField(title="hostname", value="h")], "user"),
        ([ItemField(title="hostname", value="h"), ItemField(title="user", value="")], "user"),
    ],
)
def test_item_missing_required(fields: list[ItemField], missing: str):
    """Test items without hostname or user cannot become servers."""
    with pytest.raises(MappingError, match=missing):
        item_to_server(Item(id="i", title="broken", tags=["sshfleet"], fields=fields))


def test_server_to_item_minimal():
    """Test optional fields and the default port are left out."""
    item = server_to_item(Server(id="s", display_name="web", host="h", user="u"), "vault-9")

    assert item.id == "s"
    assert item.title == "web"
    assert item.vault_id == "vault-9"
    assert item.category == "server"
    assert item.tags == [MEMBERSHIP_TAG]
    assert [(f.title, f.value) for f in item.fields] == [("hostname", "h"), ("user", "u")]


def test_server_to_item_full_field_order():
    """Test fields are written in a fixed order."""
    server = Server(
        display_name="web",
        host="h",
        user="u",
        port=2200,
        identity_file="key",
        remote_project_path="/srv",
        project_ids=["a", "b"],
        proxy="jump",
        notes="n",
    )

    item = server_to_item(server, "v")

    assert [(f.title, f.value) for f in item.fields] == [
        ("hostname", "h"),
        ("user", "u"),
        ("port", "2200"),
        ("identity_file", "key"),
        ("remote_project_path", "/srv"),
        ("project_tags", "a,b"),
        ("proxy_jump", "jump"),
        ("notes", "n"),
    ]


def test_server_to_item_membership_tag_once():
    """Test the membership tag is first and never duplicated."""
    server = Server(display_name="web", host="h", user="u", tags=["prod", "SSHFleet"])
    assert server_to_item(server, "v").tags == ["sshfleet", "prod"]


def test_server_survives_conversion():
    """Test a server converted to an item and back keeps its fields."""
    server = Server(
        id="s1",
        display_name="web",
        host="h",
        user="u",
        port=2200,
        proxy="jump",
        project_ids=["shop"],
        tags=["prod"],
        vault_id="v",
        source="vault",
    )
    assert item_to_server(server_to_item(server, "v")) == server

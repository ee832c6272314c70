"""Tests for backend exceptions."""

from __future__ import annotations

import pytest

from sshfleet.errors import (
    BackendError,
    BackendUnavailableError,
    CredentialNotFoundError,
    NotFoundError,
    ProjectNotFoundError,
    ReadOnlyError,
    ServerNotFoundError,
)


def test_error_message_includes_op_and_backend():
    """Test the message names the operation and the backend."""
    err = ServerNotFoundError("get_server", "memory")
    assert str(err) == "get_server: memory backend: server not found"
    assert err.op == "get_server"
    assert err.backend == "memory"


def test_error_custom_detail():
    """Test an explicit detail replaces the default one."""
    err = ReadOnlyError("create_server", "multi", "no writer-capable backend available")
    assert str(err) == "create_server: multi backend: no writer-capable backend available"


@pytest.mark.parametrize("cls", [ServerNotFoundError, ProjectNotFoundError, CredentialNotFoundError])
def test_not_found_hierarchy(cls: type[BackendError]):
    """Test every not-found error can be caught generically."""
    with pytest.raises(NotFoundError):
        raise cls("get", "memory")


def test_cause_is_chained():
    """Test wrapped failures stay reachable through __cause__."""
    root = OSError("connection refused")
    try:
        try:
            raise root
        except OSError as exc:
            raise BackendUnavailableError("sync_from_vault", "vault", exc) from exc
    except BackendError as err:
        assert err.__cause__ is root
        assert "connection refused" in str(err)

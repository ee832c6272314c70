"""Tests for logging setup."""

from __future__ import annotations

import logging

import pytest
from rich.logging import RichHandler

from sshfleet.log import configure_logging


@pytest.mark.parametrize(("verbose", "level"), [(False, logging.WARNING), (True, logging.DEBUG)])
def test_configure_logging(monkeypatch: pytest.MonkeyPatch, verbose: bool, level: int):
    """Test the root logger gets a rich handler at the requested level."""
    captured: dict = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: captured.update(kwargs))

    configure_logging(verbose)

    assert captured["level"] == level
    assert isinstance(captured["handlers"][0], RichHandler)
    assert captured["force"] is False

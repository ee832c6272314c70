from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path

from platformdirs import user_cache_dir, user_config_dir
from pydantic import BaseModel, ValidationError

APP_NAME = "sshfleet"
POLL_INTERVAL_ENV = "SSHFLEET_VAULT_POLL_INTERVAL"
DEFAULT_POLL_INTERVAL = 5.0

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    """User settings stored in settings.json."""

    ssh_config_path: str = "~/.ssh/config"
    vault_enabled: bool = True
    vault_account: str | None = None
    op_path: str = "op"
    command_timeout: float = 15.0


def get_paths() -> tuple[Path, Path, Path]:
    """Return (config dir, settings file, vault cache file)."""
    cfg_dir = Path(user_config_dir(APP_NAME, appauthor=False))
    cfg_dir.mkdir(parents=True, exist_ok=True)
    cache_dir = Path(user_cache_dir(APP_NAME, appauthor=False))
    return cfg_dir, cfg_dir / "settings.json", cache_dir / "vault-cache.json"


def load_settings() -> Settings:
    """Load settings, falling back to defaults when missing or unreadable."""
    _, settings_file, _ = get_paths()
    if not settings_file.exists():
        return Settings()
    try:
        return Settings.model_validate(json.loads(settings_file.read_text(encoding="utf-8")))
    except (OSError, ValueError, ValidationError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", settings_file, exc)
        return Settings()


def save_settings(settings: Settings) -> None:
    cfg_dir, settings_file, _ = get_paths()
    cfg_dir.mkdir(parents=True, exist_ok=True)
    settings_file.write_text(json.dumps(settings.model_dump(), ensure_ascii=False, indent=2), encoding="utf-8")


_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse a duration such as "5m", "1h30m" or "250ms" into seconds."""
    value = text.strip()
    sign = 1.0
    if value and value[0] in "+-":
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
    if value == "0":
        return 0.0
    if not value:
        raise ValueError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(value):
        if match.start() != pos:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value):
        raise ValueError(f"invalid duration {text!r}")
    return sign * total


def poll_interval_from_env(default: float = DEFAULT_POLL_INTERVAL) -> float:
    """Return the poll interval override from the environment, or ``default``."""
    raw = os.environ.get(POLL_INTERVAL_ENV)
    if not raw:
        return default
    try:
        interval = parse_duration(raw)
    except ValueError:
        logger.warning("Ignoring invalid %s=%r", POLL_INTERVAL_ENV, raw)
        return default
    if interval <= 0:
        logger.warning("Ignoring non-positive %s=%r", POLL_INTERVAL_ENV, raw)
        return default
    return interval

"""Utility helpers: XDG paths, file I/O, app configuration."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

log = logging.getLogger(__name__)

APP_NAME = "amc"

DEFAULT_SETTINGS: dict = {
    "debounce_ms": 500,
    "poll_interval": 0,     # seconds; 0 disables polling
    "use_udev": True,
    "retry_delay": 5,       # seconds before reconnecting to the X server
}


def config_dir(override: str | Path | None = None) -> Path:
    """Return ~/.config/amc (or *override*), creating it if needed."""
    if override:
        d = Path(override).expanduser()
    else:
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
        d = base / APP_NAME
    d.mkdir(parents=True, exist_ok=True)
    return d


def setups_dir(base: Path | None = None) -> Path:
    """Return the setups subdirectory."""
    d = (base or config_dir()) / "setups"
    d.mkdir(parents=True, exist_ok=True)
    return d


def read_json(path: Path) -> dict | list | None:
    """Read and parse a JSON file, returning None if it is missing."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return json.loads(text)


def write_json(path: Path, data: dict | list) -> None:
    """Write data as formatted JSON."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


def _settings_path(base: Path | None = None) -> Path:
    """Return the path to the global app settings file."""
    return (base or config_dir()) / "settings.json"


def load_app_settings(base: Path | None = None) -> dict:
    """Load global application settings merged over the defaults."""
    settings = dict(DEFAULT_SETTINGS)
    path = _settings_path(base)
    try:
        data = read_json(path)
    except (OSError, json.JSONDecodeError) as e:
        log.warning("Cannot read %s, using defaults: %s", path, e)
        return settings
    if isinstance(data, dict):
        settings.update(data)
    return settings

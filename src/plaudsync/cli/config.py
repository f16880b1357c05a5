"""Configuration utilities for the plaudsync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

from plaudsync.core.config import get_config_dir
from plaudsync.storage.paths import DATA_DIR_ENV


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text(encoding="utf-8")))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2), encoding="utf-8")


def get_out_dir(explicit: str | Path | None = None) -> Path:
    """Resolve the data directory.

    Precedence: --out, then $PLAUDSYNC_DATA_DIR, then ``out_dir`` in
    config.json, then ~/plaudsync/data.

    Args:
        explicit: Directory given on the command line.

    Returns:
        Absolute path to the data directory.
    """
    if explicit:
        return Path(explicit).expanduser().resolve()
    env = os.environ.get(DATA_DIR_ENV)
    if env:
        return Path(env).expanduser().resolve()
    config = load_config()
    if config.get("out_dir"):
        return Path(config["out_dir"]).expanduser().resolve()
    return Path.home() / "plaudsync" / "data"

"""Platform-specific paths.

Goal: keep user data (the saved session, logs) out of temp / install folders.

We intentionally avoid extra dependencies (e.g. platformdirs) and rely on
standard environment variables.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


def is_windows() -> bool:
    return os.name == "nt"


def get_user_data_dir(app_name: str = "LoopPlayer") -> Path:
    """Return a persistent per-user data directory.

    Windows: %APPDATA%\\LoopPlayer
    Elsewhere: ~/.loopplayer
    """
    if is_windows():
        base = os.getenv("APPDATA")
        if base:
            return Path(base) / app_name
        return Path.home() / "AppData" / "Roaming" / app_name

    return Path.home() / f".{app_name.lower()}"


def get_store_dir(app_name: str = "LoopPlayer") -> Path:
    return get_user_data_dir(app_name) / "store"


def ensure_dir(path: Path) -> Path:
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path

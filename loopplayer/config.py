"""Runtime configuration for the player.

Defaults mirror the constants in :mod:`loopplayer.content.models`. The timing
knobs (strategy threshold, debounce window, refresh rate) are tunables, so
they can be overridden through ``LOOPPLAYER_*`` environment variables; the
CLI writes those variables before the app starts.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, Optional

from .content.models import (
    DEFAULT_INTERVAL_MS,
    INTERVAL_PRESETS_MS,
    MAX_IMAGES,
    MAX_INTERVAL_MS,
    MIN_INTERVAL_MS,
)

logger = logging.getLogger(__name__)

_TRUTHY = ("1", "true", "True", "yes", "on")


@dataclass(frozen=True)
class PlayerConfig:
    default_interval_ms: int = DEFAULT_INTERVAL_MS
    max_images: int = MAX_IMAGES
    min_interval_ms: int = MIN_INTERVAL_MS
    max_interval_ms: int = MAX_INTERVAL_MS
    presets_ms: tuple[int, ...] = INTERVAL_PRESETS_MS
    # Intervals at or below this use the frame-aligned strategy.
    frame_threshold_ms: int = 32
    save_debounce_ms: int = 400
    refresh_hz: float = 60.0
    toggle_key: str = "Space"
    flush_on_close: bool = True
    persist: bool = True
    store_dir: Optional[Path] = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PlayerConfig":
        env = os.environ if environ is None else environ
        config = cls()
        overrides: dict[str, object] = {}

        threshold = _int_env(env, "LOOPPLAYER_FRAME_THRESHOLD_MS", minimum=0)
        if threshold is not None:
            overrides["frame_threshold_ms"] = threshold
        debounce = _int_env(env, "LOOPPLAYER_SAVE_DEBOUNCE_MS", minimum=0)
        if debounce is not None:
            overrides["save_debounce_ms"] = debounce
        refresh = _float_env(env, "LOOPPLAYER_REFRESH_HZ", minimum=1.0)
        if refresh is not None:
            overrides["refresh_hz"] = refresh

        store_dir = env.get("LOOPPLAYER_STORE_DIR", "").strip()
        if store_dir:
            overrides["store_dir"] = Path(store_dir).expanduser()
        if env.get("LOOPPLAYER_NO_FLUSH_ON_CLOSE", "0") in _TRUTHY:
            overrides["flush_on_close"] = False
        if env.get("LOOPPLAYER_NO_PERSIST", "0") in _TRUTHY:
            overrides["persist"] = False

        return replace(config, **overrides) if overrides else config


def _int_env(env: Mapping[str, str], name: str, *, minimum: int) -> Optional[int]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None
    if value < minimum:
        logger.warning("Ignoring %s=%r: must be >= %s", name, raw, minimum)
        return None
    return value


def _float_env(env: Mapping[str, str], name: str, *, minimum: float) -> Optional[float]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not a number", name, raw)
        return None
    if value < minimum:
        logger.warning("Ignoring %s=%r: must be >= %s", name, raw, minimum)
        return None
    return value

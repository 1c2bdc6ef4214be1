"""Data model for the image loop.

``ImageEntry`` pairs a durable data URL (the only thing ever persisted) with
a transient ``ImageHandle`` that owns decoded pixels. ``SessionSnapshot`` is
the persisted shape and knows how to (de)serialize itself.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import Any, Optional

import numpy as np


MAX_IMAGES = 50
MIN_INTERVAL_MS = 16
MAX_INTERVAL_MS = 10_000
DEFAULT_INTERVAL_MS = 100
INTERVAL_PRESETS_MS: tuple[int, ...] = (50, 100, 250, 500)

SNAPSHOT_VERSION = 1

SUPPORTED_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".webp"})


def clamp_interval(value: Any) -> int:
    """Clamp *value* to ``[MIN_INTERVAL_MS, MAX_INTERVAL_MS]``.

    Anything that is not a finite number maps to the minimum.
    """
    try:
        number = float(value)
    except (TypeError, ValueError):
        return MIN_INTERVAL_MS
    if math.isnan(number):
        return MIN_INTERVAL_MS
    number = min(max(number, MIN_INTERVAL_MS), MAX_INTERVAL_MS)
    return int(round(number))


def is_supported_image(name: str) -> bool:
    return PurePath(name).suffix.lower() in SUPPORTED_EXTENSIONS


@dataclass(frozen=True)
class ImportFile:
    """A raw file handed over by the UI or CLI."""

    name: str
    data: bytes
    mime_type: str = ""


@dataclass(slots=True, eq=False)
class ImageHandle:
    """Process-local decoded image, usable for rendering.

    Attributes:
        handle_id: Registry key, unique per process
        width: Image width in pixels
        height: Image height in pixels
        pixels: RGBA pixel data (height, width, 4) uint8; ``None`` once released
    """
    handle_id: int
    width: int
    height: int
    pixels: Optional[np.ndarray]

    def __post_init__(self):
        if self.pixels is None:
            return
        if self.pixels.dtype != np.uint8:
            raise ValueError("Image data must be uint8")
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 4:
            raise ValueError("Image data must be (height, width, 4) RGBA")
        if self.pixels.shape[0] != self.height or self.pixels.shape[1] != self.width:
            raise ValueError(f"Image shape mismatch: {self.pixels.shape} vs ({self.height}, {self.width}, 4)")

    @property
    def released(self) -> bool:
        return self.pixels is None


@dataclass(frozen=True)
class DurableEntry:
    """Persisted projection of an :class:`ImageEntry`."""

    id: str
    display_name: str
    durable_content: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "name": self.display_name, "data_url": self.durable_content}

    @classmethod
    def from_dict(cls, data: Any) -> "DurableEntry":
        if not isinstance(data, dict):
            raise ValueError("Snapshot entry must be an object")
        entry_id = data.get("id")
        content = data.get("data_url")
        if not isinstance(entry_id, str) or not entry_id:
            raise ValueError("Snapshot entry missing id")
        if not isinstance(content, str) or not content:
            raise ValueError(f"Snapshot entry {entry_id} missing data_url")
        name = data.get("name", "")
        return cls(id=entry_id, display_name=str(name or ""), durable_content=content)


@dataclass(eq=False)
class ImageEntry:
    id: str
    display_name: str
    durable_content: str = field(repr=False)
    handle: ImageHandle = field(repr=False)

    def durable(self) -> DurableEntry:
        return DurableEntry(self.id, self.display_name, self.durable_content)


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything that survives a restart: the interval and the entries."""

    interval_ms: int = DEFAULT_INTERVAL_MS
    entries: tuple[DurableEntry, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": SNAPSHOT_VERSION,
            "interval_ms": clamp_interval(self.interval_ms),
            "entries": [entry.to_dict() for entry in self.entries],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "SessionSnapshot":
        """Parse a stored payload.

        Raises:
            ValueError: If the payload is malformed or from a newer schema
        """
        if not isinstance(data, dict):
            raise ValueError("Session snapshot must be an object")
        version = data.get("version", SNAPSHOT_VERSION)
        if not isinstance(version, int) or version > SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported session snapshot version: {version!r}")
        raw_entries = data.get("entries", [])
        if not isinstance(raw_entries, list):
            raise ValueError("Session snapshot entries must be a list")
        entries = tuple(DurableEntry.from_dict(item) for item in raw_entries[:MAX_IMAGES])
        raw_interval = data.get("interval_ms")
        interval = DEFAULT_INTERVAL_MS if raw_interval is None else clamp_interval(raw_interval)
        return cls(interval_ms=interval, entries=entries)

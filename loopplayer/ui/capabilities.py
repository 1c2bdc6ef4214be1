"""Platform capabilities, computed once at startup and injected into the UI."""

from __future__ import annotations

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Qt platform plugins that cannot put a window into real fullscreen.
_NO_FULLSCREEN_PLATFORMS = frozenset({"offscreen", "minimal", "vnc"})


@dataclass(frozen=True)
class PlatformCapabilities:
    platform_name: str = ""
    fullscreen_supported: bool = True
    screen_count: int = 1

    @classmethod
    def detect(cls) -> "PlatformCapabilities":
        """Query the running QGuiApplication."""
        from PyQt6.QtGui import QGuiApplication

        name = QGuiApplication.platformName() or ""
        screens = QGuiApplication.screens()
        caps = cls(
            platform_name=name,
            fullscreen_supported=bool(screens) and name.lower() not in _NO_FULLSCREEN_PLATFORMS,
            screen_count=len(screens),
        )
        logger.info(
            "Platform capabilities: platform=%s fullscreen=%s screens=%d",
            caps.platform_name, caps.fullscreen_supported, caps.screen_count,
        )
        return caps

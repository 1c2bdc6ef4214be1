"""Global play/stop shortcut gating."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class FocusKind(str, Enum):
    """Where keyboard focus is when a key arrives."""

    NONE = "none"
    INPUT = "input"
    TEXTAREA = "textarea"
    SELECT = "select"
    OPTION = "option"
    BUTTON = "button"
    CONTENT_EDITABLE = "content_editable"


# Controls that consume the toggle key themselves.
SUPPRESSING_FOCUS = frozenset(
    {
        FocusKind.INPUT,
        FocusKind.TEXTAREA,
        FocusKind.SELECT,
        FocusKind.OPTION,
        FocusKind.BUTTON,
        FocusKind.CONTENT_EDITABLE,
    }
)


class KeyboardGate:
    """Toggles playback on one designated key.

    Args:
        toggle: Called when the key should flip start/stop
        has_images: Returns whether there is anything to play
        key: Name of the designated key
    """

    def __init__(self, toggle: Callable[[], object], has_images: Callable[[], bool], *, key: str = "Space") -> None:
        self._toggle = toggle
        self._has_images = has_images
        self.key = key

    def handle_key(self, key: str, focus: FocusKind | str = FocusKind.NONE) -> bool:
        """Return True when the key press was consumed by the gate."""
        if key != self.key:
            return False
        try:
            focus = FocusKind(focus)
        except ValueError:
            focus = FocusKind.NONE
        if focus in SUPPRESSING_FOCUS:
            return False
        if not self._has_images():
            return True
        self._toggle()
        logger.debug("Toggle key %s handled", key)
        return True

"""Error taxonomy and the error-observation sink.

None of these errors is fatal: a decode failure drops one entry, persistence
failures degrade the session features, everything else keeps running.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Optional

from .session.events import PlayerEvent, PlayerEventEmitter, PlayerEventType

logger = logging.getLogger(__name__)


class LoopPlayerError(Exception):
    """Base class for player errors."""


class DecodeFailed(LoopPlayerError):
    """Raw bytes or durable content could not be turned into an image."""

    def __init__(self, message: str, *, name: Optional[str] = None) -> None:
        super().__init__(message)
        self.name = name


class PersistenceReadFailed(LoopPlayerError):
    """The saved session could not be read or parsed."""


class PersistenceWriteFailed(LoopPlayerError):
    """The session snapshot could not be written."""


class StorageUnavailable(LoopPlayerError):
    """The key-value store itself is missing or unusable."""


@dataclass(frozen=True)
class ReportedError:
    kind: str
    message: str
    context: str = ""


class ErrorReporter:
    """Sink for non-fatal operational errors.

    Every report is logged and broadcast as an ``ERROR`` event so the UI can
    surface it. The last ``history`` reports are kept for inspection.
    """

    def __init__(self, emitter: Optional[PlayerEventEmitter] = None, *, history: int = 32) -> None:
        self._emitter = emitter
        self._recent: deque[ReportedError] = deque(maxlen=max(1, history))

    @property
    def recent(self) -> list[ReportedError]:
        return list(self._recent)

    def report(self, error: BaseException, *, context: str = "") -> ReportedError:
        item = ReportedError(kind=type(error).__name__, message=str(error), context=context)
        self._recent.append(item)
        if context:
            logger.warning("%s (%s): %s", item.kind, context, item.message)
        else:
            logger.warning("%s: %s", item.kind, item.message)
        if self._emitter is not None:
            self._emitter.emit(
                PlayerEvent(
                    PlayerEventType.ERROR,
                    data={"kind": item.kind, "message": item.message, "context": context},
                )
            )
        return item

    def clear(self) -> None:
        self._recent.clear()

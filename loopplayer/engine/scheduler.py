"""Playback scheduler driving the displayed index.

Two interchangeable advancement sources, picked each time playback starts:

- frame-aligned (interval <= threshold): piggybacks on a display-refresh
  callback and advances once the requested interval has elapsed since the
  last advance. The interval is a minimum spacing, not an exact period.
- fixed-delay (interval > threshold): a one-shot timer at exactly the
  interval that re-arms itself after every advance.

At most one source is pending at any time. Every pending callback is an owned
:class:`SchedulerHandle`, and callbacks carry the generation they were
scheduled under, so a callback that was already queued when ``stop()`` ran
can never advance the index.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional, Protocol

from ..content.collection import ImageCollection
from ..content.models import DEFAULT_INTERVAL_MS, clamp_interval
from ..logging_utils import BurstSampler
from ..session.events import PlayerEvent, PlayerEventEmitter, PlayerEventType

logger = logging.getLogger(__name__)


class _Cancellable(Protocol):
    def cancel(self) -> Any: ...


class TimerHost(Protocol):
    """Anything that can schedule a delayed callback; an asyncio loop qualifies."""

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> _Cancellable: ...

    def time(self) -> float: ...


class SchedulerHandle:
    """Owned reference to one pending callback."""

    __slots__ = ("_cancel", "_cancelled")

    def __init__(self, cancel: Callable[[], Any]) -> None:
        self._cancel = cancel
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._cancel()


class FrameSource(Protocol):
    """Delivers display-refresh callbacks with a timestamp in milliseconds.

    Timestamps must share the scheduler's timer host clock (``time() * 1000``).
    """

    def request_frame(self, callback: Callable[[float], None]) -> SchedulerHandle: ...


class LoopFrameSource:
    """Refresh-rate tick on a timer host, standing in for a vsync callback."""

    def __init__(self, host: TimerHost, refresh_hz: float = 60.0) -> None:
        if refresh_hz <= 0:
            raise ValueError(f"refresh_hz must be positive, got {refresh_hz}")
        self._host = host
        self.frame_s = 1.0 / float(refresh_hz)

    def request_frame(self, callback: Callable[[float], None]) -> SchedulerHandle:
        def _fire() -> None:
            callback(self._host.time() * 1000.0)

        timer = self._host.call_later(self.frame_s, _fire)
        return SchedulerHandle(timer.cancel)


class PlaybackState(Enum):
    STOPPED = "stopped"
    RUNNING = "running"


class TimingStrategy(Enum):
    FRAME_ALIGNED = "frame"
    FIXED_DELAY = "timer"


def choose_strategy(interval_ms: int, frame_threshold_ms: int) -> TimingStrategy:
    if interval_ms <= frame_threshold_ms:
        return TimingStrategy.FRAME_ALIGNED
    return TimingStrategy.FIXED_DELAY


class PlaybackScheduler:
    """Advances ``collection.current_index`` while running.

    Args:
        collection: Collection to read the length from and advance
        host: Timer host; defaults to the running asyncio loop at ``start()``
        frame_source: Refresh callback source; defaults to a
            :class:`LoopFrameSource` on the host
        interval_ms: Initial interval, clamped
        frame_threshold_ms: Intervals at or below this use frame alignment
        refresh_hz: Rate of the default frame source
        emitter: Receives PLAYBACK_STARTED / PLAYBACK_STOPPED (INDEX_CHANGED
            comes from the collection)
    """

    def __init__(
        self,
        collection: ImageCollection,
        *,
        host: Optional[TimerHost] = None,
        frame_source: Optional[FrameSource] = None,
        interval_ms: int = DEFAULT_INTERVAL_MS,
        frame_threshold_ms: int = 32,
        refresh_hz: float = 60.0,
        emitter: Optional[PlayerEventEmitter] = None,
    ) -> None:
        self._collection = collection
        self._host = host
        self._frame_source = frame_source
        self._refresh_hz = refresh_hz
        self._interval_ms = clamp_interval(interval_ms)
        self.frame_threshold_ms = int(frame_threshold_ms)
        self._emitter = emitter or PlayerEventEmitter()

        self._state = PlaybackState.STOPPED
        self._strategy: Optional[TimingStrategy] = None
        self._pending: Optional[SchedulerHandle] = None
        self._generation = 0
        self._baseline_ms = 0.0
        self._closed = False
        self._sampler = BurstSampler(interval_s=2.0)

    # ---- Introspection ----
    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is PlaybackState.RUNNING

    @property
    def strategy(self) -> Optional[TimingStrategy]:
        """Strategy of the current run; None while stopped."""
        return self._strategy

    @property
    def interval_ms(self) -> int:
        return self._interval_ms

    @property
    def pending_sources(self) -> int:
        if self._pending is None or self._pending.cancelled:
            return 0
        return 1

    # ---- Configuration ----
    def set_interval(self, interval_ms: Any) -> int:
        """Store a new clamped interval. A running scheduler keeps its current
        source until :meth:`restart`."""
        self._interval_ms = clamp_interval(interval_ms)
        return self._interval_ms

    # ---- Transitions ----
    def start(self) -> bool:
        if self._closed or self._state is PlaybackState.RUNNING:
            return False
        if len(self._collection) == 0:
            logger.debug("start() ignored: collection is empty")
            return False
        self._state = PlaybackState.RUNNING
        self._arm()
        logger.info(
            "Playback started: interval=%dms strategy=%s images=%d",
            self._interval_ms, self._strategy.value, len(self._collection),
        )
        self._emitter.emit(
            PlayerEvent(
                PlayerEventType.PLAYBACK_STARTED,
                data={"interval_ms": self._interval_ms, "strategy": self._strategy.value},
            )
        )
        return True

    def stop(self, reason: str = "stop") -> bool:
        return self._halt(reason)

    def restart(self) -> bool:
        """Cancel the live source and arm a fresh one from the current interval."""
        if self._state is not PlaybackState.RUNNING:
            return False
        self._disarm()
        if len(self._collection) == 0:
            self._state = PlaybackState.STOPPED
            self._emit_stopped("empty")
            return False
        self._arm()
        logger.debug("Playback restarted: interval=%dms strategy=%s", self._interval_ms, self._strategy.value)
        return True

    def close(self) -> None:
        """Terminal stop; later ``start()`` calls are ignored."""
        self._halt("close")
        self._closed = True

    # ---- Internals ----
    def _resolve_host(self) -> TimerHost:
        if self._host is None:
            self._host = asyncio.get_running_loop()
        return self._host

    def _resolve_frame_source(self) -> FrameSource:
        if self._frame_source is None:
            self._frame_source = LoopFrameSource(self._resolve_host(), self._refresh_hz)
        return self._frame_source

    def _arm(self) -> None:
        self._generation += 1
        self._strategy = choose_strategy(self._interval_ms, self.frame_threshold_ms)
        if self._strategy is TimingStrategy.FRAME_ALIGNED:
            self._baseline_ms = self._resolve_host().time() * 1000.0
            self._request_frame(self._generation)
        else:
            self._schedule_delay(self._generation)

    def _disarm(self) -> None:
        self._generation += 1
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._strategy = None

    def _halt(self, reason: str) -> bool:
        if self._state is PlaybackState.STOPPED:
            self._disarm()
            return False
        self._disarm()
        self._state = PlaybackState.STOPPED
        self._emit_stopped(reason)
        return True

    def _emit_stopped(self, reason: str) -> None:
        flushed = self._sampler.flush()
        if flushed:
            logger.debug("[playback.trace] %d advance(s) before %s", flushed, reason)
        logger.info("Playback stopped (%s) at index %d", reason, self._collection.current_index)
        self._emitter.emit(PlayerEvent(PlayerEventType.PLAYBACK_STOPPED, data={"reason": reason}))

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is PlaybackState.RUNNING

    def _schedule_delay(self, generation: int) -> None:
        timer = self._resolve_host().call_later(self._interval_ms / 1000.0, self._on_timer, generation)
        self._pending = SchedulerHandle(timer.cancel)

    def _request_frame(self, generation: int) -> None:
        self._pending = self._resolve_frame_source().request_frame(
            lambda now_ms: self._on_frame(generation, now_ms)
        )

    def _on_timer(self, generation: int) -> None:
        if not self._is_current(generation):
            return
        self._pending = None
        if not self._advance():
            return
        if not self._is_current(generation):
            return
        self._schedule_delay(generation)

    def _on_frame(self, generation: int, now_ms: float) -> None:
        if not self._is_current(generation):
            return
        self._pending = None
        if now_ms - self._baseline_ms >= self._interval_ms:
            if not self._advance():
                return
            if not self._is_current(generation):
                return
            self._baseline_ms = now_ms
        elif len(self._collection) == 0:
            self._implicit_stop()
            return
        self._request_frame(generation)

    def _advance(self) -> bool:
        if len(self._collection) == 0:
            self._implicit_stop()
            return False
        index = self._collection.advance()
        total = self._sampler.record()
        if total:
            logger.debug(
                "[playback.trace] %d advance(s) in %.1fs window (strategy=%s interval=%dms index=%d)",
                total, self._sampler.interval_s, self._strategy.value if self._strategy else "-",
                self._interval_ms, index,
            )
        return True

    def _implicit_stop(self) -> None:
        self._disarm()
        self._state = PlaybackState.STOPPED
        self._emit_stopped("empty")

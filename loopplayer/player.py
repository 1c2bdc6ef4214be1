"""Player controller: owns the collection, scheduler and persistence.

The controller is the single place where UI/CLI intents turn into core
operations. It subscribes the persistence coordinator to
``SNAPSHOT_CHANGED`` and performs cancel-and-restart on the scheduler when
the interval changes during playback.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from .config import PlayerConfig
from .content.collection import ImageCollection
from .content.models import ImageEntry, ImportFile, SessionSnapshot
from .content.resources import ResourceManager
from .engine.scheduler import FrameSource, PlaybackScheduler, TimerHost
from .errors import DecodeFailed, ErrorReporter, StorageUnavailable
from .keyboard import KeyboardGate
from .session.events import PlayerEvent, PlayerEventEmitter, PlayerEventType
from .session.persistence import SessionPersistence
from .session.store import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    accepted: list[ImageEntry] = field(default_factory=list)
    rejected: int = 0
    failed: list[str] = field(default_factory=list)

    @property
    def capacity_exceeded(self) -> bool:
        return self.rejected > 0


def open_store(config: PlayerConfig, reporter: ErrorReporter) -> Optional[KeyValueStore]:
    """Open the configured on-disk store; None when persistence is off or unusable."""
    if not config.persist:
        logger.info("Persistence disabled by configuration")
        return None
    try:
        return JsonFileStore(config.store_dir)
    except StorageUnavailable as exc:
        reporter.report(exc, context="open store")
        return None


class PlayerController:
    """Wires the player components together.

    Call :meth:`startup` once before any mutation and :meth:`shutdown` at
    the end; ``async with PlayerController(...)`` does both.
    """

    def __init__(
        self,
        config: Optional[PlayerConfig] = None,
        *,
        store: Optional[KeyValueStore] = None,
        host: Optional[TimerHost] = None,
        frame_source: Optional[FrameSource] = None,
        emitter: Optional[PlayerEventEmitter] = None,
    ) -> None:
        self.config = config or PlayerConfig.from_env()
        self.events = emitter or PlayerEventEmitter()
        self.errors = ErrorReporter(self.events)
        self.resources = ResourceManager()
        self.collection = ImageCollection(self.resources, self.events, max_images=self.config.max_images)
        self.scheduler = PlaybackScheduler(
            self.collection,
            host=host,
            frame_source=frame_source,
            interval_ms=self.config.default_interval_ms,
            frame_threshold_ms=self.config.frame_threshold_ms,
            refresh_hz=self.config.refresh_hz,
            emitter=self.events,
        )
        if store is None:
            store = open_store(self.config, self.errors)
        self.persistence = SessionPersistence(store, self.errors, debounce_ms=self.config.save_debounce_ms)
        self.keyboard = KeyboardGate(self.toggle, lambda: len(self.collection) > 0, key=self.config.toggle_key)

        self._ready = False
        self._closed = False
        self.events.subscribe(PlayerEventType.SNAPSHOT_CHANGED, self._on_snapshot_changed)

    async def __aenter__(self) -> "PlayerController":
        await self.startup()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.shutdown()

    # ---- State ----
    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def interval_ms(self) -> int:
        return self.scheduler.interval_ms

    @property
    def is_playing(self) -> bool:
        return self.scheduler.is_running

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(interval_ms=self.scheduler.interval_ms, entries=self.collection.snapshot_durable())

    def _require_ready(self) -> None:
        if self._closed:
            raise RuntimeError("Player has been shut down")
        if not self._ready:
            raise RuntimeError("Player not started: call startup() first")

    # ---- Lifecycle ----
    async def startup(self) -> Optional[SessionSnapshot]:
        """Restore the saved session; mutations are accepted afterwards."""
        if self._ready or self._closed:
            return None
        snapshot, entries = await self.persistence.restore(self.resources)
        if self._closed:
            for entry in entries:
                self.resources.release(entry.handle)
            return None
        if snapshot is not None:
            self.collection.replace_all(entries)
            self.scheduler.set_interval(snapshot.interval_ms)
            self.events.emit(
                PlayerEvent(
                    PlayerEventType.SESSION_RESTORED,
                    data={"count": len(entries), "interval_ms": self.scheduler.interval_ms},
                )
            )
        self._ready = True
        logger.info("Player ready: %d image(s), interval=%dms", len(self.collection), self.scheduler.interval_ms)
        return snapshot

    async def shutdown(self) -> int:
        """Stop playback, settle persistence and release every live handle."""
        if self._closed:
            return 0
        self._closed = True
        self.scheduler.close()
        await self.persistence.close(flush=self.config.flush_on_close)
        released = self.collection.teardown()
        released += self.resources.release_all()
        logger.info("Player shut down: released %d handle(s)", released)
        return released

    # ---- Editing ----
    async def import_files(self, files: Iterable[ImportFile]) -> ImportReport:
        """Import up to the remaining capacity; the rest is rejected by count.

        Files that fail to decode are reported and skipped; the batch goes on.
        """
        self._require_ready()
        incoming = list(files)
        selected = incoming[: self.collection.remaining_capacity]
        report = ImportReport(rejected=len(incoming) - len(selected))

        results = await asyncio.gather(
            *(self.resources.import_file(f.data, f.name, f.mime_type) for f in selected),
            return_exceptions=True,
        )

        entries: list[ImageEntry] = []
        unexpected: Optional[BaseException] = None
        for item, result in zip(selected, results):
            if isinstance(result, DecodeFailed):
                report.failed.append(item.name)
                self.errors.report(result, context=f"import {item.name}")
            elif isinstance(result, BaseException):
                unexpected = unexpected or result
            else:
                entries.append(result)

        if unexpected is not None or self._closed:
            for entry in entries:
                self.resources.release(entry.handle)
            if unexpected is not None:
                raise unexpected
            return ImportReport()

        added = self.collection.add(entries)
        report.accepted = added.accepted
        if report.rejected and not added.rejected:
            self.events.emit(
                PlayerEvent(
                    PlayerEventType.CAPACITY_EXCEEDED,
                    data={
                        "accepted": len(added.accepted),
                        "rejected": report.rejected,
                        "max_images": self.collection.max_images,
                    },
                )
            )
        report.rejected += added.rejected
        return report

    def remove(self, entry_id: str) -> Optional[ImageEntry]:
        self._require_ready()
        removed = self.collection.remove(entry_id)
        if removed is not None and len(self.collection) == 0:
            self.scheduler.stop("empty")
        return removed

    def reorder(self, from_index: int, to_index: int) -> bool:
        self._require_ready()
        return self.collection.reorder(from_index, to_index)

    def clear(self) -> int:
        self._require_ready()
        self.scheduler.stop("empty")
        return self.collection.clear()

    def set_interval(self, value: Any) -> int:
        """Clamp and apply a new interval; a running scheduler restarts on it."""
        self._require_ready()
        previous = self.scheduler.interval_ms
        clamped = self.scheduler.set_interval(value)
        if clamped != previous:
            self.events.emit(PlayerEvent(PlayerEventType.SNAPSHOT_CHANGED, data={"reason": "interval"}))
            if self.scheduler.is_running:
                self.scheduler.restart()
        return clamped

    # ---- Playback ----
    def start(self) -> bool:
        if self._closed:
            return False
        return self.scheduler.start()

    def stop(self) -> bool:
        return self.scheduler.stop()

    def toggle(self) -> bool:
        """Flip playback; returns True when now playing."""
        if self.scheduler.is_running:
            self.stop()
        else:
            self.start()
        return self.scheduler.is_running

    # ---- Persistence wiring ----
    def _on_snapshot_changed(self, _event: PlayerEvent) -> None:
        if not self._ready or self._closed:
            return
        self.persistence.schedule_save(self.snapshot())

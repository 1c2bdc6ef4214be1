"""Debounced session persistence.

Every settled mutation hands a :class:`SessionSnapshot` to
:meth:`SessionPersistence.schedule_save`; only the last snapshot of a burst
is written, once the quiet window elapses. Writes wait for the startup
``load()`` to settle so an empty in-memory state can never overwrite a saved
session that has not been restored yet. Failures are reported to the
:class:`ErrorReporter` and never propagate to playback or editing.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ..content.models import ImageEntry, SessionSnapshot
from ..content.resources import ResourceManager
from ..errors import (
    DecodeFailed,
    ErrorReporter,
    LoopPlayerError,
    PersistenceReadFailed,
    PersistenceWriteFailed,
    StorageUnavailable,
)
from .store import SESSION_KEY, KeyValueStore

logger = logging.getLogger(__name__)


class SessionPersistence:
    """Loads the saved session once and writes debounced snapshots.

    Args:
        store: Key-value store; ``None`` means storage is unavailable and
            persistence silently degrades to a no-op
        reporter: Sink for non-fatal errors
        debounce_ms: Quiet window after the last ``schedule_save``
        key: Store key holding the snapshot
    """

    def __init__(
        self,
        store: Optional[KeyValueStore],
        reporter: Optional[ErrorReporter] = None,
        *,
        debounce_ms: int = 400,
        key: str = SESSION_KEY,
    ) -> None:
        self._store = store
        self._reporter = reporter or ErrorReporter()
        self._debounce_s = max(0, int(debounce_ms)) / 1000.0
        self._key = key

        self._load_started = False
        self._loaded = asyncio.Event()
        self._pending: Optional[SessionSnapshot] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._writes: set[asyncio.Task] = set()
        self._write_lock = asyncio.Lock()
        self._closed = False

        self.write_count = 0
        self.last_written: Optional[SessionSnapshot] = None

    # ---- State ----
    @property
    def available(self) -> bool:
        return self._store is not None

    @property
    def loaded(self) -> bool:
        return self._loaded.is_set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def _disable(self, exc: StorageUnavailable) -> None:
        if self._store is None:
            return
        self._store = None
        self._reporter.report(exc, context="persistence disabled")

    # ---- Load / restore ----
    async def load(self) -> Optional[SessionSnapshot]:
        """Read the saved snapshot; absence of data returns None.

        Raises:
            RuntimeError: If called more than once
        """
        if self._load_started:
            raise RuntimeError("load() may only be called once")
        self._load_started = True
        try:
            return await self._read()
        finally:
            self._loaded.set()

    async def _read(self) -> Optional[SessionSnapshot]:
        if self._store is None:
            return None
        try:
            raw = await self._store.get(self._key)
        except StorageUnavailable as exc:
            self._disable(exc)
            return None
        except PersistenceReadFailed as exc:
            self._reporter.report(exc, context="load")
            return None
        except OSError as exc:
            self._reporter.report(PersistenceReadFailed(str(exc)), context="load")
            return None
        if raw is None:
            logger.info("No saved session found")
            return None
        try:
            snapshot = SessionSnapshot.from_dict(raw)
        except ValueError as exc:
            self._reporter.report(PersistenceReadFailed(f"Saved session is malformed: {exc}"), context="load")
            return None
        logger.info("Loaded session: %d image(s), interval=%dms", len(snapshot.entries), snapshot.interval_ms)
        return snapshot

    async def restore(self, resources: ResourceManager) -> tuple[Optional[SessionSnapshot], list[ImageEntry]]:
        """Load and re-derive a handle for every saved entry, in saved order.

        Entries whose content no longer decodes are dropped and reported. If
        the coordinator is closed while restoring, every handle created here
        is released again and nothing is returned.
        """
        snapshot = await self.load()
        if snapshot is None or self._closed:
            return None, []

        durables = []
        seen: set[str] = set()
        for durable in snapshot.entries:
            if durable.id in seen:
                logger.warning("Skipping duplicate saved entry %s", durable.id)
                continue
            seen.add(durable.id)
            durables.append(durable)

        results = await asyncio.gather(
            *(resources.materialize(d.durable_content) for d in durables),
            return_exceptions=True,
        )

        entries: list[ImageEntry] = []
        unexpected: Optional[BaseException] = None
        for durable, result in zip(durables, results):
            if isinstance(result, DecodeFailed):
                self._reporter.report(result, context=f"restore {durable.display_name or durable.id}")
            elif isinstance(result, BaseException):
                unexpected = unexpected or result
            else:
                entries.append(ImageEntry(durable.id, durable.display_name, durable.durable_content, result))

        if unexpected is not None or self._closed:
            for entry in entries:
                resources.release(entry.handle)
            if unexpected is not None:
                raise unexpected
            logger.info("Restore discarded: persistence closed during restore")
            return None, []
        return snapshot, entries

    # ---- Save ----
    def schedule_save(self, snapshot: SessionSnapshot) -> None:
        """Queue *snapshot*, restarting the quiet window."""
        if self._closed or self._store is None:
            return
        self._pending = snapshot
        if self._timer is not None:
            self._timer.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_s, self._on_quiet)

    def _on_quiet(self) -> None:
        self._timer = None
        snapshot, self._pending = self._pending, None
        if snapshot is None:
            return
        task = asyncio.ensure_future(self._write(snapshot))
        self._writes.add(task)
        task.add_done_callback(self._writes.discard)

    async def _write(self, snapshot: SessionSnapshot) -> bool:
        await self._loaded.wait()
        async with self._write_lock:
            if self._store is None:
                return False
            try:
                await self._store.put(self._key, snapshot.to_dict())
            except StorageUnavailable as exc:
                self._disable(exc)
                return False
            except PersistenceWriteFailed as exc:
                self._reporter.report(exc, context="save")
                return False
            except (LoopPlayerError, OSError) as exc:
                self._reporter.report(PersistenceWriteFailed(str(exc)), context="save")
                return False
            self.write_count += 1
            self.last_written = snapshot
            logger.debug("Saved session: %d image(s), interval=%dms", len(snapshot.entries), snapshot.interval_ms)
            return True

    async def flush(self) -> None:
        """Write the pending snapshot now and wait for in-flight writes."""
        # Older snapshots already handed to a write task land first.
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        snapshot, self._pending = self._pending, None
        if snapshot is not None:
            await self._write(snapshot)
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)

    async def close(self, *, flush: bool = True) -> None:
        """Teardown: cancel the debounce timer, optionally flushing first."""
        if self._closed:
            return
        self._closed = True
        if not self._loaded.is_set():
            # Nothing was restored, so writing could clobber the saved session.
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            if self._pending is not None:
                logger.warning("Dropping unsaved snapshot: session was never loaded")
            self._pending = None
            for task in list(self._writes):
                task.cancel()
            return
        if flush:
            await self.flush()
        else:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._pending = None
            if self._writes:
                await asyncio.gather(*list(self._writes), return_exceptions=True)
        logger.debug("Session persistence closed (writes=%d)", self.write_count)

"""Ordered image collection with bounds-checked editing.

The collection is the only writer of its entry list. The scheduler reads its
length and moves ``current_index`` through :meth:`ImageCollection.advance`;
the persistence coordinator only sees :meth:`snapshot_durable`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional

from ..session.events import PlayerEvent, PlayerEventEmitter, PlayerEventType
from .models import MAX_IMAGES, DurableEntry, ImageEntry
from .resources import ResourceManager

logger = logging.getLogger(__name__)


@dataclass
class AddResult:
    accepted: list[ImageEntry] = field(default_factory=list)
    rejected: int = 0

    @property
    def capacity_exceeded(self) -> bool:
        return self.rejected > 0


class ImageCollection:
    """Ordered list of :class:`ImageEntry`, insertion order = playback order.

    Invariants:
        - ``len(self) <= max_images``
        - ``0 <= current_index < len(self)`` when non-empty, else 0
        - each entry's handle is released exactly once, when the entry leaves
          the collection through :meth:`remove`, :meth:`clear` or
          :meth:`teardown`
    """

    def __init__(
        self,
        resources: ResourceManager,
        emitter: Optional[PlayerEventEmitter] = None,
        *,
        max_images: int = MAX_IMAGES,
    ) -> None:
        if max_images <= 0:
            raise ValueError(f"max_images must be positive, got {max_images}")
        self._resources = resources
        self._emitter = emitter or PlayerEventEmitter()
        self.max_images = max_images
        self._entries: list[ImageEntry] = []
        self._current_index = 0

    # ---- Reads ----
    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ImageEntry]:
        return iter(list(self._entries))

    @property
    def entries(self) -> tuple[ImageEntry, ...]:
        return tuple(self._entries)

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.max_images - len(self._entries))

    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current(self) -> Optional[ImageEntry]:
        if not self._entries:
            return None
        return self._entries[self._current_index]

    def get(self, entry_id: str) -> Optional[ImageEntry]:
        for entry in self._entries:
            if entry.id == entry_id:
                return entry
        return None

    def index_of(self, entry_id: str) -> int:
        for i, entry in enumerate(self._entries):
            if entry.id == entry_id:
                return i
        return -1

    def snapshot_durable(self) -> tuple[DurableEntry, ...]:
        return tuple(entry.durable() for entry in self._entries)

    # ---- Mutations ----
    def add(self, entries: Iterable[ImageEntry]) -> AddResult:
        """Append entries up to the remaining capacity.

        Entries past capacity are rejected: their handles are released (the
        caller handed ownership over) and their count is reported.
        """
        incoming = list(entries)
        available = self.remaining_capacity
        accepted = incoming[:available]
        overflow = incoming[available:]

        for entry in overflow:
            self._resources.release(entry.handle)

        result = AddResult(accepted=accepted, rejected=len(overflow))
        if accepted:
            self._entries.extend(accepted)
            logger.info("Added %d image(s), total=%d", len(accepted), len(self._entries))
            self._emit(PlayerEventType.SNAPSHOT_CHANGED, reason="add")
        if overflow:
            logger.info("Capacity %d reached: rejected %d image(s)", self.max_images, len(overflow))
            self._emit(
                PlayerEventType.CAPACITY_EXCEEDED,
                accepted=len(accepted),
                rejected=len(overflow),
                max_images=self.max_images,
            )
        return result

    def remove(self, entry_id: str) -> Optional[ImageEntry]:
        """Remove by id and release the entry's handle; unknown ids are a no-op."""
        index = self.index_of(entry_id)
        if index < 0:
            return None
        entry = self._entries.pop(index)
        self._resources.release(entry.handle)

        previous = self._current_index
        if not self._entries or index == previous:
            self._current_index = 0
        elif previous >= len(self._entries):
            self._current_index = len(self._entries) - 1
        logger.info("Removed %s (%s), total=%d", entry.id, entry.display_name, len(self._entries))

        self._emit(PlayerEventType.SNAPSHOT_CHANGED, reason="remove")
        if self._current_index != previous:
            self._emit(PlayerEventType.INDEX_CHANGED, index=self._current_index)
        return entry

    def reorder(self, from_index: int, to_index: int) -> bool:
        """Move one entry; resets ``current_index`` to 0 when anything moved."""
        size = len(self._entries)
        if from_index == to_index:
            return False
        if not (0 <= from_index < size and 0 <= to_index < size):
            return False
        moved = self._entries.pop(from_index)
        self._entries.insert(to_index, moved)

        previous = self._current_index
        self._current_index = 0
        logger.debug("Reordered %d -> %d", from_index, to_index)
        self._emit(PlayerEventType.SNAPSHOT_CHANGED, reason="reorder")
        if previous != 0:
            self._emit(PlayerEventType.INDEX_CHANGED, index=0)
        return True

    def clear(self) -> int:
        """Remove every entry through the removal path."""
        removed = 0
        for entry in list(self._entries):
            if self.remove(entry.id) is not None:
                removed += 1
        return removed

    def replace_all(self, entries: Iterable[ImageEntry]) -> AddResult:
        """Install restored entries into an empty collection without emitting a save."""
        if self._entries:
            raise RuntimeError("replace_all() requires an empty collection")
        incoming = list(entries)
        accepted = incoming[: self.max_images]
        for entry in incoming[self.max_images:]:
            self._resources.release(entry.handle)
        self._entries = accepted
        self._current_index = 0
        return AddResult(accepted=list(accepted), rejected=len(incoming) - len(accepted))

    def advance(self) -> int:
        """Move to the next entry, wrapping; returns the new index."""
        if not self._entries:
            self._current_index = 0
            return 0
        self._current_index = (self._current_index + 1) % len(self._entries)
        self._emit(PlayerEventType.INDEX_CHANGED, index=self._current_index)
        return self._current_index

    def teardown(self) -> int:
        """Drop all entries, releasing each handle once; no save is emitted."""
        released = 0
        for entry in self._entries:
            if self._resources.release(entry.handle):
                released += 1
        self._entries = []
        self._current_index = 0
        return released

    def _emit(self, event_type: PlayerEventType, **data) -> None:
        self._emitter.emit(PlayerEvent(event_type, data=data or None))

"""Tests for ImageCollection editing, index rules and handle ownership."""

import pytest

from ..content.collection import ImageCollection
from ..content.resources import ResourceManager
from ..session.events import PlayerEventEmitter, PlayerEventType
from .fakes import EventLog, make_entry


@pytest.fixture
def parts():
    resources = ResourceManager()
    emitter = PlayerEventEmitter()
    collection = ImageCollection(resources, emitter, max_images=50)
    return resources, emitter, collection


def _fill(resources, collection, n):
    entries = [make_entry(resources, f"{i}.png", entry_id=f"e{i}") for i in range(n)]
    collection.add(entries)
    return entries


class TestAdd:
    def test_add_preserves_insertion_order(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 3)
        assert [e.id for e in collection] == ["e0", "e1", "e2"]
        assert collection.current_index == 0

    def test_capacity_rejects_overflow_and_releases_it(self, parts):
        resources, emitter, collection = parts
        log = EventLog(emitter, PlayerEventType.CAPACITY_EXCEEDED, PlayerEventType.SNAPSHOT_CHANGED)
        _fill(resources, collection, 48)
        extra = [make_entry(resources, f"x{i}.png") for i in range(5)]

        result = collection.add(extra)

        assert len(result.accepted) == 2
        assert result.rejected == 3
        assert result.capacity_exceeded
        assert len(collection) == 50
        assert all(e.handle.released for e in extra[2:])
        assert resources.live_count == 50
        [event] = log.of(PlayerEventType.CAPACITY_EXCEEDED)
        assert event.data == {"accepted": 2, "rejected": 3, "max_images": 50}

    def test_add_when_full_emits_no_snapshot(self, parts):
        resources, emitter, collection = parts
        _fill(resources, collection, 50)
        log = EventLog(emitter, PlayerEventType.SNAPSHOT_CHANGED)
        result = collection.add([make_entry(resources)])
        assert result.rejected == 1
        assert log.count(PlayerEventType.SNAPSHOT_CHANGED) == 0
        assert collection.remaining_capacity == 0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            ImageCollection(ResourceManager(), max_images=0)


class TestRemove:
    def test_remove_releases_handle_once(self, parts):
        resources, _, collection = parts
        entries = _fill(resources, collection, 2)
        removed = collection.remove("e0")
        assert removed is entries[0]
        assert entries[0].handle.released
        assert resources.released_total == 1
        assert [e.id for e in collection] == ["e1"]

    def test_remove_unknown_is_noop(self, parts):
        resources, emitter, collection = parts
        _fill(resources, collection, 2)
        log = EventLog(emitter)
        assert collection.remove("nope") is None
        assert log.events == []
        assert len(collection) == 2

    def test_removing_current_resets_index(self, parts):
        resources, emitter, collection = parts
        _fill(resources, collection, 4)
        collection.advance()
        collection.advance()
        log = EventLog(emitter, PlayerEventType.INDEX_CHANGED)

        collection.remove("e2")

        assert collection.current_index == 0
        assert log.of(PlayerEventType.INDEX_CHANGED)[0].data == {"index": 0}

    def test_removing_after_current_keeps_index(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 4)
        collection.advance()
        collection.remove("e3")
        assert collection.current_index == 1

    def test_removing_before_current_keeps_index_in_range(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 3)
        collection.advance()
        collection.advance()
        collection.remove("e0")
        assert collection.current_index == 1
        assert collection.current.id == "e2"

    def test_removing_last_entry_empties(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 1)
        collection.remove("e0")
        assert len(collection) == 0
        assert collection.current_index == 0
        assert collection.current is None

    def test_clear_goes_through_removal(self, parts):
        resources, emitter, collection = parts
        entries = _fill(resources, collection, 3)
        log = EventLog(emitter, PlayerEventType.SNAPSHOT_CHANGED)
        assert collection.clear() == 3
        assert resources.live_count == 0
        assert all(e.handle.released for e in entries)
        assert log.count(PlayerEventType.SNAPSHOT_CHANGED) == 3


class TestReorder:
    def test_reorder_moves_entry_and_resets_index(self, parts):
        resources, emitter, collection = parts
        _fill(resources, collection, 4)
        collection.advance()
        log = EventLog(emitter, PlayerEventType.SNAPSHOT_CHANGED, PlayerEventType.INDEX_CHANGED)

        assert collection.reorder(0, 2) is True

        assert [e.id for e in collection] == ["e1", "e2", "e0", "e3"]
        assert collection.current_index == 0
        assert [e.event_type for e in log.events] == [
            PlayerEventType.SNAPSHOT_CHANGED,
            PlayerEventType.INDEX_CHANGED,
        ]

    def test_reorder_backwards(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 4)
        assert collection.reorder(3, 0)
        assert [e.id for e in collection] == ["e3", "e0", "e1", "e2"]

    @pytest.mark.parametrize("src, dst", [(-1, 0), (0, 4), (4, 0), (1, 1)])
    def test_invalid_reorder_is_noop(self, parts, src, dst):
        resources, emitter, collection = parts
        _fill(resources, collection, 4)
        log = EventLog(emitter)
        assert collection.reorder(src, dst) is False
        assert [e.id for e in collection] == ["e0", "e1", "e2", "e3"]
        assert log.events == []


class TestAdvance:
    def test_advance_wraps_modulo_length(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 3)
        seen = [collection.advance() for _ in range(7)]
        assert seen == [1, 2, 0, 1, 2, 0, 1]

    def test_advance_on_empty_stays_zero(self, parts):
        _, _, collection = parts
        assert collection.advance() == 0


class TestRestoreAndTeardown:
    def test_replace_all_installs_without_save(self, parts):
        resources, emitter, collection = parts
        log = EventLog(emitter, PlayerEventType.SNAPSHOT_CHANGED)
        entries = [make_entry(resources, entry_id=f"r{i}") for i in range(3)]
        result = collection.replace_all(entries)
        assert len(result.accepted) == 3
        assert [e.id for e in collection] == ["r0", "r1", "r2"]
        assert log.events == []

    def test_replace_all_requires_empty(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 1)
        with pytest.raises(RuntimeError):
            collection.replace_all([make_entry(resources)])

    def test_teardown_releases_without_save(self, parts):
        resources, emitter, collection = parts
        entries = _fill(resources, collection, 3)
        log = EventLog(emitter, PlayerEventType.SNAPSHOT_CHANGED)
        assert collection.teardown() == 3
        assert len(collection) == 0
        assert all(e.handle.released for e in entries)
        assert log.events == []
        assert resources.live_count == 0

    def test_snapshot_durable_matches_entries(self, parts):
        resources, _, collection = parts
        _fill(resources, collection, 2)
        durables = collection.snapshot_durable()
        assert [d.id for d in durables] == ["e0", "e1"]
        assert durables[0].display_name == "0.png"

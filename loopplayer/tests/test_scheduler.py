"""
Unit tests for the playback scheduler.

Driven by a manual clock so strategy selection, advancement counts and
cancellation are exact.
"""

import pytest

from ..content.collection import ImageCollection
from ..content.resources import ResourceManager
from ..engine.scheduler import (
    LoopFrameSource,
    PlaybackScheduler,
    PlaybackState,
    TimingStrategy,
    choose_strategy,
)
from ..session.events import PlayerEventEmitter, PlayerEventType
from .fakes import EventLog, ManualClock, RecordingFrameSource, make_entry


def _setup(n=3, interval_ms=100, frame_source=None):
    resources = ResourceManager()
    emitter = PlayerEventEmitter()
    collection = ImageCollection(resources, emitter)
    collection.add([make_entry(resources, entry_id=f"e{i}") for i in range(n)])
    clock = ManualClock()
    scheduler = PlaybackScheduler(
        collection, host=clock, frame_source=frame_source, interval_ms=interval_ms, emitter=emitter
    )
    return clock, collection, scheduler, emitter


@pytest.mark.parametrize(
    "interval, expected",
    [(16, TimingStrategy.FRAME_ALIGNED), (32, TimingStrategy.FRAME_ALIGNED), (33, TimingStrategy.FIXED_DELAY), (500, TimingStrategy.FIXED_DELAY)],
)
def test_choose_strategy_threshold(interval, expected):
    assert choose_strategy(interval, 32) is expected


def test_loop_frame_source_rejects_bad_rate():
    with pytest.raises(ValueError):
        LoopFrameSource(ManualClock(), 0)


class TestFixedDelay:
    def test_advances_once_per_interval(self):
        clock, collection, scheduler, emitter = _setup(n=3, interval_ms=100)
        log = EventLog(emitter, PlayerEventType.INDEX_CHANGED)

        assert scheduler.start() is True
        assert scheduler.strategy is TimingStrategy.FIXED_DELAY
        clock.advance(1050)

        assert log.count(PlayerEventType.INDEX_CHANGED) == 10
        assert [e.data["index"] for e in log.events[:4]] == [1, 2, 0, 1]
        assert collection.current_index == 10 % 3

    def test_exactly_one_pending_source_while_running(self):
        clock, _, scheduler, _ = _setup(interval_ms=200)
        scheduler.start()
        for _ in range(5):
            assert scheduler.pending_sources == 1
            assert clock.pending == 1
            clock.advance(200)

    def test_stop_cancels_pending_timer(self):
        clock, collection, scheduler, emitter = _setup(interval_ms=100)
        log = EventLog(emitter, PlayerEventType.INDEX_CHANGED, PlayerEventType.PLAYBACK_STOPPED)
        scheduler.start()
        clock.advance(150)
        index = collection.current_index

        assert scheduler.stop() is True
        clock.advance(1000)

        assert scheduler.state is PlaybackState.STOPPED
        assert scheduler.pending_sources == 0
        assert clock.pending == 0
        assert collection.current_index == index
        assert log.of(PlayerEventType.PLAYBACK_STOPPED)[0].data == {"reason": "stop"}

    def test_rapid_start_stop_never_stacks_timers(self):
        clock, collection, scheduler, _ = _setup(interval_ms=100)
        for _ in range(10):
            scheduler.start()
            scheduler.stop()
        scheduler.start()
        assert clock.pending == 1
        clock.advance(100)
        assert collection.current_index == 1

    def test_start_twice_is_noop(self):
        clock, _, scheduler, emitter = _setup()
        log = EventLog(emitter, PlayerEventType.PLAYBACK_STARTED)
        assert scheduler.start() is True
        assert scheduler.start() is False
        assert clock.pending == 1
        assert log.of(PlayerEventType.PLAYBACK_STARTED)[0].data == {"interval_ms": 100, "strategy": "timer"}


class TestFrameAligned:
    def test_minimum_interval_advances_every_frame(self):
        clock, _, scheduler, emitter = _setup(n=5, interval_ms=16)
        log = EventLog(emitter, PlayerEventType.INDEX_CHANGED)
        scheduler.start()
        assert scheduler.strategy is TimingStrategy.FRAME_ALIGNED
        clock.advance(1000)
        assert log.count(PlayerEventType.INDEX_CHANGED) == 60

    def test_interval_is_a_minimum_spacing(self):
        clock, _, scheduler, emitter = _setup(n=5, interval_ms=32)
        log = EventLog(emitter, PlayerEventType.INDEX_CHANGED)
        scheduler.start()
        clock.advance(1000)
        # 60 Hz frames: every second frame has waited >= 32 ms.
        assert log.count(PlayerEventType.INDEX_CHANGED) == 30

    def test_stale_frame_callback_is_ignored(self):
        frames = RecordingFrameSource()
        clock, collection, scheduler, _ = _setup(interval_ms=16, frame_source=frames)
        scheduler.start()
        stale = frames.callbacks[-1]

        scheduler.stop()
        stale(10_000.0)

        assert collection.current_index == 0
        assert len(frames.callbacks) == 1

    def test_callback_from_previous_run_is_ignored(self):
        frames = RecordingFrameSource()
        clock, collection, scheduler, _ = _setup(interval_ms=16, frame_source=frames)
        scheduler.start()
        old = frames.callbacks[-1]
        scheduler.stop()
        scheduler.start()

        old(10_000.0)
        assert collection.current_index == 0

        frames.callbacks[-1](10_000.0)
        assert collection.current_index == 1


class TestListenerReentry:
    @pytest.mark.parametrize("interval", [16, 100])
    def test_stop_from_index_listener_leaves_nothing_scheduled(self, interval):
        clock, collection, scheduler, emitter = _setup(interval_ms=interval)
        emitter.subscribe(PlayerEventType.INDEX_CHANGED, lambda _event: scheduler.stop())
        scheduler.start()

        clock.advance(100)

        assert scheduler.state is PlaybackState.STOPPED
        assert scheduler.pending_sources == 0
        assert clock.pending == 0
        assert collection.current_index == 1

    @pytest.mark.parametrize("interval", [16, 100])
    def test_restart_from_index_listener_keeps_one_source(self, interval):
        clock, collection, scheduler, emitter = _setup(interval_ms=interval)

        def bounce(event):
            emitter.unsubscribe(PlayerEventType.INDEX_CHANGED, bounce)
            scheduler.stop()
            scheduler.start()

        emitter.subscribe(PlayerEventType.INDEX_CHANGED, bounce)
        scheduler.start()
        clock.advance(max(interval, 20))

        assert collection.current_index == 1
        assert scheduler.state is PlaybackState.RUNNING
        assert clock.pending == 1

        scheduler.stop()
        assert clock.pending == 0


class TestIntervalChanges:
    def test_set_interval_clamps(self):
        _, _, scheduler, _ = _setup()
        assert scheduler.set_interval(3) == 16
        assert scheduler.set_interval(99999) == 10_000
        assert scheduler.set_interval("abc") == 16

    def test_restart_switches_strategy(self):
        clock, _, scheduler, emitter = _setup(interval_ms=500)
        log = EventLog(emitter, PlayerEventType.INDEX_CHANGED)
        scheduler.start()
        scheduler.set_interval(20)
        assert scheduler.strategy is TimingStrategy.FIXED_DELAY

        assert scheduler.restart() is True

        assert scheduler.strategy is TimingStrategy.FRAME_ALIGNED
        assert clock.pending == 1
        clock.advance(200)
        assert log.count(PlayerEventType.INDEX_CHANGED) >= 5

    def test_restart_while_stopped_is_noop(self):
        clock, _, scheduler, _ = _setup()
        assert scheduler.restart() is False
        assert clock.pending == 0


class TestEmptyCollection:
    def test_start_on_empty_is_noop(self):
        clock, _, scheduler, emitter = _setup(n=0)
        log = EventLog(emitter, PlayerEventType.PLAYBACK_STARTED)
        assert scheduler.start() is False
        assert scheduler.state is PlaybackState.STOPPED
        assert clock.pending == 0
        assert log.events == []

    @pytest.mark.parametrize("interval", [16, 100])
    def test_emptied_while_running_stops_implicitly(self, interval):
        clock, collection, scheduler, emitter = _setup(n=2, interval_ms=interval)
        log = EventLog(emitter, PlayerEventType.PLAYBACK_STOPPED)
        scheduler.start()
        collection.clear()
        clock.advance(200)

        assert scheduler.state is PlaybackState.STOPPED
        assert clock.pending == 0
        assert log.of(PlayerEventType.PLAYBACK_STOPPED)[0].data == {"reason": "empty"}

    def test_close_is_terminal(self):
        clock, _, scheduler, _ = _setup()
        scheduler.start()
        scheduler.close()
        assert clock.pending == 0
        assert scheduler.start() is False

"""Tests for interval clamping and the persisted snapshot shape."""

import numpy as np
import pytest

from ..content.models import (
    DEFAULT_INTERVAL_MS,
    MAX_IMAGES,
    MAX_INTERVAL_MS,
    MIN_INTERVAL_MS,
    DurableEntry,
    ImageHandle,
    SessionSnapshot,
    clamp_interval,
    is_supported_image,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        (5, MIN_INTERVAL_MS),
        (16, 16),
        (250, 250),
        (250.4, 250),
        ("300", 300),
        (20000, MAX_INTERVAL_MS),
        (float("inf"), MAX_INTERVAL_MS),
        (-40, MIN_INTERVAL_MS),
        ("abc", MIN_INTERVAL_MS),
        (None, MIN_INTERVAL_MS),
        (float("nan"), MIN_INTERVAL_MS),
    ],
)
def test_clamp_interval(raw, expected):
    assert clamp_interval(raw) == expected


def test_supported_extensions_are_case_insensitive():
    assert is_supported_image("a.JPG")
    assert is_supported_image("b.jpeg")
    assert is_supported_image("c.webp")
    assert is_supported_image("d.png")
    assert not is_supported_image("e.gif")
    assert not is_supported_image("noext")


def test_image_handle_rejects_wrong_layout():
    with pytest.raises(ValueError):
        ImageHandle(1, 2, 2, np.zeros((2, 2, 3), dtype=np.uint8))
    with pytest.raises(ValueError):
        ImageHandle(1, 2, 2, np.zeros((2, 2, 4), dtype=np.float32))
    with pytest.raises(ValueError):
        ImageHandle(1, 3, 2, np.zeros((2, 2, 4), dtype=np.uint8))
    handle = ImageHandle(1, 2, 2, np.zeros((2, 2, 4), dtype=np.uint8))
    assert not handle.released


class TestSessionSnapshot:
    def test_to_dict_shape(self):
        snap = SessionSnapshot(250, (DurableEntry("a", "one.png", "data:image/png;base64,AA=="),))
        assert snap.to_dict() == {
            "version": 1,
            "interval_ms": 250,
            "entries": [{"id": "a", "name": "one.png", "data_url": "data:image/png;base64,AA=="}],
        }

    def test_null_interval_maps_to_default(self):
        snap = SessionSnapshot.from_dict({"version": 1, "interval_ms": None, "entries": []})
        assert snap.interval_ms == DEFAULT_INTERVAL_MS

    def test_missing_interval_maps_to_default(self):
        assert SessionSnapshot.from_dict({"entries": []}).interval_ms == DEFAULT_INTERVAL_MS

    def test_stored_interval_is_clamped(self):
        assert SessionSnapshot.from_dict({"interval_ms": 1}).interval_ms == MIN_INTERVAL_MS
        assert SessionSnapshot.from_dict({"interval_ms": 99999}).interval_ms == MAX_INTERVAL_MS

    def test_newer_version_is_rejected(self):
        with pytest.raises(ValueError):
            SessionSnapshot.from_dict({"version": 2, "entries": []})

    def test_entries_truncated_to_capacity(self):
        raw = {
            "interval_ms": 100,
            "entries": [{"id": f"e{i}", "name": "", "data_url": "data:x;base64,"} for i in range(MAX_IMAGES + 10)],
        }
        snap = SessionSnapshot.from_dict(raw)
        assert len(snap.entries) == MAX_IMAGES
        assert snap.entries[0].id == "e0"

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"entries": "nope"},
            {"entries": [{"name": "x", "data_url": "data:x;base64,"}]},
            {"entries": [{"id": "a", "name": "x"}]},
            {"entries": [42]},
        ],
    )
    def test_malformed_payloads_raise(self, payload):
        with pytest.raises(ValueError):
            SessionSnapshot.from_dict(payload)

    def test_round_trip_preserves_order(self):
        snap = SessionSnapshot(
            500,
            tuple(DurableEntry(f"id{i}", f"n{i}.png", f"data:image/png;base64,{i}") for i in range(3)),
        )
        assert SessionSnapshot.from_dict(snap.to_dict()) == snap

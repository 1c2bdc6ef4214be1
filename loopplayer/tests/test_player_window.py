"""Widget tests for the player window (offscreen Qt)."""

import asyncio

import pytest

pytest.importorskip("PyQt6")
pytest.importorskip("pytestqt")

from PyQt6.QtCore import Qt

from ..config import PlayerConfig
from ..player import PlayerController
from ..ui.capabilities import PlatformCapabilities
from ..ui.player_window import PlayerWindow, focus_kind, handle_to_pixmap
from ..keyboard import FocusKind
from ..session.events import PlayerEvent, PlayerEventType
from .fakes import ManualClock, image_bytes


def _ready_controller(n=0):
    controller = PlayerController(PlayerConfig(persist=False), host=ManualClock())
    asyncio.run(controller.startup())
    entries = []
    for i in range(n):
        entry = asyncio.run(controller.resources.import_file(image_bytes((8, 6), (i * 60, 0, 0)), f"{i}.png"))
        entries.append(entry)
    if entries:
        controller.collection.add(entries)
    return controller


@pytest.fixture
def window(qtbot):
    def make(n=0, capabilities=None):
        controller = _ready_controller(n)
        win = PlayerWindow(controller, capabilities or PlatformCapabilities(platform_name="offscreen"))
        qtbot.addWidget(win)
        return win

    return make


def test_handle_to_pixmap_copies_pixels(qapp):
    controller = _ready_controller(1)
    handle = controller.collection.current.handle
    pixmap = handle_to_pixmap(handle)
    assert (pixmap.width(), pixmap.height()) == (8, 6)
    controller.resources.release(handle)
    assert handle_to_pixmap(handle) is None


def test_window_lists_entries_and_counter(window):
    win = window(3)
    assert win.list.count() == 3
    assert win.list.item(0).data(Qt.ItemDataRole.UserRole) == win.controller.collection.entries[0].id
    assert win.counter.text() == "1 / 3"
    assert "3 / 50" in win.list_label.text()
    assert win.btn_start.isEnabled()


def test_empty_window_disables_start(window):
    win = window(0)
    assert win.list.count() == 0
    assert not win.btn_start.isEnabled()
    assert win.counter.text() == ""


def test_index_change_updates_counter(window):
    win = window(3)
    win.controller.collection.advance()
    assert win.counter.text() == "2 / 3"


def test_start_stop_buttons(window):
    win = window(2)
    win.btn_start.click()
    assert win.controller.is_playing
    assert "Playing" in win.windowTitle()
    win.btn_stop.click()
    assert not win.controller.is_playing
    assert "Stopped" in win.windowTitle()


def test_remove_selected_updates_list(window, qtbot):
    win = window(3)
    win.list.setCurrentRow(1)
    win.remove_selected()
    qtbot.waitUntil(lambda: win.list.count() == 2)
    assert [e.display_name for e in win.controller.collection] == ["0.png", "2.png"]


def test_interval_spin_applies_clamped_value(window):
    win = window(1)
    win.spin.setValue(250)
    assert win.controller.interval_ms == 250
    assert win.slider.value() == 250
    checked = [b.text() for b in win.preset_buttons if b.isChecked()]
    assert checked == ["250ms"]


def test_preset_button_sets_interval(window):
    win = window(1)
    win.preset_buttons[0].click()
    assert win.controller.interval_ms == 50
    assert win.spin.value() == 50


def test_capacity_notice(window):
    win = window(0)
    win.controller.events.emit(
        PlayerEvent(PlayerEventType.CAPACITY_EXCEEDED, data={"accepted": 0, "rejected": 5, "max_images": 50})
    )
    assert "skipped 5" in win.status.text()


def test_fill_screen_fallback_without_fullscreen(window):
    caps = PlatformCapabilities(platform_name="offscreen", fullscreen_supported=False, screen_count=0)
    win = window(1, caps)
    win.show()
    assert win.btn_full.text() == "Fill Screen"
    win.toggle_fullscreen()
    assert win.side.isHidden()
    assert not win.isFullScreen()
    win.toggle_fullscreen()
    assert not win.side.isHidden()
    assert win.btn_full.text() == "Fill Screen"


def test_focus_kind_mapping(window):
    win = window(0)
    assert focus_kind(None) is FocusKind.NONE
    assert focus_kind(win.spin) is FocusKind.INPUT
    assert focus_kind(win.btn_start) is FocusKind.BUTTON
    assert focus_kind(win.list) is FocusKind.NONE


def test_detect_capabilities_offscreen(qapp):
    caps = PlatformCapabilities.detect()
    assert caps.platform_name == qapp.platformName()
    if caps.platform_name == "offscreen":
        assert caps.fullscreen_supported is False

"""Main player window.

Thin PyQt6 shell over :class:`PlayerController`: it renders the current
handle, forwards user intents, and listens to player events. All async work
is scheduled on the qasync loop.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from PyQt6.QtCore import Qt, QTimer, QModelIndex, pyqtSignal
from PyQt6.QtGui import QImage, QKeySequence, QPixmap, QShortcut
from PyQt6.QtWidgets import (
    QAbstractButton, QAbstractItemView, QAbstractSpinBox, QComboBox, QFileDialog,
    QHBoxLayout, QLabel, QLineEdit, QListWidget, QListWidgetItem, QMainWindow,
    QPlainTextEdit, QPushButton, QSizePolicy, QSlider, QSpinBox, QTextEdit, QVBoxLayout,
    QWidget, QApplication,
)

from .. import __app_name__
from ..content.models import ImageHandle, is_supported_image
from ..content.resources import read_import_files
from ..keyboard import FocusKind
from ..player import PlayerController
from ..session.events import PlayerEvent, PlayerEventType
from .capabilities import PlatformCapabilities

logger = logging.getLogger(__name__)

IMAGE_FILTER = "Images (*.jpg *.jpeg *.png *.webp)"


def handle_to_pixmap(handle: ImageHandle) -> Optional[QPixmap]:
    """Copy a handle's RGBA pixels into a QPixmap (None once released)."""
    pixels = handle.pixels
    if pixels is None:
        return None
    qimg = QImage(pixels.tobytes(), handle.width, handle.height, handle.width * 4, QImage.Format.Format_RGBA8888)
    # Detach from the numpy buffer, which is dropped on release.
    return QPixmap.fromImage(qimg.copy())


def focus_kind(widget: Optional[QWidget]) -> FocusKind:
    if widget is None:
        return FocusKind.NONE
    if isinstance(widget, (QLineEdit, QAbstractSpinBox)):
        return FocusKind.INPUT
    if isinstance(widget, (QTextEdit, QPlainTextEdit)):
        return FocusKind.TEXTAREA
    if isinstance(widget, QComboBox):
        return FocusKind.SELECT
    if isinstance(widget, QAbstractButton):
        return FocusKind.BUTTON
    return FocusKind.NONE


class PlayerWindow(QMainWindow):
    closed = pyqtSignal()

    def __init__(self, controller: PlayerController, capabilities: Optional[PlatformCapabilities] = None):
        super().__init__()
        self.controller = controller
        self.capabilities = capabilities or PlatformCapabilities()
        self._pixmaps: dict[int, QPixmap] = {}
        self._pseudo_fullscreen = False
        self._tasks: set[asyncio.Future] = set()

        self.setWindowTitle(__app_name__)
        self.setAcceptDrops(True)
        self.resize(1100, 720)
        self._build_ui()
        self._wire_events()
        self.refresh_list()
        self._render_current()
        self._update_state()

    # ---- Layout ----
    def _build_ui(self) -> None:
        root = QWidget(self)
        layout = QHBoxLayout(root)

        # Player view
        self.view = QLabel("Click Add or drop images here\njpg / png / webp")
        self.view.setAlignment(Qt.AlignmentFlag.AlignCenter)
        self.view.setMinimumSize(320, 180)
        self.view.setSizePolicy(QSizePolicy.Policy.Ignored, QSizePolicy.Policy.Ignored)
        self.view.setStyleSheet("background: #020617; color: #94a3b8;")
        self.counter = QLabel("")
        self.counter.setAlignment(Qt.AlignmentFlag.AlignRight)

        player_col = QVBoxLayout()
        player_col.addWidget(self.counter)
        player_col.addWidget(self.view, 1)
        layout.addLayout(player_col, 3)

        # Controls
        self.side = QWidget(root)
        side = QVBoxLayout(self.side)

        buttons = QHBoxLayout()
        self.btn_add = QPushButton("Add…")
        self.btn_start = QPushButton("Start")
        self.btn_stop = QPushButton("Stop")
        self.btn_full = QPushButton("Fullscreen" if self.capabilities.fullscreen_supported else "Fill Screen")
        for btn in (self.btn_add, self.btn_start, self.btn_stop, self.btn_full):
            buttons.addWidget(btn)
        side.addLayout(buttons)

        cfg = self.controller.config
        side.addWidget(QLabel(f"Interval (ms), {cfg.min_interval_ms}–{cfg.max_interval_ms}"))
        interval_row = QHBoxLayout()
        self.spin = QSpinBox()
        self.spin.setRange(cfg.min_interval_ms, cfg.max_interval_ms)
        self.spin.setValue(self.controller.interval_ms)
        interval_row.addWidget(self.spin)
        self.preset_buttons: list[QPushButton] = []
        for preset in cfg.presets_ms:
            btn = QPushButton(f"{preset}ms")
            btn.setCheckable(True)
            btn.clicked.connect(lambda _checked=False, v=preset: self._apply_interval(v))
            self.preset_buttons.append(btn)
            interval_row.addWidget(btn)
        side.addLayout(interval_row)
        self.slider = QSlider(Qt.Orientation.Horizontal)
        self.slider.setRange(cfg.min_interval_ms, cfg.max_interval_ms)
        self.slider.setValue(self.controller.interval_ms)
        side.addWidget(self.slider)

        self.list_label = QLabel("")
        side.addWidget(self.list_label)
        self.list = QListWidget()
        self.list.setDragDropMode(QAbstractItemView.DragDropMode.InternalMove)
        self.list.setDefaultDropAction(Qt.DropAction.MoveAction)
        side.addWidget(self.list, 1)
        self.btn_remove = QPushButton("Remove selected")
        side.addWidget(self.btn_remove)

        self.status = QLabel("")
        self.status.setWordWrap(True)
        side.addWidget(self.status)
        layout.addWidget(self.side, 2)
        self.setCentralWidget(root)

        self.btn_add.clicked.connect(self.open_file_dialog)
        self.btn_start.clicked.connect(self.controller.start)
        self.btn_stop.clicked.connect(self.controller.stop)
        self.btn_full.clicked.connect(self.toggle_fullscreen)
        self.btn_remove.clicked.connect(self.remove_selected)
        self.spin.valueChanged.connect(self._apply_interval)
        self.slider.valueChanged.connect(self._apply_interval)
        self.list.model().rowsMoved.connect(self._on_rows_moved)

        self._toggle_shortcut = QShortcut(QKeySequence(Qt.Key.Key_Space), self)
        self._toggle_shortcut.activated.connect(self._on_toggle_key)
        self._escape_shortcut = QShortcut(QKeySequence(Qt.Key.Key_Escape), self)
        self._escape_shortcut.activated.connect(self._exit_fullscreen)

    def _wire_events(self) -> None:
        events = self.controller.events
        events.subscribe(PlayerEventType.INDEX_CHANGED, lambda _e: self._render_current())
        events.subscribe(PlayerEventType.SNAPSHOT_CHANGED, lambda _e: QTimer.singleShot(0, self.refresh_list))
        events.subscribe(PlayerEventType.SESSION_RESTORED, lambda _e: self.refresh_list())
        events.subscribe(PlayerEventType.PLAYBACK_STARTED, lambda _e: self._update_state())
        events.subscribe(PlayerEventType.PLAYBACK_STOPPED, lambda _e: self._update_state())
        events.subscribe(PlayerEventType.CAPACITY_EXCEEDED, self._on_capacity_exceeded)
        events.subscribe(PlayerEventType.ERROR, self._on_error)

    # ---- Rendering ----
    def refresh_list(self) -> None:
        collection = self.controller.collection
        live = {entry.handle.handle_id for entry in collection}
        for handle_id in list(self._pixmaps):
            if handle_id not in live:
                del self._pixmaps[handle_id]

        blocker = self.list.blockSignals(True)
        try:
            self.list.clear()
            for entry in collection:
                item = QListWidgetItem(entry.display_name or entry.id)
                item.setData(Qt.ItemDataRole.UserRole, entry.id)
                item.setToolTip(entry.display_name)
                self.list.addItem(item)
        finally:
            self.list.blockSignals(blocker)
        self.list_label.setText(f"Images (drag to reorder): {len(collection)} / {collection.max_images}")

        interval = self.controller.interval_ms
        for widget in (self.spin, self.slider):
            if widget.value() != interval:
                widget.blockSignals(True)
                widget.setValue(interval)
                widget.blockSignals(False)
        for btn, preset in zip(self.preset_buttons, self.controller.config.presets_ms):
            btn.setChecked(preset == interval)
        self._render_current()
        self._update_state()

    def _render_current(self) -> None:
        collection = self.controller.collection
        entry = collection.current
        if entry is None:
            self.view.setPixmap(QPixmap())
            self.view.setText("Click Add or drop images here\njpg / png / webp")
            self.counter.setText("")
            return
        pixmap = self._pixmaps.get(entry.handle.handle_id)
        if pixmap is None:
            pixmap = handle_to_pixmap(entry.handle)
            if pixmap is None:
                return
            self._pixmaps[entry.handle.handle_id] = pixmap
        self.view.setPixmap(
            pixmap.scaled(
                self.view.size(),
                Qt.AspectRatioMode.KeepAspectRatio,
                Qt.TransformationMode.SmoothTransformation,
            )
        )
        self.counter.setText(f"{collection.current_index + 1} / {len(collection)}")

    def _update_state(self) -> None:
        playing = self.controller.is_playing
        self.btn_start.setEnabled(len(self.controller.collection) > 0 and not playing)
        self.setWindowTitle(f"{__app_name__} - {'Playing' if playing else 'Stopped'}")

    def closeEvent(self, event):  # type: ignore[override]
        self.controller.stop()
        super().closeEvent(event)
        self.closed.emit()

    def resizeEvent(self, event):  # type: ignore[override]
        super().resizeEvent(event)
        self._render_current()

    # ---- Intents ----
    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _apply_interval(self, value: int) -> None:
        if not self.controller.ready:
            return
        self.controller.set_interval(value)
        self.refresh_list()

    def open_file_dialog(self) -> None:
        names, _ = QFileDialog.getOpenFileNames(self, "Add images", "", IMAGE_FILTER)
        if names:
            self.import_paths([Path(n) for n in names])

    def import_paths(self, paths: list[Path]) -> None:
        supported = [p for p in paths if is_supported_image(p.name)]
        if len(supported) < len(paths):
            self.status.setText(f"Skipped {len(paths) - len(supported)} unsupported file(s)")
        if supported:
            self._spawn(self._import_paths(supported))

    async def _import_paths(self, paths: list[Path]) -> None:
        files = await asyncio.to_thread(read_import_files, paths)
        if not self.controller.ready or self.controller.closed:
            return
        report = await self.controller.import_files(files)
        logger.info("Imported %d, rejected %d, failed %d", len(report.accepted), report.rejected, len(report.failed))

    def remove_selected(self) -> None:
        for item in self.list.selectedItems():
            self.controller.remove(item.data(Qt.ItemDataRole.UserRole))

    def _on_rows_moved(self, _parent: QModelIndex, start: int, _end: int, _dest: QModelIndex, row: int) -> None:
        to_index = row if row < start else row - 1
        if not self.controller.reorder(start, to_index):
            QTimer.singleShot(0, self.refresh_list)

    def _on_toggle_key(self) -> None:
        focused = QApplication.focusWidget()
        kind = focus_kind(focused)
        if self.controller.keyboard.handle_key("Space", kind):
            return
        if isinstance(focused, QAbstractButton):
            focused.click()

    def toggle_fullscreen(self) -> None:
        active = self.isFullScreen() or self._pseudo_fullscreen
        if active:
            self._exit_fullscreen()
            return
        if self.capabilities.fullscreen_supported:
            self.showFullScreen()
        else:
            self._pseudo_fullscreen = True
            self.side.hide()
            self.showMaximized()
        self.btn_full.setText("Exit Full")

    def _exit_fullscreen(self) -> None:
        if self._pseudo_fullscreen:
            self._pseudo_fullscreen = False
            self.side.show()
            self.showNormal()
        elif self.isFullScreen():
            self.showNormal()
        self.btn_full.setText("Fullscreen" if self.capabilities.fullscreen_supported else "Fill Screen")

    # ---- Notifications ----
    def _on_capacity_exceeded(self, event: PlayerEvent) -> None:
        data = event.data or {}
        self.status.setText(
            f"At most {data.get('max_images', '?')} images: added {data.get('accepted', 0)}, "
            f"skipped {data.get('rejected', 0)}."
        )

    def _on_error(self, event: PlayerEvent) -> None:
        data = event.data or {}
        self.status.setText(f"{data.get('kind', 'Error')}: {data.get('message', '')}")

    # ---- Drag & drop import ----
    def dragEnterEvent(self, event):  # type: ignore[override]
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event):  # type: ignore[override]
        paths = [Path(url.toLocalFile()) for url in event.mimeData().urls() if url.isLocalFile()]
        if paths:
            event.acceptProposedAction()
            self.import_paths(paths)

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Dict, Optional

from PySide6 import QtCore, QtGui, QtWidgets

from core.session import TelemetrySession
from shared.app_settings import AppSettings, AppSettingsStore
from shared.errors import ExportPreconditionError
from shared.models import ExportResult, ExportStatus, TelemetryDataset
from .chart_widget import TelemetryChart
from .qt_presentation import QtPresentationQueue
from .session_signals import SessionSignals

SLIDER_STEPS = 1000


class MainWindow(QtWidgets.QMainWindow):
    """Main application window: file loading, playback transport, channel toggles and export."""

    def __init__(
        self,
        settings_store: Optional[AppSettingsStore] = None,
        *,
        initial_path: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._logger = logging.getLogger(__name__)
        self._settings_store = settings_store
        self._presentation = QtPresentationQueue(self)
        self.session = TelemetrySession(self._presentation, settings_store=settings_store)
        self.signals = SessionSignals(self.session, self)
        self._app_settings_unsub: Optional[Callable[[], None]] = None

        self.setWindowTitle("Telemetry Trace")
        self.resize(1100, 720)
        self.statusBar()

        self._channel_boxes: Dict[str, QtWidgets.QCheckBox] = {}
        self._slider_suppress = False
        self._progress: Optional[QtWidgets.QProgressDialog] = None

        self._init_ui()
        self.session.bind_surface(self.chart)

        # Timer driving the playback clock
        self._playback_timer = QtCore.QTimer(self)
        self._playback_timer.setTimerType(QtCore.Qt.PreciseTimer)
        self._playback_timer.setInterval(max(1, int(round(self.session.clock.tick_interval * 1000))))
        self._playback_timer.timeout.connect(self.session.tick)

        self.signals.datasetLoaded.connect(self._on_dataset_loaded)
        self.signals.cursorChanged.connect(self._on_cursor_changed)
        self.signals.playbackStateChanged.connect(self._on_playback_state_changed)
        self.signals.exportProgress.connect(self._on_export_progress)
        self.signals.exportFinished.connect(self._on_export_finished)
        self.signals.errorOccurred.connect(self._on_error)

        self._close_shortcut = QtGui.QShortcut(QtGui.QKeySequence.StandardKey.Close, self)
        self._close_shortcut.setContext(QtCore.Qt.ApplicationShortcut)
        self._close_shortcut.activated.connect(self.close)
        self._space_shortcut = QtGui.QShortcut(QtGui.QKeySequence(QtCore.Qt.Key_Space), self)
        self._space_shortcut.activated.connect(self._on_play_clicked)
        self._bind_app_settings_store()
        self._update_controls()
        if initial_path:
            QtCore.QTimer.singleShot(0, lambda: self.load_file(initial_path))

    def _init_ui(self) -> None:
        central = QtWidgets.QWidget(self)
        layout = QtWidgets.QVBoxLayout(central)

        transport = QtWidgets.QHBoxLayout()
        self.open_btn = QtWidgets.QPushButton("Open…", central)
        self.open_btn.clicked.connect(self._on_open_clicked)
        self.play_btn = QtWidgets.QPushButton("Play", central)
        self.play_btn.clicked.connect(self._on_play_clicked)
        self.reset_btn = QtWidgets.QPushButton("Reset", central)
        self.reset_btn.clicked.connect(self.session.reset)
        self.export_btn = QtWidgets.QPushButton("Export Video…", central)
        self.export_btn.clicked.connect(self._on_export_clicked)

        self.window_spin = QtWidgets.QDoubleSpinBox(central)
        self.window_spin.setRange(0.0, 3600.0)
        self.window_spin.setDecimals(2)
        self.window_spin.setSingleStep(0.5)
        self.window_spin.setSuffix(" s")
        self.window_spin.setValue(self.session.window_length)
        self.window_spin.valueChanged.connect(self._on_window_changed)

        self.position_slider = QtWidgets.QSlider(QtCore.Qt.Horizontal, central)
        self.position_slider.setRange(0, SLIDER_STEPS)
        self.position_slider.valueChanged.connect(self._on_slider_moved)
        self.time_label = QtWidgets.QLabel("0.00 / 0.00 s", central)
        self.time_label.setMinimumWidth(120)

        for widget in (self.open_btn, self.play_btn, self.reset_btn, self.export_btn):
            transport.addWidget(widget)
        transport.addWidget(QtWidgets.QLabel("Window:", central))
        transport.addWidget(self.window_spin)
        transport.addWidget(self.position_slider, 1)
        transport.addWidget(self.time_label)
        layout.addLayout(transport)

        self._channel_row = QtWidgets.QHBoxLayout()
        self._channel_row.addStretch(1)
        layout.addLayout(self._channel_row)

        self.chart = TelemetryChart(central)
        layout.addWidget(self.chart, 1)
        self.setCentralWidget(central)

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _bind_app_settings_store(self) -> None:
        if self._settings_store is None:
            return
        self._app_settings_unsub = self._settings_store.subscribe(self._on_app_settings_changed)

    def _on_app_settings_changed(self, settings: AppSettings) -> None:
        interval = 1000.0 / max(float(settings.playback_tick_hz), 1.0)
        self._playback_timer.setInterval(max(1, int(round(interval))))

    def _remember(self, **kwargs) -> None:
        if self._settings_store is None:
            return
        try:
            self._settings_store.update(**kwargs)
        except Exception as exc:
            self._logger.debug("Failed to persist settings: %s", exc)

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def load_file(self, path: str) -> bool:
        self.statusBar().showMessage(f"Loading {Path(path).name}…")
        QtWidgets.QApplication.setOverrideCursor(QtCore.Qt.WaitCursor)
        try:
            loaded = self.session.load_file(path)
        finally:
            QtWidgets.QApplication.restoreOverrideCursor()
        if loaded:
            self.statusBar().showMessage(f"Loaded {Path(path).name}", 5000)
            self._remember(last_open_dir=str(Path(path).parent))
        else:
            self.statusBar().clearMessage()
        self._update_controls()
        return loaded

    def _on_open_clicked(self) -> None:
        start_dir = ""
        if self._settings_store is not None:
            start_dir = self._settings_store.get().last_open_dir or ""
        path, _ = QtWidgets.QFileDialog.getOpenFileName(
            self,
            "Open Telemetry Log",
            start_dir,
            "Telemetry logs (*.xlsx *.xlsm *.csv);;All files (*)",
        )
        if path:
            self.load_file(path)

    def _on_play_clicked(self) -> None:
        self.session.toggle_playback()

    def _on_window_changed(self, value: float) -> None:
        applied = self.session.set_window_length(value)
        if abs(applied - value) > 1e-9:
            self.window_spin.blockSignals(True)
            self.window_spin.setValue(applied)
            self.window_spin.blockSignals(False)

    def _on_slider_moved(self, value: int) -> None:
        if self._slider_suppress or self.session.dataset is None:
            return
        duration = self.session.dataset.duration
        self.session.seek(duration * value / SLIDER_STEPS)

    def _on_channel_toggled(self, name: str, checked: bool) -> None:
        try:
            self.session.set_channel_visible(name, checked)
        except KeyError:
            self._logger.debug("Ignoring toggle for unknown channel %s", name)

    def _on_export_clicked(self) -> None:
        default_path = ""
        if self._settings_store is not None:
            default_path = self._settings_store.get().last_export_path or ""
        path, _ = QtWidgets.QFileDialog.getSaveFileName(
            self, "Export Video", default_path, "MP4 video (*.mp4)"
        )
        if not path:
            return
        if not path.lower().endswith(".mp4"):
            path += ".mp4"
        try:
            self.session.export_video(path)
        except ExportPreconditionError as exc:
            QtWidgets.QMessageBox.warning(self, "Export", str(exc))
            return
        self._remember(last_export_path=path)
        self._progress = QtWidgets.QProgressDialog("Exporting video…", "Cancel", 0, 100, self)
        self._progress.setWindowTitle("Export")
        self._progress.setWindowModality(QtCore.Qt.WindowModal)
        self._progress.setAutoClose(False)
        self._progress.setAutoReset(False)
        self._progress.canceled.connect(self.session.cancel_export)
        self._progress.show()
        self._update_controls()

    # ------------------------------------------------------------------
    # Session signal handlers
    # ------------------------------------------------------------------

    def _on_dataset_loaded(self, dataset: Optional[TelemetryDataset]) -> None:
        for box in self._channel_boxes.values():
            self._channel_row.removeWidget(box)
            box.deleteLater()
        self._channel_boxes.clear()
        if dataset is not None:
            visible = self.session.visible_channels
            for index, channel in enumerate(dataset.channels):
                box = QtWidgets.QCheckBox(channel.name, self)
                box.setChecked(channel.name in visible)
                color = QtGui.QColor(*channel.display_color)
                box.setStyleSheet(f"QCheckBox {{ color: {color.name()}; }}")
                box.toggled.connect(lambda checked, n=channel.name: self._on_channel_toggled(n, checked))
                self._channel_row.insertWidget(index, box)
                self._channel_boxes[channel.name] = box
            self.window_spin.blockSignals(True)
            self.window_spin.setValue(self.session.window_length)
            self.window_spin.blockSignals(False)
            self.setWindowTitle(f"Telemetry Trace - {Path(dataset.source).name}" if dataset.source else "Telemetry Trace")
        self._on_cursor_changed(self.session.cursor)
        self._update_controls()

    def _on_cursor_changed(self, cursor: float) -> None:
        dataset = self.session.dataset
        duration = dataset.duration if dataset is not None else 0.0
        self.time_label.setText(f"{cursor:.2f} / {duration:.2f} s")
        if self.session.is_exporting:
            return
        self._slider_suppress = True
        try:
            position = int(round(cursor / duration * SLIDER_STEPS)) if duration > 0 else 0
            self.position_slider.setValue(position)
        finally:
            self._slider_suppress = False

    def _on_playback_state_changed(self, playing: bool) -> None:
        if playing:
            self._playback_timer.start()
        else:
            self._playback_timer.stop()
        self._update_controls()

    def _on_export_progress(self, percent: int) -> None:
        if self._progress is not None:
            self._progress.setValue(percent)
        self.statusBar().showMessage(f"Exporting… {percent}%")

    def _on_export_finished(self, result: ExportResult) -> None:
        if self._progress is not None:
            self._progress.close()
            self._progress.deleteLater()
            self._progress = None
        self.statusBar().showMessage(result.message, 8000)
        if result.status is ExportStatus.COMPLETED:
            QtWidgets.QMessageBox.information(self, "Export", result.message)
        self._update_controls()

    def _on_error(self, message: str) -> None:
        self._logger.error("%s", message)
        QtWidgets.QMessageBox.critical(self, "Error", message)
        self._update_controls()

    def _update_controls(self) -> None:
        session = self.session
        exporting = session.is_exporting
        has_data = session.dataset is not None
        self.play_btn.setText("Pause" if session.is_playing else "Play")
        self.play_btn.setEnabled(session.can_pause() or session.can_play())
        self.reset_btn.setEnabled(session.can_reset())
        self.export_btn.setEnabled(session.can_export())
        self.open_btn.setEnabled(not exporting)
        self.window_spin.setEnabled(has_data and not exporting)
        self.position_slider.setEnabled(has_data and not exporting)
        for box in self._channel_boxes.values():
            box.setEnabled(not exporting)

    def closeEvent(self, event: QtGui.QCloseEvent) -> None:  # type: ignore[override]
        self._playback_timer.stop()
        if self._app_settings_unsub is not None:
            self._app_settings_unsub()
            self._app_settings_unsub = None
        self.signals.disconnect_session()
        self.session.shutdown()
        super().closeEvent(event)


__all__ = ["MainWindow"]

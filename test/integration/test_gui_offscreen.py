"""
Real pyqtgraph chart and main window on the offscreen Qt platform.

Worker deliveries reach the window through QtPresentationQueue's queued
signal, so these tests pump the Qt event loop instead of the plain queue.
"""
from __future__ import annotations

import os
import time

import numpy as np
import pytest

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

pytest.importorskip("pyqtgraph")
QtWidgets = pytest.importorskip("PySide6.QtWidgets")

from core.presentation import PresentationQueue  # noqa: E402
from core.session import TelemetrySession  # noqa: E402
from core.windowing import WindowComputer  # noqa: E402
from gui.chart_widget import TelemetryChart  # noqa: E402
from gui.main_window import MainWindow  # noqa: E402
from shared.app_settings import AppSettings  # noqa: E402
from shared.models import ExportStatus  # noqa: E402
from test.fixtures.fakes import RecordingEncoder  # noqa: E402
from test.fixtures.telemetry_data import ab_dataset, ramp_dataset  # noqa: E402


@pytest.fixture(scope="module")
def qapp():
    app = QtWidgets.QApplication.instance()
    if app is None:
        app = QtWidgets.QApplication([])
    yield app


def pump_until(app, predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        app.processEvents()
        if predicate():
            return True
        time.sleep(0.005)
    app.processEvents()
    return predicate()


class TestTelemetryChart:
    def test_construction_keeps_qwidget_size(self, qapp):
        chart = TelemetryChart()
        chart.resize(320, 200)
        assert chart.size().width() == 320
        assert chart.pixel_size() == (320, 200)
        chart.deleteLater()

    def test_measure_and_arrange_gives_nonzero_size(self, qapp):
        chart = TelemetryChart()
        chart.resize(0, 0)
        width, height = chart.measure_and_arrange()
        assert width > 0 and height > 0
        assert chart.pixel_size() == (width, height)
        chart.deleteLater()

    def test_capture_matches_surface_size(self, qapp):
        dataset = ab_dataset()
        chart = TelemetryChart()
        chart.resize(161, 97)
        chart.set_channels(dataset.channels)
        result = WindowComputer().compute(dataset, 1.0, 2.0, {"A", "B"})
        chart.show_window(result)
        assert chart.last_result is result

        buffer = chart.capture()
        assert buffer.pixel_format == "RGBA"
        assert (buffer.width, buffer.height) == chart.pixel_size()
        assert buffer.data.dtype == np.uint8
        assert buffer.data.flags.c_contiguous
        assert np.all(buffer.data[..., 3] == 255)
        chart.deleteLater()

    def test_hidden_channel_curve_is_empty(self, qapp):
        dataset = ab_dataset()
        chart = TelemetryChart()
        chart.set_channels(dataset.channels)
        chart.show_window(WindowComputer().compute(dataset, 0.0, 4.0, {"A"}))
        xs, _ = chart._curves["B"].getData()
        assert xs is None or len(xs) == 0
        xs, _ = chart._curves["A"].getData()
        assert len(xs) == 5
        chart.deleteLater()

    def test_session_export_captures_real_chart(self, qapp):
        queue = PresentationQueue()
        session = TelemetrySession(queue, settings=AppSettings(export_fps=10))
        chart = TelemetryChart()
        chart.resize(120, 80)
        session.bind_surface(chart)
        session.set_dataset(ramp_dataset(duration=0.2))
        encoder = RecordingEncoder()
        try:
            done = session.export_video("chart.mp4", total_frames=3, encoder=encoder)
            assert queue.run_until(done.done, timeout=20.0)
            result = done.result()
        finally:
            session.shutdown()
            chart.deleteLater()
        assert result.status is ExportStatus.COMPLETED
        assert result.frames_completed == 3
        assert encoder.opened == ("chart.mp4", 120, 80, 10)
        assert all(frame.shape == (80, 120, 4) for frame in encoder.frames)


class TestMainWindow:
    @pytest.fixture
    def window(self, qapp):
        window = MainWindow()
        window.resize(640, 480)
        window.show()
        qapp.processEvents()
        yield window
        window.close()
        qapp.processEvents()

    def test_construction_binds_chart(self, window):
        assert window.session.surface is window.chart
        assert not window.export_btn.isEnabled()
        assert not window.play_btn.isEnabled()

    def test_dataset_populates_controls(self, qapp, window):
        window.session.set_dataset(ab_dataset())
        assert sorted(window._channel_boxes) == ["A", "B"]
        assert window.export_btn.isEnabled()
        assert window.play_btn.isEnabled()
        assert pump_until(qapp, lambda: window.chart.last_result is not None)

        window._channel_boxes["B"].setChecked(False)
        assert window.session.visible_channels == {"A"}

    def test_export_through_window_session(self, qapp, window, monkeypatch):
        notices = []
        monkeypatch.setattr(QtWidgets.QMessageBox, "information", lambda *args: notices.append(args[-1]))
        window.session.set_dataset(ramp_dataset(duration=0.1))
        encoder = RecordingEncoder()
        done = window.session.export_video("window.mp4", fps=20, total_frames=2, encoder=encoder)
        assert not window.session.can_export()
        assert pump_until(qapp, done.done, timeout=20.0)

        result = done.result()
        assert result.status is ExportStatus.COMPLETED
        assert result.frames_completed == 2
        width, height = window.chart.pixel_size()
        assert all(frame.shape == (height, width, 4) for frame in encoder.frames)
        assert encoder.close_calls == 1
        assert window.export_btn.isEnabled()
        assert len(notices) == 1

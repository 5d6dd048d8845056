from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

import numpy as np
import pyqtgraph as pg
from PySide6 import QtCore, QtGui

from shared.models import Channel, PixelBuffer, WindowResult

DEFAULT_CAPTURE_SIZE = (1280, 720)


class TelemetryChart(pg.PlotWidget):
    """
    Windowed telemetry chart:
      • One curve per channel, hidden channels drawn empty
      • X range follows the window bounds
      • Vertical line marks the playback cursor
    Implements the session's render surface contract.
    """

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setBackground("#FFFFFF")
        self.showGrid(x=True, y=True, alpha=0.25)
        self.setLabel("bottom", "Time", units="s")
        self.addLegend(offset=(10, 10))
        self.plotItem.vb.setMouseEnabled(x=False, y=True)

        self._curves: Dict[str, pg.PlotDataItem] = {}
        self._cursor_line = pg.InfiniteLine(angle=90, movable=False, pen=pg.mkPen("#555555", width=1))
        self.addItem(self._cursor_line)
        self._last_result: Optional[WindowResult] = None

    # --- surface contract ---
    def pixel_size(self) -> Tuple[int, int]:
        return int(self.width()), int(self.height())

    def measure_and_arrange(self) -> Tuple[int, int]:
        width, height = self.pixel_size()
        if width <= 0 or height <= 0:
            hint = self.sizeHint()
            width = max(width, hint.width(), DEFAULT_CAPTURE_SIZE[0])
            height = max(height, hint.height(), DEFAULT_CAPTURE_SIZE[1])
            self.resize(width, height)
        self.ensurePolished()
        self.plotItem.updateGeometry()
        return self.pixel_size()

    def set_channels(self, channels: Sequence[Channel]) -> None:
        for item in self._curves.values():
            self.removeItem(item)
        self._curves.clear()
        legend = self.plotItem.legend
        if legend is not None:
            legend.clear()
        for channel in channels:
            pen = pg.mkPen(color=QtGui.QColor(*channel.display_color), width=2)
            label = f"{channel.name} ({channel.unit})" if channel.unit else channel.name
            self._curves[channel.name] = self.plot(pen=pen, name=label)
        self._last_result = None

    def show_window(self, result: WindowResult) -> None:
        for name, item in self._curves.items():
            points = result.points.get(name)
            if points is None or len(points) == 0:
                item.setData([], [])
            else:
                item.setData(points.times, points.values)
        start, end = result.window_start, result.window_end
        if end <= start:
            end = start + 1e-3
        self.setXRange(start, end, padding=0)
        self._cursor_line.setValue(result.cursor)
        self._last_result = result

    def capture(self) -> PixelBuffer:
        width, height = self.pixel_size()
        image = self.grab().toImage().convertToFormat(QtGui.QImage.Format_RGBA8888)
        if image.width() != width or image.height() != height:
            image = image.scaled(
                width,
                height,
                QtCore.Qt.IgnoreAspectRatio,
                QtCore.Qt.SmoothTransformation,
            )
        stride = image.bytesPerLine()
        raw = np.frombuffer(image.constBits(), dtype=np.uint8, count=stride * image.height())
        pixels = raw.reshape(image.height(), stride)[:, : image.width() * 4]
        pixels = pixels.reshape(image.height(), image.width(), 4).copy()
        return PixelBuffer(pixels, "RGBA")

    @property
    def last_result(self) -> Optional[WindowResult]:
        return self._last_result


__all__ = ["TelemetryChart"]

"""
Test doubles for the render surface and video encoder collaborators.

FakeSurface records every window it is shown and every capture it makes;
RecordingEncoder records every appended frame and can be configured to fail
at specific points.
"""
from __future__ import annotations

import threading
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from shared.models import Channel, PixelBuffer, WindowResult


class FakeSurface:
    """In-memory render surface producing solid BGRA frames."""

    def __init__(
        self,
        width: int = 32,
        height: int = 24,
        *,
        arranged_size: Tuple[int, int] = (64, 48),
        pixel_format: str = "BGRA",
    ) -> None:
        self.width = width
        self.height = height
        self.arranged_size = arranged_size
        self.pixel_format = pixel_format
        self.channels: Tuple[Channel, ...] = ()
        self.shown: List[WindowResult] = []
        self.captured_cursors: List[float] = []
        self.measure_calls = 0
        self.capture_threads: List[str] = []
        self.fail_capture_at: Optional[int] = None

    def pixel_size(self) -> Tuple[int, int]:
        return self.width, self.height

    def measure_and_arrange(self) -> Tuple[int, int]:
        self.measure_calls += 1
        if self.width <= 0 or self.height <= 0:
            self.width, self.height = self.arranged_size
        return self.pixel_size()

    def set_channels(self, channels: Sequence[Channel]) -> None:
        self.channels = tuple(channels)

    def show_window(self, result: WindowResult) -> None:
        self.shown.append(result)

    def capture(self) -> PixelBuffer:
        index = len(self.captured_cursors)
        if self.fail_capture_at is not None and index == self.fail_capture_at:
            raise RuntimeError("surface not ready")
        cursor = self.shown[-1].cursor if self.shown else 0.0
        self.captured_cursors.append(cursor)
        self.capture_threads.append(threading.current_thread().name)
        data = np.zeros((self.height, self.width, 4), dtype=np.uint8)
        data[..., 0] = index % 256  # blue
        data[..., 2] = 200          # red
        data[..., 3] = 255
        return PixelBuffer(data, self.pixel_format)


class RecordingEncoder:
    """Encoder sink that keeps frames in memory."""

    def __init__(
        self,
        *,
        reject_at: Optional[int] = None,
        raise_at: Optional[int] = None,
        fail_open: bool = False,
        fail_close: bool = False,
        on_append: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.reject_at = reject_at
        self.raise_at = raise_at
        self.fail_open = fail_open
        self.fail_close = fail_close
        self.on_append = on_append
        self.opened: Optional[Tuple[str, int, int, int]] = None
        self.frames: List[np.ndarray] = []
        self.close_calls = 0

    def open(self, path: str, width: int, height: int, fps: int) -> None:
        if self.fail_open:
            raise OSError("cannot create output file")
        self.opened = (path, width, height, fps)

    def append_frame(self, rgba: np.ndarray) -> bool:
        index = len(self.frames)
        if self.raise_at is not None and index == self.raise_at:
            raise RuntimeError("codec exploded")
        if self.reject_at is not None and index == self.reject_at:
            return False
        self.frames.append(rgba.copy())
        if self.on_append is not None:
            self.on_append(index)
        return True

    def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise OSError("disk full")

"""H.264 video encoder sink backed by PyAV.

Frames arrive as canonical RGBA arrays from the export pipeline and are
converted to yuv420p by libav. yuv420p needs even dimensions, so odd-sized
frames are padded by repeating the last row/column.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

import av
import numpy as np

from shared.errors import EncodeError

logger = logging.getLogger(__name__)

DEFAULT_CODEC = "libx264"
DEFAULT_OPTIONS: Dict[str, str] = {"crf": "23", "preset": "fast"}


class VideoEncoder:
    """Writes RGBA frames into an MP4 container, one at a time."""

    def __init__(
        self,
        *,
        codec: str = DEFAULT_CODEC,
        options: Optional[Dict[str, str]] = None,
        pix_fmt: str = "yuv420p",
    ) -> None:
        self._codec = codec
        self._options = dict(DEFAULT_OPTIONS if options is None else options)
        self._pix_fmt = pix_fmt
        self._container = None
        self._stream = None
        self._size: tuple[int, int] = (0, 0)
        self._frames_written = 0
        self._path: Optional[str] = None

    @property
    def frames_written(self) -> int:
        return self._frames_written

    @property
    def is_open(self) -> bool:
        return self._container is not None

    def open(self, path: str, width: int, height: int, fps: int) -> None:
        if self._container is not None:
            raise EncodeError("Encoder already open")
        if width <= 0 or height <= 0 or fps <= 0:
            raise EncodeError(f"Invalid encoder geometry {width}x{height} @ {fps} fps")
        container = av.open(path, mode="w")
        try:
            stream = container.add_stream(self._codec, rate=int(fps))
            stream.width = width + (width % 2)
            stream.height = height + (height % 2)
            stream.pix_fmt = self._pix_fmt
            stream.options = dict(self._options)
        except Exception:
            container.close()
            raise
        self._container = container
        self._stream = stream
        self._size = (width, height)
        self._frames_written = 0
        self._path = path
        logger.debug("Opened %s encoder for %s (%dx%d @ %d fps)", self._codec, path, width, height, fps)

    def append_frame(self, rgba: np.ndarray) -> bool:
        if self._container is None or self._stream is None:
            return False
        width, height = self._size
        if rgba.shape != (height, width, 4):
            logger.error("Rejected frame of shape %s, expected %s", rgba.shape, (height, width, 4))
            return False
        padded = self._pad_even(rgba)
        frame = av.VideoFrame.from_ndarray(padded, format="rgba")
        for packet in self._stream.encode(frame):
            self._container.mux(packet)
        self._frames_written += 1
        return True

    def close(self) -> None:
        container, stream = self._container, self._stream
        self._container = None
        self._stream = None
        if container is None:
            return
        try:
            if stream is not None:
                for packet in stream.encode():
                    container.mux(packet)
        finally:
            container.close()
        logger.info("Wrote %d frames to %s", self._frames_written, self._path)

    @staticmethod
    def _pad_even(rgba: np.ndarray) -> np.ndarray:
        height, width = rgba.shape[:2]
        pad_h, pad_w = height % 2, width % 2
        if not pad_h and not pad_w:
            return rgba
        return np.pad(rgba, ((0, pad_h), (0, pad_w), (0, 0)), mode="edge")


__all__ = ["DEFAULT_CODEC", "VideoEncoder"]

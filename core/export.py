"""Frame-synchronised export of the timeline to an encoded video.

The pipeline owns a frame counter, not a clock: frame ``i`` always maps to
``min(i / fps, duration)``. Rendering is marshalled onto the presentation
context (rendering surfaces are single-owner) while conversion and encoding
run on the pipeline's worker thread, one frame in flight at a time.
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Optional, Protocol

import numpy as np

from shared.errors import CaptureError, EncodeError, ExportPreconditionError
from shared.models import (
    ExportJob,
    ExportResult,
    ExportStatus,
    PixelBuffer,
    TelemetryDataset,
)

from .pixels import to_rgba
from .presentation import PresentationQueue

logger = logging.getLogger(__name__)

FrameRenderer = Callable[[int], PixelBuffer]
ProgressSink = Callable[[int], None]


class EncoderSink(Protocol):
    """Video encoder collaborator; receives canonical RGBA frames."""

    def open(self, path: str, width: int, height: int, fps: int) -> None: ...

    def append_frame(self, rgba: np.ndarray) -> bool: ...

    def close(self) -> None: ...


def frame_time(frame_index: int, fps: int, duration: float) -> float:
    """Timestamp rendered for ``frame_index`` at ``fps``, clamped to ``duration``."""
    if fps <= 0:
        raise ValueError("fps must be positive")
    return min(frame_index / float(fps), float(duration))


def total_frames_for(duration: float, fps: int) -> int:
    """Frames needed to cover ``duration`` seconds; at least one."""
    if fps <= 0:
        raise ValueError("fps must be positive")
    return max(1, int(math.ceil(float(duration) * fps)))


class ExportPipeline:
    """Drives a frame renderer and an encoder strictly in frame order."""

    def __init__(
        self,
        presentation: PresentationQueue,
        *,
        render_timeout: Optional[float] = 30.0,
    ) -> None:
        self._presentation = presentation
        self._render_timeout = render_timeout
        self._executor: Optional[ThreadPoolExecutor] = None

    def start(
        self,
        dataset: Optional[TelemetryDataset],
        job: ExportJob,
        output_path: str,
        frame_renderer: FrameRenderer,
        encoder: EncoderSink,
        progress_sink: Optional[ProgressSink] = None,
    ) -> "Future[ExportResult]":
        """Run ``export`` on the pipeline's worker thread."""
        if dataset is None:
            raise ExportPreconditionError("No telemetry data loaded")
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ExportWorker")
        return self._executor.submit(
            self.export, dataset, job, output_path, frame_renderer, encoder, progress_sink
        )

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None

    def export(
        self,
        dataset: Optional[TelemetryDataset],
        job: ExportJob,
        output_path: str,
        frame_renderer: FrameRenderer,
        encoder: EncoderSink,
        progress_sink: Optional[ProgressSink] = None,
    ) -> ExportResult:
        """Render, convert and encode every frame of ``job``.

        Returns a single terminal result; render and encode faults never
        escape as exceptions. The encoder is closed on every exit path.
        """
        if dataset is None:
            raise ExportPreconditionError("No telemetry data loaded")
        width, height = job.output_dims
        logger.info(
            "Export started: %s (%d frames @ %d fps, %dx%d, duration=%.3fs)",
            output_path,
            job.total_frames,
            job.fps,
            width,
            height,
            dataset.duration,
        )

        try:
            encoder.open(output_path, width, height, job.fps)
        except Exception as exc:
            open_error = EncodeError(f"Failed to open encoder for {output_path}: {exc}")
            open_error.__cause__ = exc
            logger.error("%s", open_error)
            return ExportResult(ExportStatus.FAILED, 0, job.total_frames, output_path, open_error)

        status = ExportStatus.COMPLETED
        error: Optional[BaseException] = None
        try:
            for frame_index in range(job.total_frames):
                if job.cancellation_requested:
                    status = ExportStatus.CANCELLED
                    break
                buffer = self._render(frame_renderer, frame_index)
                rgba = self._convert(buffer, width, height, frame_index)
                self._encode(encoder, rgba, frame_index)
                job.frames_completed = frame_index + 1
                self._report(progress_sink, job.progress_percent)
        except Exception as exc:
            status, error = ExportStatus.FAILED, exc
        finally:
            try:
                encoder.close()
            except Exception as exc:
                if status is ExportStatus.COMPLETED:
                    status = ExportStatus.FAILED
                    error = EncodeError(f"Failed to finalize {output_path}: {exc}")
                else:
                    logger.warning("Error closing encoder after export: %s", exc)

        if status is ExportStatus.FAILED:
            logger.error("Export failed after %d/%d frames: %s", job.frames_completed, job.total_frames, error)
        else:
            logger.info("Export %s: %d/%d frames", status.value, job.frames_completed, job.total_frames)
        return ExportResult(status, job.frames_completed, job.total_frames, output_path, error)

    # ------------------------------------------------------------------
    # Per-frame steps
    # ------------------------------------------------------------------

    def _render(self, frame_renderer: FrameRenderer, frame_index: int) -> PixelBuffer:
        try:
            buffer = self._presentation.call(frame_renderer, frame_index, timeout=self._render_timeout)
        except FutureTimeout as exc:
            raise CaptureError(f"Frame {frame_index} render timed out") from exc
        except CaptureError:
            raise
        except Exception as exc:
            raise CaptureError(f"Frame {frame_index} render failed: {exc}") from exc
        if not isinstance(buffer, PixelBuffer):
            raise CaptureError(f"Frame {frame_index} render returned no pixel buffer")
        return buffer

    @staticmethod
    def _convert(buffer: PixelBuffer, width: int, height: int, frame_index: int) -> np.ndarray:
        if (buffer.width, buffer.height) != (width, height):
            raise CaptureError(
                f"Frame {frame_index} is {buffer.width}x{buffer.height}, expected {width}x{height}"
            )
        try:
            return to_rgba(buffer)
        except ValueError as exc:
            raise CaptureError(f"Frame {frame_index}: {exc}") from exc

    @staticmethod
    def _encode(encoder: EncoderSink, rgba: np.ndarray, frame_index: int) -> None:
        try:
            accepted = encoder.append_frame(rgba)
        except Exception as exc:
            raise EncodeError(f"Encoder failed on frame {frame_index}: {exc}") from exc
        if not accepted:
            raise EncodeError(f"Encoder rejected frame {frame_index}")

    @staticmethod
    def _report(progress_sink: Optional[ProgressSink], percent: int) -> None:
        if progress_sink is None:
            return
        try:
            progress_sink(percent)
        except Exception as exc:
            logger.debug("Export progress callback failed: %s", exc)


__all__ = [
    "EncoderSink",
    "ExportPipeline",
    "FrameRenderer",
    "ProgressSink",
    "frame_time",
    "total_frames_for",
]

"""TelemetrySession - owner of the loaded dataset and all interactive state.

The session replaces ambient "current dataset / current cursor" globals: one
presentation context mutates it, workers only receive immutable snapshots.
All public methods must be called on the presentation context.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional, Set

from shared.app_settings import AppSettings, AppSettingsStore
from shared.errors import DatasetLoadError, ExportPreconditionError
from shared.models import (
    ExportJob,
    ExportResult,
    ExportStatus,
    PixelBuffer,
    TelemetryDataset,
    WindowMode,
    WindowResult,
)

from .export import EncoderSink, ExportPipeline, frame_time, total_frames_for
from .playback import PlaybackClock
from .presentation import PresentationQueue
from .scheduler import WindowingScheduler
from .surface import RenderSurface
from .windowing import WindowComputer

logger = logging.getLogger(__name__)

DatasetLoader = Callable[[str], TelemetryDataset]
EncoderFactory = Callable[[], EncoderSink]


class SessionEventType(Enum):
    """Event types emitted by TelemetrySession."""
    DATASET_LOADED = auto()
    WINDOW_RESULT = auto()
    CURSOR_CHANGED = auto()
    PLAYBACK_STATE_CHANGED = auto()
    EXPORT_PROGRESS = auto()
    EXPORT_FINISHED = auto()
    ERROR = auto()


@dataclass
class SessionEvent:
    """Event payload from TelemetrySession."""
    event_type: SessionEventType
    data: Any = None


SessionListener = Callable[[SessionEvent], None]


def _default_encoder() -> EncoderSink:
    from recording.video_encoder import VideoEncoder

    return VideoEncoder()


class TelemetrySession:
    """Explicitly owned session state shared by playback, windowing and export."""

    def __init__(
        self,
        presentation: Optional[PresentationQueue] = None,
        *,
        settings_store: Optional[AppSettingsStore] = None,
        settings: Optional[AppSettings] = None,
        loader: Optional[DatasetLoader] = None,
        encoder_factory: Optional[EncoderFactory] = None,
    ) -> None:
        self.presentation = presentation or PresentationQueue()
        if settings is None:
            settings = settings_store.get() if settings_store is not None else AppSettings()
        self._settings = settings
        self._loader = loader or self._load_with_settings
        self._encoder_factory = encoder_factory or _default_encoder

        self._lock = threading.RLock()
        self._listeners: Dict[int, SessionListener] = {}
        self._next_token = 0

        self._computer = WindowComputer(WindowMode(settings.window_mode))
        self.clock = PlaybackClock(tick_hz=settings.playback_tick_hz)
        self.scheduler = WindowingScheduler(
            self.presentation,
            self._apply_result,
            computer=self._computer,
            on_error=self._on_scheduler_error,
        )
        self.export_pipeline = ExportPipeline(self.presentation)

        self._dataset: Optional[TelemetryDataset] = None
        self._window_length = max(0.0, float(settings.default_window_sec))
        self._visible: Set[str] = set()
        self._surface: Optional[RenderSurface] = None
        self._current_result: Optional[WindowResult] = None
        self._export_job: Optional[ExportJob] = None
        self._export_done: Optional["Future[ExportResult]"] = None
        self._scheduling_suspended = False

        self.clock.on_cursor_changed(self._on_cursor_changed)
        self.clock.on_state_changed(self._on_playback_state_changed)
        self._settings_unsub: Optional[Callable[[], None]] = None
        if settings_store is not None:
            self._settings_unsub = settings_store.subscribe(self._on_settings_changed, replay=False)

    # -------------------------------------------------------------------------
    # Listener Management
    # -------------------------------------------------------------------------

    def add_listener(self, callback: SessionListener) -> int:
        with self._lock:
            token = self._next_token
            self._next_token += 1
            self._listeners[token] = callback
            return token

    def remove_listener(self, token: int) -> None:
        with self._lock:
            self._listeners.pop(token, None)

    def _emit(self, event_type: SessionEventType, data: Any = None) -> None:
        event = SessionEvent(event_type=event_type, data=data)
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                logger.warning("Session listener error (%s): %s", event_type.name, exc)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def dataset(self) -> Optional[TelemetryDataset]:
        return self._dataset

    @property
    def cursor(self) -> float:
        return self.clock.cursor

    @property
    def window_length(self) -> float:
        return self._window_length

    @property
    def visible_channels(self) -> frozenset:
        return frozenset(self._visible)

    @property
    def current_result(self) -> Optional[WindowResult]:
        return self._current_result

    @property
    def surface(self) -> Optional[RenderSurface]:
        return self._surface

    @property
    def is_playing(self) -> bool:
        return self.clock.is_playing

    @property
    def is_exporting(self) -> bool:
        return self._export_job is not None

    @property
    def window_mode(self) -> WindowMode:
        return self._computer.mode

    def can_play(self) -> bool:
        return self._dataset is not None and not self.is_exporting and self.clock.can_play()

    def can_pause(self) -> bool:
        return self.is_playing

    def can_reset(self) -> bool:
        return self._dataset is not None and not self.is_exporting

    def can_export(self) -> bool:
        return self._dataset is not None and self._surface is not None and not self.is_exporting

    # -------------------------------------------------------------------------
    # Dataset lifecycle
    # -------------------------------------------------------------------------

    def load_file(self, path: str) -> bool:
        """Load a telemetry file, replacing the current dataset on success.

        On failure the previous dataset is kept unless ``clear_on_failed_load``
        is set, in which case the session is cleared before loading starts.
        Either way a single ERROR event carries the message.
        """
        if self._settings.clear_on_failed_load:
            self.clear()
        try:
            dataset = self._loader(path)
        except DatasetLoadError as exc:
            message = f"Error loading file: {exc}"
        except Exception as exc:
            message = f"Error loading file: {exc}"
            logger.exception("Unexpected error loading %s", path)
        else:
            self.set_dataset(dataset)
            return True
        logger.error("%s", message)
        self._emit(SessionEventType.ERROR, message)
        return False

    def _load_with_settings(self, path: str) -> TelemetryDataset:
        from ingest import load_telemetry

        return load_telemetry(path, default_visible=self._settings.default_visible_channels)

    def set_dataset(self, dataset: Optional[TelemetryDataset]) -> None:
        """Install a new dataset snapshot (``None`` clears the session)."""
        if self.is_exporting:
            raise ExportPreconditionError("Cannot replace the dataset while exporting")
        self.scheduler.set_dataset(dataset)
        self._dataset = dataset
        self._current_result = None
        if dataset is None:
            self._visible = set()
        else:
            self._visible = {ch.name for ch in dataset.channels if ch.visible}
            self._window_length = self._clamp_window(self._settings.default_window_sec)
        if self._surface is not None:
            self._surface.set_channels(dataset.channels if dataset is not None else ())
        self.clock.set_duration(dataset.duration if dataset is not None else None)
        self._emit(SessionEventType.DATASET_LOADED, dataset)
        if dataset is not None:
            logger.info(
                "Session dataset: %d samples, %d channels, %.3fs",
                dataset.sample_count,
                len(dataset.channels),
                dataset.duration,
            )
            self.request_update()

    def clear(self) -> None:
        self.set_dataset(None)

    def bind_surface(self, surface: Optional[RenderSurface]) -> None:
        self._surface = surface
        if surface is not None:
            surface.set_channels(self._dataset.channels if self._dataset is not None else ())
            if self._current_result is not None:
                surface.show_window(self._current_result)

    # -------------------------------------------------------------------------
    # Interactive controls
    # -------------------------------------------------------------------------

    def play(self) -> bool:
        if not self.can_play():
            return False
        return self.clock.play()

    def pause(self) -> bool:
        return self.clock.pause()

    def toggle_playback(self) -> bool:
        return self.pause() if self.is_playing else self.play()

    def reset(self) -> None:
        if self.is_exporting:
            return
        self.clock.reset()

    def seek(self, position: float) -> float:
        if self._dataset is None:
            return 0.0
        return self.clock.seek(position)

    def tick(self) -> float:
        return self.clock.tick()

    def set_window_length(self, seconds: float) -> float:
        clamped = self._clamp_window(seconds)
        if clamped != self._window_length:
            self._window_length = clamped
            self.request_update()
        return self._window_length

    def set_channel_visible(self, name: str, visible: bool) -> None:
        if self._dataset is None or not self._dataset.has_channel(name):
            raise KeyError(f"unknown channel: {name!r}")
        changed = (name in self._visible) != bool(visible)
        if visible:
            self._visible.add(name)
        else:
            self._visible.discard(name)
        if changed:
            self.request_update()

    def set_window_mode(self, mode: WindowMode | str) -> None:
        mode = WindowMode(mode)
        if mode is self._computer.mode:
            return
        self._computer = WindowComputer(mode)
        self.scheduler.set_computer(self._computer)
        self.request_update()

    def request_update(self) -> Optional[int]:
        """Funnel a cursor/visibility/window change into the scheduler."""
        if self._dataset is None or self._scheduling_suspended:
            return None
        return self.scheduler.request_update(self.cursor, self._window_length, self._visible)

    def compute_now(self) -> WindowResult:
        """Synchronously compute and deliver the window for the current state."""
        dataset = self._dataset
        if dataset is None:
            raise ExportPreconditionError("No telemetry data loaded")
        result = self._computer.compute(dataset, self.cursor, self._window_length, self._visible)
        self._apply_result(result)
        return result

    def _clamp_window(self, seconds: float) -> float:
        duration = self._dataset.duration if self._dataset is not None else 0.0
        value = max(0.0, float(seconds))
        return min(value, duration) if duration > 0 else value

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    def export_video(
        self,
        output_path: str,
        *,
        fps: Optional[int] = None,
        total_frames: Optional[int] = None,
        encoder: Optional[EncoderSink] = None,
    ) -> "Future[ExportResult]":
        """Start exporting the timeline to ``output_path``.

        Returns a Future resolved on the presentation context once playback
        state has been restored. Precondition violations raise immediately.
        """
        dataset = self._dataset
        if dataset is None:
            raise ExportPreconditionError("Load telemetry data before exporting.")
        surface = self._surface
        if surface is None:
            raise ExportPreconditionError("Chart is not ready for capture.")
        if self.is_exporting:
            raise ExportPreconditionError("An export is already running.")
        fps = int(fps if fps is not None else self._settings.export_fps)
        if fps <= 0:
            raise ExportPreconditionError("Export frame rate must be positive.")
        frames = int(total_frames) if total_frames is not None else total_frames_for(dataset.duration, fps)
        if frames <= 0:
            raise ExportPreconditionError("Export frame count must be positive.")

        width, height = surface.pixel_size()
        if width <= 0 or height <= 0:
            width, height = surface.measure_and_arrange()
        width, height = max(1, int(width)), max(1, int(height))
        job = ExportJob(total_frames=frames, fps=fps, output_dims=(width, height))

        was_playing = self.is_playing
        saved_cursor = self.cursor
        self.pause()
        self.scheduler.cancel_pending()
        self._export_job = job
        self._scheduling_suspended = True
        done: "Future[ExportResult]" = Future()
        done.set_running_or_notify_cancel()
        self._export_done = done

        try:
            sink = encoder if encoder is not None else self._encoder_factory()
            future = self.export_pipeline.start(
                dataset,
                job,
                str(output_path),
                lambda index: self._render_export_frame(dataset, job, index),
                sink,
                self._post_progress,
            )
        except Exception as exc:
            self._export_job = None
            self._export_done = None
            self._scheduling_suspended = False
            raise ExportPreconditionError(f"Could not start export: {exc}") from exc

        self._emit(SessionEventType.EXPORT_PROGRESS, 0)
        future.add_done_callback(
            lambda f: self.presentation.submit(self._finish_export, f, was_playing, saved_cursor)
        )
        return done

    def cancel_export(self) -> bool:
        job = self._export_job
        if job is None:
            return False
        job.request_cancel()
        logger.info("Export cancellation requested at frame %d", job.frames_completed)
        return True

    def _render_export_frame(self, dataset: TelemetryDataset, job: ExportJob, frame_index: int) -> PixelBuffer:
        surface = self._surface
        if surface is None:
            raise ExportPreconditionError("Chart surface was unbound during export")
        self.clock.seek(frame_time(frame_index, job.fps, dataset.duration))
        self.compute_now()
        width, height = surface.pixel_size()
        if width <= 0 or height <= 0:
            surface.measure_and_arrange()
        return surface.capture()

    def _post_progress(self, percent: int) -> None:
        self.presentation.submit(self._emit, SessionEventType.EXPORT_PROGRESS, int(percent))

    def _finish_export(self, future: "Future[ExportResult]", was_playing: bool, saved_cursor: float) -> None:
        job = self._export_job
        try:
            result = future.result()
        except Exception as exc:
            total = job.total_frames if job is not None else 0
            done_frames = job.frames_completed if job is not None else 0
            result = ExportResult(ExportStatus.FAILED, done_frames, total, error=exc)
        self._export_job = None
        self._scheduling_suspended = False
        self.clock.seek(saved_cursor)
        self.request_update()
        if result.status is ExportStatus.COMPLETED and was_playing:
            self.play()
        self._emit(SessionEventType.EXPORT_FINISHED, result)
        if result.status is ExportStatus.FAILED:
            self._emit(SessionEventType.ERROR, result.message)
        done = self._export_done
        self._export_done = None
        if done is not None:
            done.set_result(result)

    # -------------------------------------------------------------------------
    # Callbacks
    # -------------------------------------------------------------------------

    def _apply_result(self, result: WindowResult) -> None:
        self._current_result = result
        if self._surface is not None:
            self._surface.show_window(result)
        self._emit(SessionEventType.WINDOW_RESULT, result)

    def _on_cursor_changed(self, cursor: float) -> None:
        self._emit(SessionEventType.CURSOR_CHANGED, cursor)
        self.request_update()

    def _on_playback_state_changed(self, playing: bool) -> None:
        self._emit(SessionEventType.PLAYBACK_STATE_CHANGED, playing)

    def _on_scheduler_error(self, exc: BaseException) -> None:
        self._emit(SessionEventType.ERROR, f"Chart update failed: {exc}")

    def _on_settings_changed(self, settings: AppSettings) -> None:
        self._settings = settings
        self.clock.set_tick_hz(settings.playback_tick_hz)
        self.set_window_mode(settings.window_mode)

    # -------------------------------------------------------------------------
    # Cleanup
    # -------------------------------------------------------------------------

    def shutdown(self) -> None:
        self.cancel_export()
        self.clock.pause()
        self.scheduler.shutdown(wait=False)
        self.export_pipeline.shutdown(wait=False)
        if self._settings_unsub is not None:
            self._settings_unsub()
            self._settings_unsub = None


__all__ = [
    "SessionEvent",
    "SessionEventType",
    "SessionListener",
    "TelemetrySession",
]

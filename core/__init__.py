"""Core application utilities."""

from .export import ExportPipeline, frame_time, total_frames_for
from .pixels import to_rgba
from .playback import PlaybackClock, PlaybackState, TickDriver
from .presentation import PresentationQueue
from .scheduler import SchedulerStats, WindowingScheduler
from .windowing import WindowComputer, compute_window, window_bounds
from shared.models import ChannelPoints, ExportJob, ExportResult, TelemetryDataset, WindowResult

__all__ = [
    "ChannelPoints",
    "ExportJob",
    "ExportPipeline",
    "ExportResult",
    "PlaybackClock",
    "PlaybackState",
    "PresentationQueue",
    "SchedulerStats",
    "TelemetryDataset",
    "TickDriver",
    "WindowComputer",
    "WindowResult",
    "WindowingScheduler",
    "compute_window",
    "frame_time",
    "to_rgba",
    "total_frames_for",
    "window_bounds",
]

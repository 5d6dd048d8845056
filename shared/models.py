from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

import numpy as np

from .errors import InvalidDataset

RGB = Tuple[int, int, int]


def _freeze_array(array: np.ndarray, *, ndim: int | None = None, dtype: Any = None) -> np.ndarray:
    """Return a read-only, C-contiguous copy of `array`, validating dimensions."""
    arr = np.array(array, copy=True, order="C", dtype=dtype)
    if ndim is not None and arr.ndim != ndim:
        raise ValueError(f"array must be {ndim}D, got {arr.ndim}D")
    arr.setflags(write=False)
    return arr


def _copy_mapping(mapping: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    if mapping is None:
        return {}
    if not isinstance(mapping, Mapping):
        raise TypeError("values must be a mapping type")
    return dict(mapping)


# ----------------------------
# Channel / sample metadata
# ----------------------------

@dataclass(frozen=True)
class Channel:
    """A named telemetry signal.

    ``min_value``/``max_value`` are derived by TelemetryDataset from every
    sample that defines the channel and reflect the whole session, not the
    current window. ``visible`` is the load-time default; the live visibility
    mask is owned by the session.
    """

    name: str
    unit: str = ""
    min_value: float = 0.0
    max_value: float = 0.0
    display_color: RGB = (0, 120, 215)
    visible: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise InvalidDataset("channel name must be a non-empty string")
        color = tuple(int(c) for c in self.display_color)
        if len(color) != 3 or any(not 0 <= c <= 255 for c in color):
            raise InvalidDataset(f"display_color for {self.name!r} must be three bytes")
        object.__setattr__(self, "display_color", color)


@dataclass(frozen=True)
class Sample:
    """One timestamped record holding zero or more channel values."""

    timestamp: float
    values: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        ts = float(self.timestamp)
        if not math.isfinite(ts):
            raise InvalidDataset("sample timestamp must be finite")
        object.__setattr__(self, "timestamp", ts)
        object.__setattr__(
            self,
            "values",
            {str(k): float(v) for k, v in _copy_mapping(self.values).items()},
        )


# ----------------------------
# Dataset
# ----------------------------

@dataclass(frozen=True, eq=False)
class TelemetryDataset:
    """Immutable collection of channels and time-ordered samples.

    Samples are additionally stored column-wise as read-only arrays so that
    windowing can binary-search the time axis and slice per channel without
    touching Python objects.
    """

    channels: Tuple[Channel, ...] = ()
    samples: Tuple[Sample, ...] = ()
    source: Optional[str] = None
    _times: np.ndarray = field(init=False, repr=False, compare=False)
    _columns: Dict[str, np.ndarray] = field(init=False, repr=False, compare=False)
    _defined: Dict[str, np.ndarray] = field(init=False, repr=False, compare=False)
    _index: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        channels = tuple(self.channels)
        samples = tuple(self.samples)
        names = [ch.name for ch in channels]
        if len(set(names)) != len(names):
            raise InvalidDataset("channel names must be unique within a dataset")

        times = np.fromiter((s.timestamp for s in samples), dtype=np.float64, count=len(samples))
        if times.size > 1 and np.any(np.diff(times) < 0):
            raise InvalidDataset("samples must be sorted ascending by timestamp")

        columns: Dict[str, np.ndarray] = {}
        defined: Dict[str, np.ndarray] = {}
        ranged: list[Channel] = []
        for channel in channels:
            values = np.full(len(samples), np.nan, dtype=np.float64)
            mask = np.zeros(len(samples), dtype=bool)
            for idx, sample in enumerate(samples):
                value = sample.values.get(channel.name)
                if value is not None:
                    values[idx] = value
                    mask[idx] = True
            present = values[mask]
            if present.size:
                lo, hi = float(np.min(present)), float(np.max(present))
            else:
                lo, hi = 0.0, 0.0
            ranged.append(replace(channel, min_value=lo, max_value=hi))
            values.setflags(write=False)
            mask.setflags(write=False)
            columns[channel.name] = values
            defined[channel.name] = mask
        times.setflags(write=False)

        object.__setattr__(self, "channels", tuple(ranged))
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "_times", times)
        object.__setattr__(self, "_columns", columns)
        object.__setattr__(self, "_defined", defined)
        object.__setattr__(self, "_index", {name: i for i, name in enumerate(names)})

    @classmethod
    def empty(cls) -> "TelemetryDataset":
        return cls((), ())

    @property
    def duration(self) -> float:
        return float(self._times[-1]) if self._times.size else 0.0

    @property
    def times(self) -> np.ndarray:
        return self._times

    @property
    def sample_count(self) -> int:
        return int(self._times.size)

    @property
    def channel_names(self) -> Tuple[str, ...]:
        return tuple(ch.name for ch in self.channels)

    def is_empty(self) -> bool:
        return self._times.size == 0

    def has_channel(self, name: str) -> bool:
        return name in self._index

    def channel(self, name: str) -> Channel:
        try:
            return self.channels[self._index[name]]
        except KeyError:
            raise KeyError(f"unknown channel: {name!r}") from None

    def column(self, name: str) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(values, defined_mask)`` for a channel, both read-only."""
        return self._columns[name], self._defined[name]


# ----------------------------
# Windowing payloads
# ----------------------------

class WindowMode(str, Enum):
    """Direction of a bounded window relative to the cursor."""

    FORWARD = "forward"
    TRAILING = "trailing"


@dataclass(frozen=True)
class ChannelPoints:
    """Ordered (timestamp, value) points for one channel."""

    times: np.ndarray
    values: np.ndarray

    def __post_init__(self) -> None:
        times = _freeze_array(self.times, ndim=1, dtype=np.float64)
        values = _freeze_array(self.values, ndim=1, dtype=np.float64)
        if times.shape != values.shape:
            raise ValueError("times and values must have the same length")
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "values", values)

    @classmethod
    def empty(cls) -> "ChannelPoints":
        return cls(np.empty(0), np.empty(0))

    def __len__(self) -> int:
        return int(self.times.size)

    def __iter__(self) -> Iterator[Tuple[float, float]]:
        return zip(self.times.tolist(), self.values.tolist())

    @property
    def latest_time(self) -> Optional[float]:
        return float(self.times[-1]) if self.times.size else None


@dataclass(frozen=True)
class WindowResult:
    """Per-channel points for one window. Superseded results are discarded."""

    points: Mapping[str, ChannelPoints]
    cursor: float
    window_start: float
    window_end: float
    generation: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", dict(self.points))

    def __getitem__(self, name: str) -> ChannelPoints:
        return self.points[name]

    @property
    def channel_names(self) -> Tuple[str, ...]:
        return tuple(self.points.keys())


# ----------------------------
# Pixel buffers
# ----------------------------

@dataclass(frozen=True)
class PixelBuffer:
    """Raster captured from a rendering surface.

    ``data`` is ``(height, width, channels)`` uint8 in ``pixel_format`` order.
    """

    data: np.ndarray
    pixel_format: str = "RGBA"

    def __post_init__(self) -> None:
        arr = np.asarray(self.data)
        if arr.ndim != 3:
            raise ValueError(f"pixel data must be 3D (h, w, c), got {arr.ndim}D")
        if arr.dtype != np.uint8:
            raise ValueError("pixel data must be uint8")
        object.__setattr__(self, "pixel_format", str(self.pixel_format).upper())

    @property
    def width(self) -> int:
        return int(self.data.shape[1])

    @property
    def height(self) -> int:
        return int(self.data.shape[0])


# ----------------------------
# Export job
# ----------------------------

class ExportStatus(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass
class ExportJob:
    """Mutable bookkeeping for a single export run.

    ``frames_completed`` is written only by the export worker; the
    cancellation flag only by the cancellation source.
    """

    total_frames: int
    fps: int
    output_dims: Tuple[int, int]
    frames_completed: int = 0
    _cancel: threading.Event = field(default_factory=threading.Event, repr=False)

    def __post_init__(self) -> None:
        if self.total_frames <= 0:
            raise ValueError("total_frames must be positive")
        if self.fps <= 0:
            raise ValueError("fps must be positive")
        width, height = (int(v) for v in self.output_dims)
        if width <= 0 or height <= 0:
            raise ValueError("output_dims must be positive")
        self.output_dims = (width, height)

    @property
    def cancellation_requested(self) -> bool:
        return self._cancel.is_set()

    def request_cancel(self) -> None:
        self._cancel.set()

    @property
    def cancel_event(self) -> threading.Event:
        return self._cancel

    @property
    def progress_percent(self) -> int:
        return progress_percent(self.frames_completed, self.total_frames)


def progress_percent(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(min(100, max(0, round(100.0 * completed / total))))


@dataclass(frozen=True)
class ExportResult:
    status: ExportStatus
    frames_completed: int
    total_frames: int
    output_path: Optional[str] = None
    error: Optional[BaseException] = field(default=None, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.status is ExportStatus.COMPLETED

    @property
    def message(self) -> str:
        if self.status is ExportStatus.COMPLETED:
            return "Export completed"
        if self.status is ExportStatus.CANCELLED:
            return "Export cancelled"
        detail = f": {self.error}" if self.error is not None else ""
        return f"Export failed{detail}"


__all__ = [
    "RGB",
    "Channel",
    "Sample",
    "TelemetryDataset",
    "WindowMode",
    "ChannelPoints",
    "WindowResult",
    "PixelBuffer",
    "ExportStatus",
    "ExportJob",
    "ExportResult",
    "progress_percent",
]

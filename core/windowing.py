"""Windowing engine: map a cursor and window length onto per-channel points."""

from __future__ import annotations

import logging
from typing import AbstractSet, Callable, Dict, Optional, Tuple

import numpy as np

from shared.errors import WindowCancelled
from shared.models import ChannelPoints, TelemetryDataset, WindowMode, WindowResult

logger = logging.getLogger(__name__)

# Returns True once the computation has been superseded.
CancelCheck = Callable[[], bool]


def window_bounds(
    duration: float,
    cursor: float,
    window_length: float,
    mode: WindowMode = WindowMode.FORWARD,
) -> Tuple[float, float]:
    """Return the inclusive ``(start, end)`` time range for a window.

    A non-positive ``window_length`` selects everything from the start of the
    data up to the cursor (accumulating mode).
    """
    cursor = float(cursor)
    window_length = float(window_length)
    if window_length <= 0:
        return 0.0, cursor
    if WindowMode(mode) is WindowMode.TRAILING:
        return max(cursor - window_length, 0.0), cursor
    return cursor, min(cursor + window_length, float(duration))


def _check(cancelled: Optional[CancelCheck]) -> None:
    if cancelled is not None and cancelled():
        raise WindowCancelled("window computation superseded")


class WindowComputer:
    """Stateless window computation over an immutable dataset.

    Instances only carry configuration (the window direction), so a single
    computer can be shared between the interactive scheduler and export.
    """

    def __init__(self, mode: WindowMode | str = WindowMode.FORWARD) -> None:
        self._mode = WindowMode(mode)

    @property
    def mode(self) -> WindowMode:
        return self._mode

    def compute(
        self,
        dataset: TelemetryDataset,
        cursor: float,
        window_length: float,
        visibility_mask: AbstractSet[str],
        *,
        cancelled: Optional[CancelCheck] = None,
        generation: int = 0,
    ) -> WindowResult:
        """Select the visible points of every channel.

        Raises WindowCancelled when ``cancelled`` reports True at a checkpoint;
        no partial result is ever returned.
        """
        start, end = window_bounds(dataset.duration, cursor, window_length, self._mode)
        times = dataset.times
        if end < start or times.size == 0:
            lo = hi = 0
        else:
            lo = int(np.searchsorted(times, start, side="left"))
            hi = int(np.searchsorted(times, end, side="right"))
        _check(cancelled)

        window_times = times[lo:hi]
        points: Dict[str, ChannelPoints] = {}
        for channel in dataset.channels:
            _check(cancelled)
            name = channel.name
            if name not in visibility_mask or hi <= lo:
                points[name] = ChannelPoints.empty()
                continue
            try:
                values, defined = dataset.column(name)
                keep = defined[lo:hi]
                points[name] = ChannelPoints(window_times[keep], values[lo:hi][keep])
            except Exception as exc:
                logger.warning("Skipping channel %r while windowing: %s", name, exc)
                points[name] = ChannelPoints.empty()

        _check(cancelled)
        return WindowResult(
            points=points,
            cursor=float(cursor),
            window_start=start,
            window_end=end,
            generation=generation,
        )


def compute_window(
    dataset: TelemetryDataset,
    cursor: float,
    window_length: float,
    visibility_mask: AbstractSet[str],
    *,
    mode: WindowMode | str = WindowMode.FORWARD,
    cancelled: Optional[CancelCheck] = None,
) -> WindowResult:
    return WindowComputer(mode).compute(
        dataset, cursor, window_length, visibility_mask, cancelled=cancelled
    )


__all__ = ["CancelCheck", "WindowComputer", "compute_window", "window_bounds"]

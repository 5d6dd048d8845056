"""
Telemetry dataset builders for tests.

Every builder returns a fully validated TelemetryDataset so tests exercise the
same column layout the windowing engine sees in production.
"""
from __future__ import annotations

from typing import Mapping, Optional, Sequence

import numpy as np

from shared.models import Channel, Sample, TelemetryDataset


def make_dataset(
    times: Sequence[float],
    columns: Mapping[str, Sequence[Optional[float]]],
    *,
    visible: Optional[Sequence[str]] = None,
) -> TelemetryDataset:
    """Build a dataset from a time axis and per-channel value lists.

    ``None`` entries mark samples where the channel is absent.
    """
    names = list(columns)
    samples = []
    for idx, ts in enumerate(times):
        values = {name: columns[name][idx] for name in names if columns[name][idx] is not None}
        samples.append(Sample(float(ts), values))
    shown = set(names if visible is None else visible)
    channels = tuple(Channel(name=name, visible=name in shown) for name in names)
    return TelemetryDataset(channels, tuple(samples))


def ab_dataset() -> TelemetryDataset:
    """Channel A at t=0..4 s, channel B only at t=0, 2, 4 s."""
    return make_dataset(
        [0.0, 1.0, 2.0, 3.0, 4.0],
        {
            "A": [10.0, 11.0, 12.0, 13.0, 14.0],
            "B": [20.0, None, 22.0, None, 24.0],
        },
    )


def ramp_dataset(duration: float = 1.0, rate_hz: float = 50.0, n_channels: int = 2) -> TelemetryDataset:
    """Linear ramps sampled at ``rate_hz`` from 0 to ``duration`` inclusive."""
    n = int(round(duration * rate_hz)) + 1
    times = np.linspace(0.0, duration, n)
    columns = {f"ch{idx}": list(times * (idx + 1)) for idx in range(n_channels)}
    return make_dataset(times.tolist(), columns)

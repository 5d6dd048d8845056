"""Spreadsheet telemetry reader (transmitter log exports as .xlsx or .csv).

Expected layout, starting at ``header_row``:

- header row: first column is the time axis, then one column per channel name
- optional unit row: detected when the first cell below the header is not numeric
- data rows: timestamp in milliseconds, then channel values

Unparseable value cells are treated as absent for that sample; rows whose
timestamp cannot be parsed are skipped.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import numpy as np
import pandas as pd

from shared.errors import DatasetLoadError, InvalidDataset
from shared.models import RGB, Channel, Sample, TelemetryDataset

logger = logging.getLogger(__name__)

XLSX_HEADER_ROW = 2  # Row 3 in spreadsheet numbering; rows above hold export metadata.
MAX_COLUMNS = 9  # Time column plus eight channels.
TIMESTAMP_SCALE = 1.0 / 1000.0

_PALETTE: List[RGB] = [
    (0, 120, 215),   # blue
    (232, 17, 35),   # red
    (0, 153, 76),    # green
    (255, 185, 0),   # yellow
    (142, 68, 173),  # purple
    (0, 183, 195),   # cyan
    (255, 140, 0),   # orange
    (132, 117, 69),  # brown
]


def channel_colors(count: int) -> List[RGB]:
    """Fixed palette first, then deterministic pseudo-random colours."""
    colors = list(_PALETTE)
    while len(colors) < count:
        rng = np.random.default_rng(len(colors))
        r, g, b = (int(v) for v in rng.integers(50, 255, size=3))
        colors.append((r, g, b))
    return colors[:count]


def read_grid(path: Path) -> pd.DataFrame:
    """Read the first sheet (or the CSV) as an untyped cell grid."""
    suffix = path.suffix.lower()
    if suffix in (".xlsx", ".xlsm"):
        return pd.read_excel(path, sheet_name=0, header=None, dtype=object, engine="openpyxl")
    if suffix in (".csv", ".txt"):
        return pd.read_csv(path, header=None, dtype=object, skip_blank_lines=False)
    raise DatasetLoadError(f"Unsupported telemetry file type: {suffix or path.name}")


def _is_number(value: object) -> bool:
    if value is None:
        return False
    try:
        return bool(np.isfinite(float(str(value).strip())))
    except ValueError:
        return False


def _cell_text(value: object) -> Optional[str]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    text = str(value).strip()
    return text or None


def parse_grid(
    grid: pd.DataFrame,
    *,
    header_row: int = 0,
    default_visible: int = 2,
    max_columns: int = MAX_COLUMNS,
    source: Optional[str] = None,
) -> TelemetryDataset:
    """Build a dataset from a raw cell grid."""
    grid = grid.iloc[header_row:, :max_columns].reset_index(drop=True)
    grid = grid.astype(object).where(pd.notna(grid), None)
    n_rows, n_cols = grid.shape
    if n_rows < 2 or n_cols < 2:
        raise DatasetLoadError("The telemetry file must have at least 2 rows and 2 columns.")

    header = grid.iloc[0]
    names: List[str] = []
    for col in range(1, n_cols):
        name = _cell_text(header.iloc[col]) or f"Channel {col}"
        while name in names:
            name = f"{name} ({col})"
        names.append(name)

    has_unit_row = n_rows > 1 and grid.iloc[1, 0] is not None and not _is_number(grid.iloc[1, 0])
    units = [""] * len(names)
    if has_unit_row:
        units = [_cell_text(grid.iloc[1, col]) or "" for col in range(1, n_cols)]
    data = grid.iloc[2 if has_unit_row else 1:]

    timestamps = pd.to_numeric(data.iloc[:, 0], errors="coerce").to_numpy(dtype=np.float64)
    values = data.iloc[:, 1:].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=np.float64)
    keep = np.isfinite(timestamps)
    skipped = int((~keep).sum())
    if skipped:
        logger.debug("Skipped %d rows without a numeric timestamp", skipped)
    timestamps = timestamps[keep] * TIMESTAMP_SCALE
    values = values[keep]

    order = np.argsort(timestamps, kind="mergesort")
    if np.any(order != np.arange(order.size)):
        logger.warning("Telemetry rows were not time-ordered; sorting %d samples", order.size)
        timestamps = timestamps[order]
        values = values[order]

    samples = []
    for ts, row in zip(timestamps.tolist(), values):
        defined = np.isfinite(row)
        samples.append(Sample(ts, {names[i]: float(row[i]) for i in np.flatnonzero(defined)}))

    colors = channel_colors(len(names))
    channels = [
        Channel(
            name=name,
            unit=units[i],
            display_color=colors[i],
            visible=i < default_visible,
        )
        for i, name in enumerate(names)
    ]
    try:
        return TelemetryDataset(tuple(channels), tuple(samples), source=source)
    except InvalidDataset as exc:
        raise DatasetLoadError(f"Invalid telemetry data: {exc}") from exc


def load_telemetry(
    path: str | Path,
    *,
    header_row: Optional[int] = None,
    default_visible: int = 2,
) -> TelemetryDataset:
    """Read a telemetry log into a new dataset.

    Raises DatasetLoadError when the file cannot be read or its layout is
    invalid.
    """
    path = Path(path)
    if not path.is_file():
        raise DatasetLoadError(f"Telemetry file not found: {path}")
    if header_row is None:
        header_row = XLSX_HEADER_ROW if path.suffix.lower() in (".xlsx", ".xlsm") else 0
    try:
        grid = read_grid(path)
    except DatasetLoadError:
        raise
    except Exception as exc:
        raise DatasetLoadError(f"Cannot read telemetry file {path.name}: {exc}") from exc
    if grid.empty:
        raise DatasetLoadError("The telemetry file is empty or invalid.")

    dataset = parse_grid(grid, header_row=header_row, default_visible=default_visible, source=str(path))
    logger.info(
        "Loaded %d samples from %d channels (%s, %.3fs)",
        dataset.sample_count,
        len(dataset.channels),
        path.name,
        dataset.duration,
    )
    return dataset


__all__ = ["MAX_COLUMNS", "XLSX_HEADER_ROW", "channel_colors", "load_telemetry", "parse_grid", "read_grid"]

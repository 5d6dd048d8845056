"""Readers that turn telemetry log files into TelemetryDataset instances."""

from .spreadsheet import channel_colors, load_telemetry, parse_grid

__all__ = ["channel_colors", "load_telemetry", "parse_grid"]

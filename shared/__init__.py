"""
Shared data structures available to both the processing core and the GUI.
"""

from .errors import DatasetLoadError, ExportPreconditionError, InvalidDataset, TelemetryError
from .models import Channel, Sample, TelemetryDataset, WindowMode

__all__ = [
    "Channel",
    "DatasetLoadError",
    "ExportPreconditionError",
    "InvalidDataset",
    "Sample",
    "TelemetryDataset",
    "TelemetryError",
    "WindowMode",
]

from __future__ import annotations


class TelemetryError(Exception):
    """Base error for telemetry windowing and export failures."""


# ---- Dataset construction / loading ----
class InvalidDataset(TelemetryError, ValueError):
    """Raised when a TelemetryDataset is constructed with invalid inputs."""


class DatasetLoadError(TelemetryError):
    """Raised when a telemetry file cannot be read or has an invalid layout."""


# ---- Windowing ----
class WindowCancelled(TelemetryError):
    """Raised inside a window computation that was superseded or cancelled.

    This is a control-flow signal, not a failure: callers drop it silently.
    """


# ---- Export ----
class ExportPreconditionError(TelemetryError, RuntimeError):
    """Raised when an export is requested without the state it needs."""


class CaptureError(TelemetryError):
    """Raised when a frame cannot be rendered or captured from the surface."""


class EncodeError(TelemetryError):
    """Raised when the video encoder rejects a frame or cannot be opened."""


__all__ = [
    "TelemetryError",
    "InvalidDataset",
    "DatasetLoadError",
    "WindowCancelled",
    "ExportPreconditionError",
    "CaptureError",
    "EncodeError",
]

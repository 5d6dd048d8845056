"""Rendering surface contract consumed by the session and export pipeline."""

from __future__ import annotations

from typing import Protocol, Sequence, Tuple

from shared.models import Channel, PixelBuffer, WindowResult


class RenderSurface(Protocol):
    """Single-owner chart surface living on the presentation context."""

    def pixel_size(self) -> Tuple[int, int]:
        """Current ``(width, height)`` in pixels; zero until laid out."""
        ...

    def measure_and_arrange(self) -> Tuple[int, int]:
        """Force a layout pass and return the resulting size."""
        ...

    def set_channels(self, channels: Sequence[Channel]) -> None: ...

    def show_window(self, result: WindowResult) -> None: ...

    def capture(self) -> PixelBuffer:
        """Rasterise the current visual state."""
        ...


__all__ = ["RenderSurface"]

"""Conversion of captured rasters to the canonical RGBA8888 layout."""

from __future__ import annotations

import numpy as np

from shared.models import PixelBuffer

CANONICAL_FORMAT = "RGBA"

# Source channel index for each canonical R, G, B, A output channel.
_CHANNEL_ORDER = {
    "RGBA": (0, 1, 2, 3),
    "BGRA": (2, 1, 0, 3),
    "ARGB": (1, 2, 3, 0),
    "ABGR": (3, 2, 1, 0),
    "RGB": (0, 1, 2, None),
    "BGR": (2, 1, 0, None),
}
_PREMULTIPLIED = {"PRGBA": "RGBA", "PBGRA": "BGRA", "PARGB": "ARGB"}


def _unpremultiply(rgba: np.ndarray) -> np.ndarray:
    alpha = rgba[..., 3:4].astype(np.float32)
    color = rgba[..., :3].astype(np.float32)
    with np.errstate(divide="ignore", invalid="ignore"):
        scaled = np.where(alpha > 0, color * 255.0 / alpha, 0.0)
    out = np.empty_like(rgba)
    out[..., :3] = np.clip(np.rint(scaled), 0, 255).astype(np.uint8)
    out[..., 3] = rgba[..., 3]
    return out


def to_rgba(buffer: PixelBuffer) -> np.ndarray:
    """Return ``buffer`` as a C-contiguous ``(h, w, 4)`` uint8 RGBA array.

    Colour channel reordering and un-premultiplying happen here so the encoder
    only ever sees one layout.
    """
    fmt = buffer.pixel_format
    premultiplied = fmt in _PREMULTIPLIED
    base = _PREMULTIPLIED.get(fmt, fmt)
    order = _CHANNEL_ORDER.get(base)
    if order is None:
        raise ValueError(f"Unsupported pixel format: {fmt}")
    data = np.asarray(buffer.data, dtype=np.uint8)
    expected = 3 if order[3] is None else 4
    if data.shape[2] != expected:
        raise ValueError(f"{fmt} pixels need {expected} channels, got {data.shape[2]}")

    out = np.empty((data.shape[0], data.shape[1], 4), dtype=np.uint8)
    for dst, src in enumerate(order):
        if src is None:
            out[..., dst] = 255
        else:
            out[..., dst] = data[..., src]
    if premultiplied:
        out = _unpremultiply(out)
    return np.ascontiguousarray(out)


__all__ = ["CANONICAL_FORMAT", "to_rgba"]

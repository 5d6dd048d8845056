"""Unit tests for pixel-format normalisation to RGBA8888."""
from __future__ import annotations

import numpy as np
import pytest

from core.pixels import to_rgba
from shared.models import PixelBuffer


def pixel(*channels):
    return np.array([[channels]], dtype=np.uint8)


class TestToRgba:
    @pytest.mark.parametrize(
        "fmt,raw",
        [
            ("RGBA", (10, 20, 30, 255)),
            ("BGRA", (30, 20, 10, 255)),
            ("ARGB", (255, 10, 20, 30)),
            ("ABGR", (255, 30, 20, 10)),
        ],
    )
    def test_reorders_channels(self, fmt, raw):
        out = to_rgba(PixelBuffer(pixel(*raw), fmt))
        assert out[0, 0].tolist() == [10, 20, 30, 255]

    def test_rgb_gets_opaque_alpha(self):
        out = to_rgba(PixelBuffer(pixel(1, 2, 3), "BGR"))
        assert out[0, 0].tolist() == [3, 2, 1, 255]

    def test_unpremultiplies(self):
        out = to_rgba(PixelBuffer(pixel(64, 32, 0, 128), "PBGRA"))
        assert out[0, 0].tolist() == [0, 64, 128, 128]

    def test_zero_alpha_premultiplied_is_black(self):
        out = to_rgba(PixelBuffer(pixel(0, 0, 0, 0), "PRGBA"))
        assert out[0, 0].tolist() == [0, 0, 0, 0]

    def test_output_is_contiguous_copy(self):
        data = np.zeros((4, 5, 4), dtype=np.uint8)[:, ::-1]
        out = to_rgba(PixelBuffer(data, "RGBA"))
        assert out.flags.c_contiguous
        assert out.shape == (4, 5, 4)

    def test_unsupported_format(self):
        with pytest.raises(ValueError):
            to_rgba(PixelBuffer(np.zeros((1, 1, 2), dtype=np.uint8), "LA"))

    def test_channel_count_mismatch(self):
        with pytest.raises(ValueError):
            to_rgba(PixelBuffer(np.zeros((1, 1, 3), dtype=np.uint8), "RGBA"))

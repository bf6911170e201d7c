"""Pixel statistics over decoded images.

Every function takes a PIL image and returns plain numbers, so the descriptor
rules in :mod:`caption_art.analysis.descriptors` can be tested without images.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from PIL import Image, ImageFilter, ImageStat

from ..color import luma, rgb_to_hex, saturation_of
from .types import DominantColor

COLOR_SAMPLE_SIZE = (150, 150)
QUANT_STEP = 32
MAX_DOMINANT_COLORS = 8

EDGE_SAMPLE_SIZE = (100, 100)
EDGE_THRESHOLD = 30

SYMMETRY_SAMPLE_SIZE = (200, 200)
SYMMETRY_TOLERANCE = 20

WEIGHT_SAMPLE_SIZE = (100, 100)


@dataclass(frozen=True)
class ChannelStats:
    means: tuple[float, float, float]
    stddevs: tuple[float, float, float]

    @property
    def brightness(self) -> float:
        return luma(*self.means)

    @property
    def contrast(self) -> float:
        return sum(s / 255 for s in self.stddevs) / 3

    @property
    def saturation(self) -> float:
        return saturation_of(*self.means)


def to_rgb(img: Image.Image) -> Image.Image:
    return img if img.mode == "RGB" else img.convert("RGB")


def quantize_channel(values: np.ndarray) -> np.ndarray:
    """Round to the nearest multiple of QUANT_STEP, halves up, clamped to 255."""
    stepped = np.floor(values.astype(np.float64) / QUANT_STEP + 0.5) * QUANT_STEP
    return np.minimum(stepped, 255).astype(np.int64)


def dominant_colors_from_pixels(
    pixels: np.ndarray, limit: int = MAX_DOMINANT_COLORS
) -> list[DominantColor]:
    """Bucket an (N, 3) RGB array by quantized color.

    Buckets are ordered by pixel count, ties by the position of the first pixel
    that landed in the bucket.
    """
    pixels = np.asarray(pixels).reshape(-1, 3)
    total = len(pixels)
    if total == 0:
        return []

    q = quantize_channel(pixels)
    codes = (q[:, 0] << 16) | (q[:, 1] << 8) | q[:, 2]
    uniq, first_idx, counts = np.unique(codes, return_index=True, return_counts=True)
    order = np.lexsort((first_idx, -counts))[:limit]

    out: list[DominantColor] = []
    for i in order:
        code = int(uniq[i])
        hex_color = rgb_to_hex((code >> 16) & 0xFF, (code >> 8) & 0xFF, code & 0xFF)
        out.append(DominantColor(color=hex_color, percentage=float(counts[i]) / total * 100))
    return out


def extract_dominant_colors(img: Image.Image, limit: int = MAX_DOMINANT_COLORS) -> list[DominantColor]:
    sample = to_rgb(img).copy()
    sample.thumbnail(COLOR_SAMPLE_SIZE)
    return dominant_colors_from_pixels(np.asarray(sample), limit)


def channel_stats(img: Image.Image) -> ChannelStats:
    stat = ImageStat.Stat(to_rgb(img))
    means = tuple(float(m) for m in stat.mean[:3])
    stddevs = tuple(float(s) for s in stat.stddev[:3])
    return ChannelStats(means=means, stddevs=stddevs)  # type: ignore[arg-type]


def edge_density(img: Image.Image) -> float:
    """Fraction of bright pixels in a sharpened grayscale thumbnail."""
    gray = img.convert("L").filter(ImageFilter.SHARPEN)
    gray.thumbnail(EDGE_SAMPLE_SIZE)
    arr = np.asarray(gray)
    if arr.size == 0:
        return 0.0
    return float((arr > EDGE_THRESHOLD).mean())


def symmetry_score(img: Image.Image) -> float:
    """Share of left/right mirrored pixel pairs whose intensities differ by < 20."""
    gray = img.convert("L").resize(SYMMETRY_SAMPLE_SIZE)
    arr = np.asarray(gray, dtype=np.int16)
    half = arr.shape[1] // 2
    if half == 0:
        return 0.5
    left = arr[:, :half]
    right = arr[:, ::-1][:, :half]
    return float((np.abs(left - right) < SYMMETRY_TOLERANCE).mean())


def visual_weight(img: Image.Image) -> tuple[float, float, float]:
    """Brightness mass of the left, center and right thirds, as shares of the frame."""
    gray = img.convert("L").resize(WEIGHT_SAMPLE_SIZE)
    arr = np.asarray(gray, dtype=np.float64) / 255
    height, width = arr.shape
    cols = np.arange(width)
    left = cols < width / 3
    center = (cols >= width / 3) & (cols < 2 * width / 3)
    right = cols >= 2 * width / 3
    total = width * height
    return (
        float(arr[:, left].sum() / total),
        float(arr[:, center].sum() / total),
        float(arr[:, right].sum() / total),
    )

"""Color math shared by the style analyzer and the creative renderer."""

from __future__ import annotations

import re
from typing import Optional

RGB = tuple[int, int, int]

_HEX_RE = re.compile(r"^#?([0-9a-fA-F]{2})([0-9a-fA-F]{2})([0-9a-fA-F]{2})$")

LUMA_WEIGHTS = (0.299, 0.587, 0.114)


def _clamp(v: float) -> int:
    return max(0, min(255, int(v)))


def hex_to_rgb(hex_color: str) -> Optional[RGB]:
    m = _HEX_RE.match(hex_color.strip())
    if m is None:
        return None
    return (int(m.group(1), 16), int(m.group(2), 16), int(m.group(3), 16))


def parse_hex(hex_color: str) -> RGB:
    """Like :func:`hex_to_rgb` but raises ``ValueError`` on malformed input."""
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        raise ValueError(f"Invalid hex color: {hex_color!r}")
    return rgb


def rgb_to_hex(r: int, g: int, b: int) -> str:
    return "#" + "".join(f"{_clamp(c):02x}" for c in (r, g, b))


def luma(r: float, g: float, b: float) -> float:
    """Perceptual luma of 0-255 channel values, normalized to [0, 1]."""
    wr, wg, wb = LUMA_WEIGHTS
    return (wr * r + wg * g + wb * b) / 255


def lighten(hex_color: str, percent: float) -> RGB:
    """Add ``percent`` of full scale to every channel, clamping at white."""
    r, g, b = parse_hex(hex_color)
    amt = round(2.55 * percent)
    return (_clamp(r + amt), _clamp(g + amt), _clamp(b + amt))


def contrast_color(hex_color: str) -> RGB:
    """Black on light colors, white on dark ones."""
    r, g, b = parse_hex(hex_color)
    return (0, 0, 0) if luma(r, g, b) > 0.5 else (255, 255, 255)


def saturation_of(r: float, g: float, b: float) -> float:
    hi = max(r, g, b)
    lo = min(r, g, b)
    return 0.0 if hi == 0 else (hi - lo) / hi


def is_vivid(hex_color: str) -> bool:
    rgb = hex_to_rgb(hex_color)
    if rgb is None:
        return False
    r, g, b = rgb
    brightness = (r + g + b) / (3 * 255)
    return saturation_of(r, g, b) > 0.6 and 0.2 < brightness < 0.8


def is_warm(hex_color: str) -> bool:
    rgb = hex_to_rgb(hex_color)
    return rgb is not None and rgb[0] > rgb[2]


def is_cool(hex_color: str) -> bool:
    rgb = hex_to_rgb(hex_color)
    return rgb is not None and rgb[2] > rgb[0]

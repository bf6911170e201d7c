from __future__ import annotations

from typing import Sequence

from ..color import is_cool, is_vivid, is_warm
from .types import DominantColor

BASE_CONFIDENCE = 0.5
MAX_CONFIDENCE = 0.95


def aspect_label(width: int, height: int) -> str:
    aspect = (width or 1) / (height or 1)
    if abs(aspect - 1) < 0.1:
        return "Square format"
    if aspect > 1:
        return "Landscape orientation"
    return "Portrait orientation"


def complexity_label(density: float) -> str:
    if density > 0.3:
        return "High detail complexity"
    if density > 0.15:
        return "Moderate detail level"
    return "Simple composition"


def symmetry_label(score: float) -> str:
    if score > 0.7:
        return "Symmetrical layout"
    if score > 0.4:
        return "Partial symmetry"
    return "Asymmetrical composition"


def weight_label(left: float, right: float) -> str:
    if abs(left - right) < 0.05:
        return "Balanced visual weight"
    if left > right:
        return "Left-weighted composition"
    return "Right-weighted composition"


def visual_style(
    brightness: float,
    saturation: float,
    dominant: Sequence[DominantColor],
    width: int,
    height: int,
) -> list[str]:
    styles: list[str] = []
    color_count = len(dominant)
    vivid = sum(1 for c in dominant if is_vivid(c.color))

    if brightness > 0.7:
        styles.append("Bright and airy")
    elif brightness < 0.3:
        styles.append("Dark and moody")
    else:
        styles.append("Balanced lighting")

    if color_count <= 3:
        styles.append("Minimalist color scheme")
    elif color_count >= 6:
        styles.append("Rich color palette")

    if vivid > color_count * 0.5:
        styles.append("Vibrant and bold")
    elif vivid < color_count * 0.2:
        styles.append("Muted tones")

    aspect = (width or 1) / (height or 1)
    if aspect > 1.5:
        styles.append("Cinematic composition")
    elif aspect < 0.7:
        styles.append("Portrait orientation")
    else:
        styles.append("Balanced composition")

    if saturation > 0.7 and vivid > 0:
        styles.append("Modern and energetic")
    elif saturation < 0.3:
        styles.append("Vintage aesthetic")

    return styles


def mentions(descriptors: Sequence[str], *keywords: str) -> bool:
    """True if any descriptor contains any keyword, case-insensitively."""
    lowered = [d.lower() for d in descriptors]
    return any(k.lower() in d for d in lowered for k in keywords)


def key_elements(
    dominant: Sequence[DominantColor], contrast: float, styles: Sequence[str]
) -> list[str]:
    elements: list[str] = []

    if len(dominant) >= 4:
        elements.append("Multi-color composition")
    if any(c.percentage < 10 for c in dominant):
        elements.append("Smooth color transitions")

    if contrast > 0.6:
        elements.append("High contrast elements")
    elif contrast < 0.2:
        elements.append("Soft transitions")

    if mentions(styles, "minimalist"):
        elements.extend(["Clean lines", "Negative space"])
    if mentions(styles, "vintage"):
        elements.extend(["Retro textures", "Classic typography"])
    if mentions(styles, "modern"):
        elements.extend(["Geometric shapes", "Bold typography"])

    return elements


def typography_from_style(styles: Sequence[str]) -> list[str]:
    typography: list[str] = []

    if mentions(styles, "modern", "minimalist"):
        typography.extend(["Clean sans-serif fonts", "Geometric typography"])
    if mentions(styles, "vintage", "classic"):
        typography.extend(["Serif fonts", "Classic typography"])
    if mentions(styles, "bold", "vibrant"):
        typography.extend(["Bold display fonts", "Strong font weights"])
    if mentions(styles, "elegant", "sophisticated"):
        typography.extend(["Elegant script fonts", "Light font weights"])

    return typography or ["Versatile typography", "Standard font hierarchy"]


def mood_from_style(styles: Sequence[str], palette: Sequence[str]) -> list[str]:
    mood: list[str] = []

    if mentions(styles, "bright", "airy"):
        mood.extend(["Uplifting", "Positive"])
    if mentions(styles, "dark", "moody"):
        mood.extend(["Dramatic", "Intense"])
    if mentions(styles, "minimalist", "clean"):
        mood.extend(["Calm", "Professional"])
    if mentions(styles, "vibrant", "bold"):
        mood.extend(["Energetic", "Dynamic"])

    warm = sum(1 for c in palette if is_warm(c))
    cool = sum(1 for c in palette if is_cool(c))
    if warm > cool:
        mood.append("Warm and inviting")
    elif cool > warm:
        mood.append("Cool and calming")

    return mood or ["Versatile", "Professional"]


def confidence_score(
    palette_size: int,
    style_count: int,
    composition_count: int,
    brightness: float,
    contrast: float,
) -> float:
    confidence = BASE_CONFIDENCE
    if 3 <= palette_size <= 8:
        confidence += 0.15
    if style_count >= 2:
        confidence += 0.1
    if composition_count >= 3:
        confidence += 0.1
    if 0.2 < brightness < 0.8:
        confidence += 0.05
    if contrast > 0.3:
        confidence += 0.05
    return min(confidence, MAX_CONFIDENCE)

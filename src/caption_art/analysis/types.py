from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Optional


@dataclass(frozen=True)
class DominantColor:
    color: str
    percentage: float


@dataclass(frozen=True)
class ReferenceMetadata:
    reference_id: str = ""
    name: str = ""
    description: str = ""
    tags: tuple[str, ...] = ()

    def text(self) -> str:
        return " ".join([self.name, self.description, *self.tags]).lower()


@dataclass(frozen=True)
class ImageSignals:
    """Numeric signals computed from pixels, before descriptors are finalized."""

    color_palette: list[str]
    dominant_colors: list[DominantColor]
    composition: list[str]
    visual_style: list[str]
    key_elements: list[str]
    brightness: float
    contrast: float
    saturation: float
    width: int
    height: int
    format: str
    has_transparency: bool


@dataclass(frozen=True)
class StyleEnhancement:
    """Fields an enhancer may supply; ``None`` keeps the numerically derived value."""

    color_palette: Optional[list[str]] = None
    typography: Optional[list[str]] = None
    composition: Optional[list[str]] = None
    mood: Optional[list[str]] = None
    visual_style: Optional[list[str]] = None
    key_elements: Optional[list[str]] = None


@dataclass(frozen=True)
class StyleAnalysis:
    color_palette: tuple[str, ...]
    typography_suggestions: tuple[str, ...]
    composition_descriptors: tuple[str, ...]
    mood_descriptors: tuple[str, ...]
    visual_style_descriptors: tuple[str, ...]
    key_elements: tuple[str, ...]
    confidence: float
    brightness: float = 0.0
    contrast: float = 0.0
    saturation: float = 0.0
    dominant_colors: tuple[DominantColor, ...] = ()
    image_width: int = 0
    image_height: int = 0
    image_format: str = "unknown"
    has_transparency: bool = False
    source: str = "pixels"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "StyleAnalysis":
        data = dict(payload)
        for name in _SEQUENCE_FIELDS:
            data[name] = tuple(data.get(name, ()))
        data["dominant_colors"] = tuple(DominantColor(**c) for c in data.get("dominant_colors", ()))
        return cls(**data)


_SEQUENCE_FIELDS = (
    "color_palette",
    "typography_suggestions",
    "composition_descriptors",
    "mood_descriptors",
    "visual_style_descriptors",
    "key_elements",
)

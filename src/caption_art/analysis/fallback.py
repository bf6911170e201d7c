from __future__ import annotations

from .descriptors import mood_from_style, typography_from_style
from .types import DominantColor, ReferenceMetadata, StyleAnalysis

FALLBACK_PALETTE = (
    DominantColor("#3498db", 30.0),
    DominantColor("#2c3e50", 25.0),
    DominantColor("#ecf0f1", 20.0),
    DominantColor("#ffffff", 15.0),
    DominantColor("#34495e", 10.0),
)

FALLBACK_BASE_CONFIDENCE = 0.3
FALLBACK_MAX_CONFIDENCE = 0.5


def metadata_analysis(metadata: ReferenceMetadata) -> StyleAnalysis:
    """Heuristic style profile built only from the reference's name, description and tags."""
    text = metadata.text()
    has_modern = "modern" in text
    has_minimal = "minimal" in text
    has_bold = "bold" in text

    styles = [
        "Modern" if has_modern else "Contemporary",
        "Minimalist" if has_minimal else "Detailed",
        "Bold" if has_bold else "Subtle",
    ]
    palette = tuple(c.color for c in FALLBACK_PALETTE)
    matched = sum([has_modern, has_minimal, has_bold])

    return StyleAnalysis(
        color_palette=palette,
        typography_suggestions=tuple(typography_from_style(styles)),
        composition_descriptors=("Balanced layout", "Clear hierarchy"),
        mood_descriptors=tuple(mood_from_style(styles, palette)),
        visual_style_descriptors=tuple(styles),
        key_elements=("Clean design", "Professional appearance"),
        confidence=min(FALLBACK_BASE_CONFIDENCE + 0.05 * matched, FALLBACK_MAX_CONFIDENCE),
        brightness=0.6,
        contrast=0.5,
        saturation=0.6,
        dominant_colors=FALLBACK_PALETTE,
        image_width=0,
        image_height=0,
        image_format="unknown",
        has_transparency=False,
        source="metadata-fallback",
    )

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from PIL import Image

from ..cache.keys import CacheKind, hash_payload, make_key
from ..errors import ImageFetchError
from ..imaging import decode_image
from ..io import sha256_bytes
from .descriptors import (
    aspect_label,
    complexity_label,
    confidence_score,
    key_elements,
    mood_from_style,
    symmetry_label,
    typography_from_style,
    visual_style,
    weight_label,
)
from .enhancer import StyleEnhancer, build_enhancer, enhance_with_timeout
from .fallback import metadata_analysis
from .fetch import fetch_image
from .pixels import channel_stats, edge_density, extract_dominant_colors, symmetry_score, visual_weight
from .types import ImageSignals, ReferenceMetadata, StyleAnalysis, StyleEnhancement

if TYPE_CHECKING:
    from ..cache.store import RenderCache
    from ..config import AnalyzerSettings

logger = logging.getLogger(__name__)


def compute_signals(img: Image.Image) -> ImageSignals:
    width, height = img.size
    image_format = (img.format or "unknown").lower()
    has_transparency = img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info

    dominant = extract_dominant_colors(img)
    stats = channel_stats(img)
    left, _center, right = visual_weight(img)

    composition = [
        aspect_label(width, height),
        complexity_label(edge_density(img)),
        symmetry_label(symmetry_score(img)),
        weight_label(left, right),
    ]
    styles = visual_style(stats.brightness, stats.saturation, dominant, width, height)

    return ImageSignals(
        color_palette=[c.color for c in dominant],
        dominant_colors=dominant,
        composition=composition,
        visual_style=styles,
        key_elements=key_elements(dominant, stats.contrast, styles),
        brightness=stats.brightness,
        contrast=stats.contrast,
        saturation=stats.saturation,
        width=width,
        height=height,
        format=image_format,
        has_transparency=has_transparency,
    )


def assemble_analysis(
    signals: ImageSignals, enhancement: Optional[StyleEnhancement] = None
) -> StyleAnalysis:
    """Merge numeric signals with optional enhancer output.

    Enhancer fields win only when supplied. Confidence always reflects the
    numeric signals.
    """
    enh = enhancement or StyleEnhancement()
    palette = enh.color_palette or signals.color_palette
    styles = enh.visual_style or signals.visual_style

    return StyleAnalysis(
        color_palette=tuple(palette),
        typography_suggestions=tuple(enh.typography or typography_from_style(signals.visual_style)),
        composition_descriptors=tuple(enh.composition or signals.composition),
        mood_descriptors=tuple(
            enh.mood or mood_from_style(signals.visual_style, signals.color_palette)
        ),
        visual_style_descriptors=tuple(styles),
        key_elements=tuple(enh.key_elements or signals.key_elements),
        confidence=confidence_score(
            len(signals.color_palette),
            len(signals.visual_style),
            len(signals.composition),
            signals.brightness,
            signals.contrast,
        ),
        brightness=signals.brightness,
        contrast=signals.contrast,
        saturation=signals.saturation,
        dominant_colors=tuple(signals.dominant_colors),
        image_width=signals.width,
        image_height=signals.height,
        image_format=signals.format,
        has_transparency=signals.has_transparency,
        source="pixels+enhanced" if enhancement is not None else "pixels",
    )


class StyleAnalyzer:
    """Computes a style profile from a reference image.

    Only undecodable input raises. A failed fetch or a failure while computing
    signals yields the lower-confidence metadata analysis instead.
    """

    def __init__(
        self,
        enhancer: Optional[StyleEnhancer] = None,
        enhance_timeout: float = 15.0,
        fetch_timeout: float = 10.0,
    ):
        self.enhancer = enhancer
        self.enhance_timeout = enhance_timeout
        self.fetch_timeout = fetch_timeout

    @classmethod
    def from_settings(cls, settings: "AnalyzerSettings") -> "StyleAnalyzer":
        return cls(
            enhancer=build_enhancer(settings.enhancer),
            enhance_timeout=settings.enhance_timeout_sec,
            fetch_timeout=settings.fetch_timeout_sec,
        )

    def analyze(self, image_bytes: bytes, metadata: Optional[ReferenceMetadata] = None) -> StyleAnalysis:
        metadata = metadata or ReferenceMetadata()
        img = decode_image(image_bytes)

        try:
            signals = compute_signals(img)
        except Exception as e:
            logger.warning(
                "Pixel analysis failed for reference %r, using metadata heuristics: %s",
                metadata.reference_id,
                e,
            )
            return metadata_analysis(metadata)

        enhancement = enhance_with_timeout(self.enhancer, signals, metadata, self.enhance_timeout)
        analysis = assemble_analysis(signals, enhancement)
        logger.info(
            "Style analysis completed for reference %r (confidence=%.2f, source=%s)",
            metadata.reference_id,
            analysis.confidence,
            analysis.source,
        )
        return analysis

    def analyze_reference(self, source: str, metadata: Optional[ReferenceMetadata] = None) -> StyleAnalysis:
        metadata = metadata or ReferenceMetadata()
        try:
            image_bytes = fetch_image(source, self.fetch_timeout)
        except ImageFetchError as e:
            logger.warning("%s; using metadata heuristics", e)
            return metadata_analysis(metadata)
        return self.analyze(image_bytes, metadata)


class CachedStyleAnalyzer:
    """Caches analyses under ``CacheKind.STYLE``; fallback results are not cached."""

    def __init__(self, analyzer: StyleAnalyzer, cache: "RenderCache", ttl: Optional[float] = None):
        self.analyzer = analyzer
        self.cache = cache
        self.ttl = ttl

    def analyze(self, image_bytes: bytes, metadata: Optional[ReferenceMetadata] = None) -> StyleAnalysis:
        key = make_key(CacheKind.STYLE, sha256_bytes(image_bytes))
        return self._cached(key, lambda: self.analyzer.analyze(image_bytes, metadata))

    def analyze_reference(self, source: str, metadata: Optional[ReferenceMetadata] = None) -> StyleAnalysis:
        key = make_key(CacheKind.STYLE, hash_payload({"source": source}))
        return self._cached(key, lambda: self.analyzer.analyze_reference(source, metadata))

    def _cached(self, key: str, compute) -> StyleAnalysis:
        cached = self.cache.get(key)
        if cached is not None:
            return StyleAnalysis.from_dict(cached)
        analysis = compute()
        if analysis.source != "metadata-fallback":
            self.cache.set(key, analysis.to_dict(), self.ttl)
        return analysis

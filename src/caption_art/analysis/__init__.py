from __future__ import annotations

from .analyzer import CachedStyleAnalyzer, StyleAnalyzer, assemble_analysis, compute_signals
from .enhancer import StyleEnhancer, build_enhancer
from .fallback import metadata_analysis
from .types import DominantColor, ImageSignals, ReferenceMetadata, StyleAnalysis, StyleEnhancement

__all__ = [
    "CachedStyleAnalyzer",
    "DominantColor",
    "ImageSignals",
    "ReferenceMetadata",
    "StyleAnalysis",
    "StyleAnalyzer",
    "StyleEnhancement",
    "StyleEnhancer",
    "assemble_analysis",
    "build_enhancer",
    "compute_signals",
    "metadata_analysis",
]

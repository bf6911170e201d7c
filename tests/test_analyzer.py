from __future__ import annotations

import io
import threading
from pathlib import Path
from unittest.mock import patch

import pytest

pytest.importorskip("PIL", reason="Pillow required for analyzer tests")

import requests
from PIL import Image

from caption_art.analysis import (
    CachedStyleAnalyzer,
    ReferenceMetadata,
    StyleAnalysis,
    StyleAnalyzer,
    StyleEnhancement,
    StyleEnhancer,
    build_enhancer,
)
from caption_art.cache import RenderCache
from caption_art.errors import ConfigError, ImageDecodeError


def _png_bytes(size: tuple[int, int] = (300, 200)) -> bytes:
    img = Image.new("RGB", size, (30, 90, 200))
    for x in range(size[0] // 2):
        for y in range(size[1]):
            img.putpixel((x, y), (240, 200, 40))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


class FailingEnhancer(StyleEnhancer):
    @property
    def enhancer_id(self) -> str:
        return "failing"

    def enhance(self, signals, metadata) -> StyleEnhancement:
        raise RuntimeError("model unavailable")


class BlockingEnhancer(StyleEnhancer):
    def __init__(self) -> None:
        self.release = threading.Event()

    @property
    def enhancer_id(self) -> str:
        return "blocking"

    def enhance(self, signals, metadata) -> StyleEnhancement:
        self.release.wait(timeout=5)
        return StyleEnhancement(mood=["Too late"])


class MoodEnhancer(StyleEnhancer):
    @property
    def enhancer_id(self) -> str:
        return "mood"

    def enhance(self, signals, metadata) -> StyleEnhancement:
        return StyleEnhancement(mood=["Sunny", "Playful"])


class TestAnalyzePixels:
    def test_landscape_image(self) -> None:
        analysis = StyleAnalyzer().analyze(_png_bytes(), ReferenceMetadata(reference_id="ref-1"))

        assert analysis.source == "pixels"
        assert analysis.image_width == 300
        assert analysis.image_height == 200
        assert analysis.image_format == "png"
        assert 1 <= len(analysis.color_palette) <= 8
        assert len(analysis.composition_descriptors) == 4
        assert analysis.composition_descriptors[0] == "Landscape orientation"
        assert 0.5 <= analysis.confidence <= 0.95
        assert analysis.typography_suggestions
        assert analysis.mood_descriptors

    def test_undecodable_bytes_raise(self) -> None:
        with pytest.raises(ImageDecodeError):
            StyleAnalyzer().analyze(b"definitely not an image")

    def test_signal_failure_falls_back_to_metadata(self) -> None:
        with patch("caption_art.analysis.analyzer.compute_signals", side_effect=RuntimeError("boom")):
            analysis = StyleAnalyzer().analyze(_png_bytes())
        assert analysis.source == "metadata-fallback"
        assert analysis.confidence <= 0.5


class TestAnalyzeReference:
    def test_unreachable_url_falls_back(self) -> None:
        metadata = ReferenceMetadata(name="Spring promo", tags=("modern",))
        with patch(
            "caption_art.analysis.fetch.requests.get",
            side_effect=requests.ConnectionError("connection refused"),
        ):
            analysis = StyleAnalyzer().analyze_reference("https://unreachable.invalid/ref.png", metadata)

        assert analysis.source == "metadata-fallback"
        assert analysis.confidence <= 0.5
        assert analysis.visual_style_descriptors == ("Modern", "Detailed", "Subtle")
        assert len(analysis.color_palette) == 5

    def test_missing_local_file_falls_back(self, tmp_path: Path) -> None:
        analysis = StyleAnalyzer().analyze_reference(str(tmp_path / "missing.png"))
        assert analysis.source == "metadata-fallback"
        assert analysis.confidence == pytest.approx(0.3)

    def test_metadata_keywords_raise_confidence_to_cap(self, tmp_path: Path) -> None:
        metadata = ReferenceMetadata(name="Modern", description="minimal and BOLD")
        analysis = StyleAnalyzer().analyze_reference(str(tmp_path / "missing.png"), metadata)
        assert analysis.visual_style_descriptors == ("Modern", "Minimalist", "Bold")
        assert analysis.confidence == pytest.approx(0.45)

    def test_local_file_is_analyzed(self, tmp_path: Path) -> None:
        path = tmp_path / "ref.png"
        path.write_bytes(_png_bytes())
        analysis = StyleAnalyzer().analyze_reference(str(path))
        assert analysis.source == "pixels"
        assert analysis.image_width == 300

    def test_file_url_is_analyzed(self, tmp_path: Path) -> None:
        path = tmp_path / "ref.png"
        path.write_bytes(_png_bytes())
        analysis = StyleAnalyzer().analyze_reference(path.as_uri())
        assert analysis.source == "pixels"


class TestEnhancement:
    def test_failing_enhancer_is_ignored(self) -> None:
        analysis = StyleAnalyzer(enhancer=FailingEnhancer()).analyze(_png_bytes())
        assert analysis.source == "pixels"

    def test_slow_enhancer_times_out(self) -> None:
        enhancer = BlockingEnhancer()
        try:
            analysis = StyleAnalyzer(enhancer=enhancer, enhance_timeout=0.05).analyze(_png_bytes())
        finally:
            enhancer.release.set()
        assert analysis.source == "pixels"
        assert "Too late" not in analysis.mood_descriptors

    def test_enhancer_fields_override_only_what_they_supply(self) -> None:
        plain = StyleAnalyzer().analyze(_png_bytes())
        enhanced = StyleAnalyzer(enhancer=MoodEnhancer()).analyze(_png_bytes())

        assert enhanced.source == "pixels+enhanced"
        assert enhanced.mood_descriptors == ("Sunny", "Playful")
        assert enhanced.color_palette == plain.color_palette
        assert enhanced.composition_descriptors == plain.composition_descriptors
        assert enhanced.confidence == plain.confidence

    def test_build_enhancer(self) -> None:
        assert build_enhancer("none") is None
        assert build_enhancer("") is None
        with pytest.raises(ConfigError, match="Unknown enhancer"):
            build_enhancer("gpt")


class TestCachedStyleAnalyzer:
    def test_second_analysis_is_served_from_cache(self, tmp_path: Path) -> None:
        cache = RenderCache(tmp_path / "cache")
        analyzer = CachedStyleAnalyzer(StyleAnalyzer(), cache)
        data = _png_bytes()

        first = analyzer.analyze(data)
        with patch.object(StyleAnalyzer, "analyze", side_effect=AssertionError("not cached")):
            second = analyzer.analyze(data)

        assert second == first
        assert cache.stats().hits == 1

    def test_fallback_is_not_cached(self, tmp_path: Path) -> None:
        cache = RenderCache(tmp_path / "cache")
        analyzer = CachedStyleAnalyzer(StyleAnalyzer(), cache)
        analyzer.analyze_reference(str(tmp_path / "missing.png"))
        assert cache.stats().entry_count == 0

    def test_round_trip_through_dict(self) -> None:
        analysis = StyleAnalyzer().analyze(_png_bytes())
        assert StyleAnalysis.from_dict(analysis.to_dict()) == analysis

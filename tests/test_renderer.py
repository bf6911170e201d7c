from __future__ import annotations

import io
import os
import threading
import time
from pathlib import Path
from unittest.mock import patch

import pytest

pytest.importorskip("PIL", reason="Pillow required for renderer tests")

from PIL import Image

from caption_art.brand import BrandStyle
from caption_art.cache import RenderCache
from caption_art.config import RenderSettings, SegmentationSettings
from caption_art.errors import RenderError
from caption_art.render import (
    Compositor,
    CreativeRenderer,
    RenderRequest,
    render_cache_key,
    wrap_text,
)
from caption_art.segmentation import Segmenter


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _write_subject(path: Path, size: tuple[int, int] = (1, 1), color=(255, 0, 0)) -> str:
    Image.new("RGB", size, color).save(path, format="PNG")
    return str(path)


def _style(**overrides) -> BrandStyle:
    fields = {"primary_color": "#0a0a0a", "secondary_color": "#ffffff", "accent_color": "#ff6600"}
    fields.update(overrides)
    return BrandStyle(**fields)


def _request(**overrides) -> RenderRequest:
    fields = {"format": "square", "layout": "center-focus", "caption": "Hello", "brand_style": _style()}
    fields.update(overrides)
    return RenderRequest(**fields)


def _renderer(tmp_path: Path, **kwargs) -> CreativeRenderer:
    return CreativeRenderer(
        cache=RenderCache(tmp_path / "cache"),
        output_dir=tmp_path / "generated",
        compositor=Compositor(fonts_dir=tmp_path / "fonts"),
        **kwargs,
    )


class RecordingSegmenter(Segmenter):
    def __init__(self) -> None:
        self.calls: list[str] = []

    @property
    def segmenter_id(self) -> str:
        return "recording"

    def segment(self, image_bytes: bytes, model: str) -> bytes:
        self.calls.append(model)
        img = Image.new("RGBA", (4, 4), (0, 255, 0, 255))
        buf = io.BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()


class BrokenSegmenter(Segmenter):
    @property
    def segmenter_id(self) -> str:
        return "broken"

    def segment(self, image_bytes: bytes, model: str) -> bytes:
        raise ConnectionError("segmentation backend down")


class TestWrapText:
    def test_greedy_wrap(self) -> None:
        assert wrap_text("Hello world foo", 11) == ["Hello world", "foo"]

    def test_long_word_gets_own_line(self) -> None:
        assert wrap_text("a supercalifragilistic b", 5) == ["a", "supercalifragilistic", "b"]

    def test_empty(self) -> None:
        assert wrap_text("   ", 10) == []


class TestRenderCacheKey:
    def test_identical_requests_share_key(self) -> None:
        assert render_cache_key("s.png", _request()) == render_cache_key("s.png", _request())

    @pytest.mark.parametrize(
        "overrides",
        [
            {"caption": "Goodbye"},
            {"layout": "bottom-text"},
            {"format": "story"},
            {"watermark": True},
            {"brand_style": _style(primary_color="#0a0a0b")},
            {"brand_style": _style(accent_color="#000000")},
        ],
    )
    def test_any_field_change_changes_key(self, overrides: dict) -> None:
        assert render_cache_key("s.png", _request()) != render_cache_key("s.png", _request(**overrides))

    def test_subject_changes_key(self) -> None:
        assert render_cache_key("a.png", _request()) != render_cache_key("b.png", _request())

    def test_key_is_render_kind(self) -> None:
        assert render_cache_key("s.png", _request()).startswith("render:")


class TestRender:
    def test_square_render_end_to_end(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")

        result = renderer.render(subject, _request())

        assert (result.width, result.height) == (1080, 1080)
        assert result.image_ref.startswith("/generated/render_")
        assert result.thumbnail_ref.endswith("_thumb.jpg")
        image_path = renderer.output_dir / result.image_ref.rsplit("/", 1)[1]
        thumb_path = renderer.output_dir / result.thumbnail_ref.rsplit("/", 1)[1]
        with Image.open(image_path) as img:
            assert img.size == (1080, 1080)
        with Image.open(thumb_path) as thumb:
            assert max(thumb.size) <= 300

    def test_second_identical_render_is_served_from_cache(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")

        first = renderer.render(subject, _request())
        hits_before = renderer.cache.stats().hits
        with patch.object(renderer, "compose", side_effect=AssertionError("rendered twice")):
            second = renderer.render(subject, _request())

        assert second == first
        assert renderer.cache.stats().hits == hits_before + 1

    def test_story_format(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        result = renderer.render(subject, _request(format="story", layout="top-text", watermark=True))
        assert (result.width, result.height) == (1080, 1920)

    def test_bypass_cache_renders_again(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        first = renderer.render(subject, _request())
        second = renderer.render(subject, _request(), bypass_cache=True)
        assert second.image_ref != first.image_ref
        assert (second.width, second.height) == (first.width, first.height)
        assert renderer.render(subject, _request()) == first

    def test_bypass_cache_does_not_store(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        renderer.render(subject, _request(), bypass_cache=True)
        assert not renderer.cache.has(render_cache_key(subject, _request()))

    def test_result_outlives_default_cache_ttl(self, tmp_path: Path) -> None:
        clock = FakeClock()
        renderer = CreativeRenderer(
            cache=RenderCache(tmp_path / "cache", default_ttl=60 * 60, clock=clock),
            output_dir=tmp_path / "generated",
            compositor=Compositor(fonts_dir=tmp_path / "fonts"),
        )
        subject = _write_subject(tmp_path / "red.png")

        first = renderer.render(subject, _request())
        clock.advance(2 * 60 * 60)
        with patch.object(renderer, "compose", side_effect=AssertionError("rendered twice")):
            assert renderer.render(subject, _request()) == first

        clock.advance(23 * 60 * 60)
        assert not renderer.cache.has(render_cache_key(subject, _request()))

    def test_cached_result_with_removed_files_renders_again(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        first = renderer.render(subject, _request())
        assert renderer.cleanup_old_files(-1) == 2

        second = renderer.render(subject, _request())

        assert second.image_ref != first.image_ref
        assert (renderer.output_dir / second.image_ref.rsplit("/", 1)[1]).exists()
        assert (renderer.output_dir / second.thumbnail_ref.rsplit("/", 1)[1]).exists()
        assert renderer.cache.get(render_cache_key(subject, _request()))["image_ref"] == second.image_ref

    def test_compose_is_deterministic(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png", size=(40, 30))
        request = _request(layout="bottom-text", watermark=True)

        a = renderer.compose(subject, request)
        b = renderer.compose(subject, request)
        assert a.size == b.size
        assert a.tobytes() == b.tobytes()

    def test_canvas_regions(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        canvas = renderer.compose(subject, _request(caption=""))

        assert canvas.getpixel((540, 540)) == (255, 0, 0)
        assert canvas.getpixel((50, 100)) == (252, 252, 252)
        assert canvas.getpixel((5, 3)) == (10, 10, 10)
        assert canvas.getpixel((5, 1076)) == (10, 10, 10)

    def test_failed_render_is_not_cached(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        missing = str(tmp_path / "missing.png")

        with pytest.raises(RenderError, match="Failed to render image"):
            renderer.render(missing, _request())

        assert renderer.cache.has(render_cache_key(missing, _request())) is False
        assert list(renderer.output_dir.iterdir()) == []

    def test_undecodable_subject_fails(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        bad = tmp_path / "bad.png"
        bad.write_bytes(b"not a png")
        with pytest.raises(RenderError):
            renderer.render(str(bad), _request())

    def test_malformed_cache_entry_is_replaced(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        key = render_cache_key(subject, _request())
        renderer.cache.set(key, {"unexpected": True})

        result = renderer.render(subject, _request())
        assert result.width == 1080
        assert renderer.cache.get(key)["image_ref"] == result.image_ref

    def test_concurrent_identical_requests_render_once(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        original = renderer.compose
        calls: list[int] = []

        def slow_compose(subject_ref, request):
            calls.append(1)
            time.sleep(0.2)
            return original(subject_ref, request)

        results = []
        with patch.object(renderer, "compose", side_effect=slow_compose):
            threads = [
                threading.Thread(target=lambda: results.append(renderer.render(subject, _request())))
                for _ in range(4)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

        assert len(calls) == 1
        assert len(results) == 4
        assert len({r.image_ref for r in results}) == 1


class TestSegmentation:
    def test_brand_model_is_used_and_mask_cached(self, tmp_path: Path) -> None:
        segmenter = RecordingSegmenter()
        renderer = _renderer(tmp_path, segmenter=segmenter)
        subject = _write_subject(tmp_path / "red.png")
        request = _request(brand_style=_style(segmentation_model="sam3"))

        canvas = renderer.compose(subject, request)
        renderer.compose(subject, request)

        assert segmenter.calls == ["sam3"]
        assert canvas.getpixel((540, 540)) == (0, 255, 0)

    def test_default_model_when_brand_has_none(self, tmp_path: Path) -> None:
        segmenter = RecordingSegmenter()
        renderer = _renderer(tmp_path, segmenter=segmenter, default_segmentation_model="rf-detr")
        renderer.compose(_write_subject(tmp_path / "red.png"), _request())
        assert segmenter.calls == ["rf-detr"]

    def test_segmentation_failure_falls_back_to_original(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path, segmenter=BrokenSegmenter())
        subject = _write_subject(tmp_path / "red.png")
        result = renderer.render(subject, _request())
        assert result.width == 1080
        canvas = renderer.compose(subject, _request())
        assert canvas.getpixel((540, 540)) == (255, 0, 0)


class TestMultipleFormats:
    def test_standard_variants(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        subject = _write_subject(tmp_path / "red.png")
        renders = renderer.render_multiple_formats(subject, "Big sale", _style(), watermark=True)

        assert [(r.format, r.layout) for r in renders] == [
            ("square", "center-focus"),
            ("square", "bottom-text"),
            ("story", "center-focus"),
        ]
        assert (renders[2].result.width, renders[2].result.height) == (1080, 1920)

    def test_failures_are_skipped(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        assert renderer.render_multiple_formats(str(tmp_path / "missing.png"), "x", _style()) == []


class TestCleanupAndSettings:
    def test_cleanup_removes_only_old_files(self, tmp_path: Path) -> None:
        renderer = _renderer(tmp_path)
        old = renderer.output_dir / "render_old.jpg"
        new = renderer.output_dir / "render_new.jpg"
        old.write_bytes(b"x")
        new.write_bytes(b"x")
        stale = time.time() - 48 * 60 * 60
        os.utime(old, (stale, stale))

        assert renderer.cleanup_old_files(24) == 1
        assert not old.exists()
        assert new.exists()

    def test_from_settings(self, tmp_path: Path) -> None:
        render = RenderSettings(output_dir=tmp_path / "out", public_prefix="/cdn/", fonts_dir=tmp_path / "fonts")
        renderer = CreativeRenderer.from_settings(RenderCache(tmp_path / "cache"), render, SegmentationSettings())

        assert (tmp_path / "out").is_dir()
        result = renderer.render(_write_subject(tmp_path / "red.png"), _request())
        assert result.image_ref.startswith("/cdn/render_")

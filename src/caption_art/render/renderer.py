from __future__ import annotations

import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional

from pydantic import ValidationError

from ..analysis.fetch import fetch_image
from ..brand import BrandStyle
from ..cache.keys import CacheKind, hash_payload, make_key
from ..errors import RenderError
from ..imaging import decode_image
from ..segmentation import DEFAULT_MODEL, PassthroughSegmenter, Segmenter, mask_subject
from .compositor import Compositor
from .types import RenderRequest, RenderResult

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

    from ..cache.store import RenderCache
    from ..config import RenderSettings, SegmentationSettings

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SEC = 10.0
RESULT_TTL_SEC = 24 * 60 * 60

STANDARD_VARIANTS: tuple[tuple[str, str], ...] = (
    ("square", "center-focus"),
    ("square", "bottom-text"),
    ("story", "center-focus"),
)


def render_cache_key(subject_ref: str, request: RenderRequest) -> str:
    """Key over every input that affects the rendered pixels. Quality is excluded."""
    return make_key(
        CacheKind.RENDER,
        hash_payload(
            {
                "subject": subject_ref,
                "format": request.format,
                "layout": request.layout,
                "caption": request.caption,
                "watermark": request.watermark,
                "brand_style": request.brand_style.model_dump(mode="json"),
            }
        ),
    )


@dataclass(frozen=True)
class FormatRender:
    format: str
    layout: str
    result: RenderResult


class CreativeRenderer:
    def __init__(
        self,
        cache: "RenderCache",
        output_dir: Path,
        compositor: Optional[Compositor] = None,
        segmenter: Optional[Segmenter] = None,
        public_prefix: str = "/generated",
        thumbnail_size: int = 300,
        thumbnail_quality: int = 80,
        result_ttl: float = RESULT_TTL_SEC,
        mask_ttl: Optional[float] = None,
        default_segmentation_model: str = DEFAULT_MODEL,
        fetch_timeout: float = FETCH_TIMEOUT_SEC,
    ):
        self.cache = cache
        self.output_dir = output_dir
        self.compositor = compositor or Compositor()
        self.segmenter = segmenter or PassthroughSegmenter()
        self.public_prefix = public_prefix.rstrip("/")
        self.thumbnail_size = thumbnail_size
        self.thumbnail_quality = thumbnail_quality
        self.result_ttl = result_ttl
        self.mask_ttl = mask_ttl
        self.default_segmentation_model = default_segmentation_model
        self.fetch_timeout = fetch_timeout

        self._inflight: dict[str, list] = {}
        self._inflight_guard = threading.Lock()

        self.output_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_settings(
        cls,
        cache: "RenderCache",
        render: "RenderSettings",
        segmentation: "SegmentationSettings",
        segmenter: Optional[Segmenter] = None,
    ) -> "CreativeRenderer":
        return cls(
            cache=cache,
            output_dir=render.output_dir,
            compositor=Compositor(fonts_dir=render.fonts_dir, watermark_text=render.watermark_text),
            segmenter=segmenter,
            public_prefix=render.public_prefix,
            thumbnail_size=render.thumbnail_size,
            thumbnail_quality=render.thumbnail_quality,
            result_ttl=render.result_ttl_sec,
            mask_ttl=segmentation.mask_ttl_sec,
            default_segmentation_model=segmentation.default_model,
        )

    def render(self, subject_ref: str, request: RenderRequest, bypass_cache: bool = False) -> RenderResult:
        """Render ``subject_ref`` onto a branded canvas and persist it with a thumbnail.

        Identical requests are served from the cache. Concurrent identical
        requests render once; later callers pick up the cached result.
        """
        key = render_cache_key(subject_ref, request)

        if not bypass_cache:
            cached = self._cached_result(key)
            if cached is not None:
                logger.debug("Render served from cache: %s", key)
                return cached

        with self._single_flight(key):
            if not bypass_cache and self.cache.has(key):
                cached = self._cached_result(key)
                if cached is not None:
                    return cached

            result = self._render_uncached(subject_ref, request)
            if not bypass_cache:
                self.cache.set(key, result.model_dump(), self.result_ttl)
            return result

    def compose(self, subject_ref: str, request: RenderRequest) -> "PILImage":
        """Build the final canvas without persisting it."""
        subject_bytes = fetch_image(subject_ref, self.fetch_timeout)
        model = request.brand_style.segmentation_model or self.default_segmentation_model
        masked = mask_subject(self.segmenter, subject_bytes, model, self.cache, self.mask_ttl)
        return self.compositor.compose(decode_image(masked), request)

    def render_multiple_formats(
        self,
        subject_ref: str,
        caption: str,
        brand_style: BrandStyle,
        watermark: bool = False,
    ) -> list[FormatRender]:
        renders: list[FormatRender] = []
        for fmt, layout in STANDARD_VARIANTS:
            request = RenderRequest(
                format=fmt, layout=layout, caption=caption, brand_style=brand_style, watermark=watermark
            )
            try:
                renders.append(FormatRender(fmt, layout, self.render(subject_ref, request)))
            except RenderError as e:
                logger.error("Skipping %s/%s variant: %s", fmt, layout, e)
        return renders

    def cleanup_old_files(self, older_than_hours: float = 24) -> int:
        """Delete generated files whose mtime is older than the cutoff."""
        cutoff = time.time() - older_than_hours * 60 * 60
        removed = 0
        for path in self.output_dir.iterdir():
            if not path.is_file():
                continue
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError as e:
                logger.warning("Could not remove %s: %s", path, e)
        if removed:
            logger.info("Cleaned up %d old generated files", removed)
        return removed

    def _cached_result(self, key: str) -> Optional[RenderResult]:
        payload = self.cache.get(key)
        if payload is None:
            return None
        try:
            result = RenderResult.model_validate(payload)
        except ValidationError:
            logger.warning("Discarding malformed cached render: %s", key)
            self.cache.delete(key)
            return None
        missing = [ref for ref in (result.image_ref, result.thumbnail_ref) if not self._output_path(ref).exists()]
        if missing:
            logger.info("Cached render %s points at removed files %s; rendering again", key, missing)
            self.cache.delete(key)
            return None
        return result

    def _output_path(self, ref: str) -> Path:
        return self.output_dir / ref.rsplit("/", 1)[-1]

    def _render_uncached(self, subject_ref: str, request: RenderRequest) -> RenderResult:
        try:
            canvas = self.compose(subject_ref, request)
        except Exception as e:
            logger.error("Render failed for %s: %s", subject_ref, e)
            raise RenderError(f"Failed to render image: {e}") from e
        return self._persist(canvas, request.quality)

    def _persist(self, canvas: "PILImage", quality: int) -> RenderResult:
        render_id = f"render_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"
        image_name = f"{render_id}.jpg"
        thumb_name = f"{render_id}_thumb.jpg"
        image_path = self.output_dir / image_name
        thumb_path = self.output_dir / thumb_name

        try:
            canvas.convert("RGB").save(image_path, format="JPEG", quality=quality)
            thumb = canvas.convert("RGB")
            thumb.thumbnail((self.thumbnail_size, self.thumbnail_size))
            thumb.save(thumb_path, format="JPEG", quality=self.thumbnail_quality)
        except (OSError, ValueError) as e:
            image_path.unlink(missing_ok=True)
            thumb_path.unlink(missing_ok=True)
            logger.error("Could not write render %s: %s", render_id, e)
            raise RenderError(f"Failed to render image: {e}") from e

        logger.info("Rendered %s (%dx%d)", image_name, canvas.width, canvas.height)
        return RenderResult(
            image_ref=f"{self.public_prefix}/{image_name}",
            thumbnail_ref=f"{self.public_prefix}/{thumb_name}",
            width=canvas.width,
            height=canvas.height,
        )

    @contextmanager
    def _single_flight(self, key: str) -> Iterator[None]:
        with self._inflight_guard:
            slot = self._inflight.setdefault(key, [threading.Lock(), 0])
            slot[1] += 1
        try:
            with slot[0]:
                yield
        finally:
            with self._inflight_guard:
                slot[1] -= 1
                if slot[1] == 0:
                    self._inflight.pop(key, None)

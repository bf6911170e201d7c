from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from .cache.keys import hash_payload
from .errors import ConfigError, SegmentationError
from .io import sha256_bytes

if TYPE_CHECKING:
    from .cache.store import RenderCache

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "rembg-replicate"


class Segmenter(ABC):
    @property
    @abstractmethod
    def segmenter_id(self) -> str: ...

    @abstractmethod
    def segment(self, image_bytes: bytes, model: str) -> bytes:
        """Return the image with its background removed."""
        raise NotImplementedError


class PassthroughSegmenter(Segmenter):
    """Returns the input unchanged; used when no segmentation backend is configured."""

    @property
    def segmenter_id(self) -> str:
        return "passthrough"

    def segment(self, image_bytes: bytes, model: str) -> bytes:
        return image_bytes


def build_segmenter(name: str) -> Segmenter:
    if name == "passthrough":
        return PassthroughSegmenter()
    raise ConfigError(f"Unknown segmenter: '{name}'. Available segmenters: ['passthrough']")


def mask_subject(
    segmenter: Segmenter,
    image_bytes: bytes,
    model: Optional[str] = None,
    cache: Optional["RenderCache"] = None,
    ttl: Optional[float] = None,
) -> bytes:
    """Segment ``image_bytes``, falling back to the original bytes on any failure.

    Successful masks are cached by image content and model, so repeated renders of
    the same asset do not call the segmentation backend again.
    """
    model = model or DEFAULT_MODEL
    mask_id = hash_payload(
        {
            "image": sha256_bytes(image_bytes),
            "model": model,
            "segmenter": segmenter.segmenter_id,
        }
    )

    if cache is not None:
        cached = cache.get_mask(mask_id)
        if cached is not None:
            logger.debug("Mask served from cache: %s", mask_id)
            return cached

    try:
        masked = segmenter.segment(image_bytes, model)
        if not masked:
            raise SegmentationError(f"{segmenter.segmenter_id} returned an empty image")
    except Exception as e:
        logger.warning(
            "Background removal failed (segmenter=%s, model=%s), using original image: %s",
            segmenter.segmenter_id,
            model,
            e,
        )
        return image_bytes

    if cache is not None:
        cache.set_mask(mask_id, masked, ttl)
    return masked

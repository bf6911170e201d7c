from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

from .errors import ImageDecodeError


def decode_image(image_bytes: bytes) -> Image.Image:
    """Decode and fully load ``image_bytes``; any codec failure becomes ImageDecodeError."""
    try:
        img = Image.open(io.BytesIO(image_bytes))
        img.load()
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
        raise ImageDecodeError(f"Cannot decode image ({len(image_bytes)} bytes): {e}") from e
    return img

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

import requests

from ..errors import ImageFetchError


def fetch_image(source: str, timeout: float) -> bytes:
    """Load image bytes from an http(s) URL, a file:// URL or a local path."""
    parsed = urlparse(source)
    if parsed.scheme in ("http", "https"):
        try:
            response = requests.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise ImageFetchError(source, str(e)) from e
        return response.content

    path = Path(parsed.path) if parsed.scheme == "file" else Path(source)
    try:
        return path.read_bytes()
    except OSError as e:
        raise ImageFetchError(source, str(e)) from e

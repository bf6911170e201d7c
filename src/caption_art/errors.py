from __future__ import annotations

from pathlib import Path
from typing import Optional


class CaptionArtError(Exception):
    pass


class ConfigError(CaptionArtError):
    """A bad config file or setting. Prefixed with ``path:line`` when known."""

    def __init__(self, message: str, path: Optional[Path] = None, line: Optional[int] = None):
        self.path = path
        self.line = line
        self.reason = message
        super().__init__(f"{self.location}: {message}" if self.location else message)

    @property
    def location(self) -> Optional[str]:
        if self.path is None:
            return None
        return f"{self.path}:{self.line}" if self.line else str(self.path)


class CacheConfigError(CaptionArtError, ValueError):
    """Raised when cache limits are invalid at construction time."""


class StyleAnalysisError(CaptionArtError):
    pass


class ImageFetchError(StyleAnalysisError):
    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to fetch image from {source}: {reason}")


class ImageDecodeError(StyleAnalysisError):
    pass


class RenderError(CaptionArtError):
    pass


class SegmentationError(CaptionArtError):
    pass


class BrandNotFoundError(CaptionArtError):
    def __init__(self, workspace_id: str, path: Path):
        self.workspace_id = workspace_id
        self.path = path
        super().__init__(f"No brand style for workspace '{workspace_id}' (looked in {path})")

from .compositor import Compositor, wrap_text
from .renderer import CreativeRenderer, FormatRender, render_cache_key
from .types import FORMAT_DIMENSIONS, RenderRequest, RenderResult

__all__ = [
    "Compositor",
    "CreativeRenderer",
    "FORMAT_DIMENSIONS",
    "FormatRender",
    "RenderRequest",
    "RenderResult",
    "render_cache_key",
    "wrap_text",
]

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Union

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from ..color import contrast_color, lighten, parse_hex
from .types import RenderRequest

if TYPE_CHECKING:
    from PIL.Image import Image as PILImage

Font = Union[ImageFont.FreeTypeFont, ImageFont.ImageFont]
Box = tuple[int, int, int, int]

BACKGROUND_LIGHTEN_PERCENT = 95
ACCENT_BAR_HEIGHT = 8
CHARS_PER_LINE_DIVISOR = 20
FONT_SIZE_DIVISOR = 30
MIN_FONT_SIZE = 24
LINE_HEIGHT = 1.2
WATERMARK_FONT_SIZE = 14
WATERMARK_MARGIN = 10
SHADOW_OFFSET = (2, 2)


def wrap_text(text: str, max_chars: int) -> list[str]:
    """Greedy word wrap by character count; a word longer than a line stands alone."""
    lines: list[str] = []
    current = ""
    for word in text.split():
        candidate = f"{current} {word}" if current else word
        if len(candidate) > max_chars:
            if current:
                lines.append(current)
                current = word
            else:
                lines.append(word)
        else:
            current = candidate
    if current:
        lines.append(current)
    return lines


def subject_box(layout: str, width: int, height: int) -> Box:
    """Return (x, y, w, h) of the subject rectangle for ``layout``."""
    if layout == "bottom-text":
        w, h = int(width * 0.9), int(height * 0.7)
        return ((width - w) // 2, int(height * 0.1), w, h)
    if layout == "top-text":
        w, h = int(width * 0.9), int(height * 0.7)
        return ((width - w) // 2, int(height * 0.2), w, h)
    w, h = int(width * 0.8), int(height * 0.6)
    return ((width - w) // 2, (height - h) // 2, w, h)


def caption_baseline(layout: str, height: int, line_count: int, font_size: int) -> float:
    if layout == "bottom-text":
        return height * 0.85
    if layout == "top-text":
        return height * 0.1 + line_count * font_size * LINE_HEIGHT
    return height * 0.9


class Compositor:
    """Draws a branded creative: tinted background, subject, caption, watermark, accent bars."""

    def __init__(self, fonts_dir: Path = Path("fonts"), watermark_text: str = "caption-art.app"):
        self.fonts_dir = fonts_dir
        self.watermark_text = watermark_text
        self._font_cache: dict[tuple[str, int], Font] = {}

    def compose(self, subject: "PILImage", request: RenderRequest) -> "PILImage":
        width, height = request.dimensions
        style = request.brand_style

        canvas = Image.new("RGBA", (width, height), lighten(style.primary_color, BACKGROUND_LIGHTEN_PERCENT) + (255,))
        canvas = self._composite_subject(canvas, subject, subject_box(request.layout, width, height))

        if request.caption.strip():
            canvas = self._draw_caption(canvas, request)
        if request.watermark:
            canvas = self._draw_watermark(canvas)

        self._draw_accent_bars(canvas, style.primary_color)
        return canvas.convert("RGB")

    def _composite_subject(self, canvas: "PILImage", subject: "PILImage", box: Box) -> "PILImage":
        x, y, w, h = box
        cutout = subject.convert("RGBA").resize((w, h), Image.Resampling.LANCZOS)
        canvas.alpha_composite(cutout, (x, y))
        return canvas

    def _draw_caption(self, canvas: "PILImage", request: RenderRequest) -> "PILImage":
        width, height = canvas.size
        style = request.brand_style
        lines = wrap_text(request.caption, width // CHARS_PER_LINE_DIVISOR)
        font_size = max(MIN_FONT_SIZE, width // FONT_SIZE_DIVISOR)
        font = self._load_font(style.heading_font, font_size)
        fill = contrast_color(style.primary_color) + (255,)

        top = caption_baseline(request.layout, height, len(lines), font_size)
        placements = []
        for idx, line in enumerate(lines):
            baseline = top + idx * font_size * LINE_HEIGHT
            placements.append((self._centered(line, font, width / 2, baseline), line))

        return self._draw_with_shadow(canvas, placements, font, fill, (0, 0, 0, 128), blur=2)

    def _draw_watermark(self, canvas: "PILImage") -> "PILImage":
        width, height = canvas.size
        font = self._load_font("Arial", WATERMARK_FONT_SIZE)
        bbox = font.getbbox(self.watermark_text)
        x = width - WATERMARK_MARGIN - bbox[2]
        y = height - WATERMARK_MARGIN - bbox[3]
        return self._draw_with_shadow(
            canvas, [((x, y), self.watermark_text)], font, (255, 255, 255, 178), (0, 0, 0, 204), blur=1
        )

    def _draw_accent_bars(self, canvas: "PILImage", hex_color: str) -> None:
        width, height = canvas.size
        fill = parse_hex(hex_color) + (255,)
        d = ImageDraw.Draw(canvas)
        d.rectangle([0, 0, width - 1, ACCENT_BAR_HEIGHT - 1], fill=fill)
        d.rectangle([0, height - ACCENT_BAR_HEIGHT, width - 1, height - 1], fill=fill)

    def _draw_with_shadow(
        self,
        canvas: "PILImage",
        placements: list[tuple[tuple[float, float], str]],
        font: Font,
        fill: tuple[int, int, int, int],
        shadow_fill: tuple[int, int, int, int],
        blur: int,
    ) -> "PILImage":
        shadow = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        text = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        shadow_draw = ImageDraw.Draw(shadow)
        text_draw = ImageDraw.Draw(text)
        dx, dy = SHADOW_OFFSET
        for (x, y), line in placements:
            shadow_draw.text((x + dx, y + dy), line, font=font, fill=shadow_fill)
            text_draw.text((x, y), line, font=font, fill=fill)

        canvas = Image.alpha_composite(canvas, shadow.filter(ImageFilter.GaussianBlur(blur)))
        return Image.alpha_composite(canvas, text)

    def _centered(self, line: str, font: Font, center_x: float, baseline: float) -> tuple[float, float]:
        left, _top, right, bottom = font.getbbox(line)
        return (center_x - (right - left) / 2 - left, baseline - bottom)

    def _load_font(self, name: str, size: int) -> Font:
        key = (name, size)
        if key in self._font_cache:
            return self._font_cache[key]

        candidates = [
            self.fonts_dir / f"{name}.ttf",
            self.fonts_dir / f"{name}.otf",
            Path(name),
            Path(f"{name}.ttf"),
        ]
        font: Font
        for candidate in candidates:
            try:
                font = ImageFont.truetype(str(candidate), size)
                break
            except OSError:
                continue
        else:
            font = ImageFont.load_default(size=size)

        self._font_cache[key] = font
        return font

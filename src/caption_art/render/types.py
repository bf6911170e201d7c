from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..brand import BrandStyle

RenderFormat = Literal["square", "story"]
LayoutName = Literal["center-focus", "bottom-text", "top-text"]

FORMAT_DIMENSIONS: dict[str, tuple[int, int]] = {
    "square": (1080, 1080),
    "story": (1080, 1920),
}


class RenderRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    format: RenderFormat = "square"
    layout: LayoutName = "center-focus"
    caption: str = ""
    brand_style: BrandStyle
    watermark: bool = False
    quality: int = Field(default=90, ge=1, le=100)

    @property
    def dimensions(self) -> tuple[int, int]:
        return FORMAT_DIMENSIONS[self.format]


class RenderResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    image_ref: str
    thumbnail_ref: str
    width: int
    height: int

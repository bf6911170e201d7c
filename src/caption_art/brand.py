from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .color import hex_to_rgb
from .errors import BrandNotFoundError
from .io import read_yaml


class BrandStyle(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    primary_color: str
    secondary_color: str
    accent_color: str
    heading_font: str = "Inter-Bold"
    body_font: str = "Inter-Regular"
    logo: Optional[str] = None
    segmentation_model: Optional[str] = None

    @field_validator("primary_color", "secondary_color", "accent_color")
    @classmethod
    def validate_hex(cls, v: str) -> str:
        if hex_to_rgb(v) is None:
            raise ValueError(f"expected a #RRGGBB color, got {v!r}")
        v = v.strip()
        return v if v.startswith("#") else f"#{v}"

    @field_validator("heading_font", "body_font")
    @classmethod
    def validate_font(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("font name cannot be empty")
        return v


class BrandKit(BaseModel):
    model_config = ConfigDict(extra="forbid")

    workspace_id: str = Field(min_length=1)
    name: str = ""
    style: BrandStyle


class BrandStore:
    """Read-only brand kits keyed by workspace id, loaded from a YAML file."""

    def __init__(self, kits: dict[str, BrandKit], path: Path):
        self._kits = kits
        self.path = path

    @classmethod
    def from_yaml(cls, path: Path) -> "BrandStore":
        if not path.exists():
            return cls({}, path)

        def by_workspace(items: list[dict[str, Any]]) -> dict[str, BrandKit]:
            out: dict[str, BrandKit] = {}
            for it in items:
                kit = BrandKit.model_validate(it)
                out[kit.workspace_id] = kit
            return out

        return cls(by_workspace(read_yaml(path).get("brands", [])), path)

    def workspaces(self) -> list[str]:
        return sorted(self._kits)

    def get_brand_style(self, workspace_id: str) -> BrandStyle:
        kit = self._kits.get(workspace_id)
        if kit is None:
            raise BrandNotFoundError(workspace_id, self.path)
        return kit.style

    def find_brand_style(self, workspace_id: str) -> Optional[BrandStyle]:
        kit = self._kits.get(workspace_id)
        return kit.style if kit else None

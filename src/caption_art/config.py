from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError

CONFIG_FILENAME = "caption-art.toml"

HOUR_SEC = 60 * 60


class CacheSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    dir: Path = Path("cache")
    max_size_bytes: int = Field(default=50 * 1024 * 1024, ge=0)
    max_entries: int = Field(default=1000, ge=0)
    default_ttl_sec: float = Field(default=HOUR_SEC, gt=0)
    auto_evict: bool = True
    write_through: bool = True


class RenderSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    output_dir: Path = Path("generated")
    public_prefix: str = "/generated"
    fonts_dir: Path = Path("fonts")
    thumbnail_size: int = Field(default=300, gt=0)
    thumbnail_quality: int = Field(default=80, ge=1, le=100)
    result_ttl_sec: float = Field(default=24 * HOUR_SEC, gt=0)
    watermark_text: str = "caption-art.app"

    @field_validator("public_prefix")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AnalyzerSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    fetch_timeout_sec: float = Field(default=10.0, gt=0)
    enhancer: str = "none"
    enhance_timeout_sec: float = Field(default=15.0, gt=0)
    result_ttl_sec: float = Field(default=7 * 24 * HOUR_SEC, gt=0)


class SegmentationSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")
    segmenter: str = "passthrough"
    default_model: str = "rembg-replicate"
    mask_ttl_sec: float = Field(default=24 * HOUR_SEC, gt=0)


class PipelineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    brands_file: Path = Path("brands.yaml")
    cache: CacheSettings = CacheSettings()
    render: RenderSettings = RenderSettings()
    analyzer: AnalyzerSettings = AnalyzerSettings()
    segmentation: SegmentationSettings = SegmentationSettings()

    @field_validator("brands_file")
    @classmethod
    def validate_brands_file(cls, v: Path) -> Path:
        if not str(v):
            raise ValueError("brands_file cannot be empty")
        return v


def _toml_module():
    try:
        import tomllib
    except ImportError:
        import tomli as tomllib  # type: ignore
    return tomllib


def _describe_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        where = ".".join(str(part) for part in item["loc"]) or "<root>"
        problems.append(f"{where}: {item['msg']}")
    return "; ".join(problems)


def load_config(config_path: Path) -> PipelineConfig:
    if not config_path.is_file():
        raise ConfigError(
            f"Config file not found: {config_path}\n"
            f"Create {CONFIG_FILENAME} or run without --config to use defaults",
            path=config_path,
        )

    tomllib = _toml_module()
    try:
        data = tomllib.loads(config_path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path, line=getattr(e, "lineno", None)) from e
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Failed to parse TOML: {e}", path=config_path) from e

    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {_describe_validation_error(e)}", path=config_path) from e


def find_config(start_dir: Optional[Path] = None) -> Optional[Path]:
    """Return the nearest caption-art.toml at or above ``start_dir``, if any."""
    start = (start_dir or Path.cwd()).resolve()
    for directory in (start, *start.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def load_config_or_default(config_path: Optional[Path] = None) -> PipelineConfig:
    """Load an explicit config, or the nearest one found upwards, or the defaults."""
    path = config_path if config_path is not None else find_config()
    if path is None:
        return PipelineConfig()
    return load_config(path)

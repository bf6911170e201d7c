from __future__ import annotations

from enum import Enum
from typing import Any

from ..io import sha256_text, stable_json


class CacheKind(str, Enum):
    CAPTION = "caption"
    IMAGE = "image"
    MASK = "mask"
    VARIATIONS = "variations"
    RENDER = "render"
    STYLE = "style"


def make_key(kind: CacheKind, identifier: str) -> str:
    if not isinstance(kind, CacheKind):
        raise TypeError(f"kind must be a CacheKind, got {type(kind).__name__}")
    if not identifier:
        raise ValueError("cache key identifier cannot be empty")
    return f"{kind.value}:{identifier}"


def hash_payload(payload: dict[str, Any]) -> str:
    return sha256_text(stable_json(payload))


def file_key(key: str) -> str:
    """File name of the durable-tier envelope for ``key``."""
    return f"{sha256_text(key)}.json"

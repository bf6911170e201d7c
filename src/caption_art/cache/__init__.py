from __future__ import annotations

from .keys import CacheKind, file_key, hash_payload, make_key
from .store import CacheEntry, CacheStats, RenderCache

__all__ = [
    "CacheEntry",
    "CacheKind",
    "CacheStats",
    "RenderCache",
    "file_key",
    "hash_payload",
    "make_key",
]

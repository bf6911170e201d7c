"""Two-tier render cache: an in-process dict backed by JSON envelope files.

Entries expire lazily on access. Eviction runs inside :meth:`RenderCache.set` and
always removes the entry with the oldest ``stored_at`` (insertion recency, not
access recency). Storage problems in the file tier are logged and degrade to a miss
or to memory-only operation; they never reach the caller.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import threading
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Optional

from ..config import CacheSettings
from ..errors import CacheConfigError
from ..io import atomic_write_text
from .keys import CacheKind, file_key, make_key

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    data: Any
    stored_at: float
    ttl: float
    size_bytes: int = 0
    hit_count: int = 0

    def is_live(self, now: float) -> bool:
        return now - self.stored_at <= self.ttl

    def to_envelope(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_envelope(cls, payload: dict[str, Any]) -> "CacheEntry":
        return cls(
            data=payload["data"],
            stored_at=float(payload["stored_at"]),
            ttl=float(payload["ttl"]),
            size_bytes=int(payload.get("size_bytes", 0)),
            hit_count=int(payload.get("hit_count", 0)),
        )


@dataclass(frozen=True)
class CacheStats:
    hits: int = 0
    misses: int = 0
    entry_count: int = 0
    total_memory_bytes: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


def _encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class RenderCache:
    """Size- and count-bounded TTL cache with a durable file tier.

    A limit of ``0`` disables that limit. Callers always receive a fresh copy of
    the stored value; mutating it does not affect the cache.
    """

    def __init__(
        self,
        cache_dir: Path,
        max_size_bytes: int = 50 * 1024 * 1024,
        max_entries: int = 1000,
        default_ttl: float = 60 * 60,
        auto_evict: bool = True,
        write_through: bool = True,
        clock: Clock = time.time,
    ):
        if max_size_bytes < 0:
            raise CacheConfigError(f"max_size_bytes must be >= 0, got {max_size_bytes}")
        if max_entries < 0:
            raise CacheConfigError(f"max_entries must be >= 0, got {max_entries}")
        if default_ttl <= 0:
            raise CacheConfigError(f"default_ttl must be > 0, got {default_ttl}")

        self.cache_dir = Path(cache_dir)
        self.max_size_bytes = max_size_bytes
        self.max_entries = max_entries
        self.default_ttl = default_ttl
        self.auto_evict = auto_evict
        self.write_through = write_through
        self._clock = clock

        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._memory_bytes = 0

        self.cache_dir.mkdir(parents=True, exist_ok=True)
        logger.info(
            "Render cache initialized at %s (max_size_bytes=%d, max_entries=%d, default_ttl=%ss)",
            self.cache_dir,
            max_size_bytes,
            max_entries,
            default_ttl,
        )

    @classmethod
    def from_settings(cls, settings: CacheSettings, clock: Clock = time.time) -> "RenderCache":
        return cls(
            settings.dir,
            max_size_bytes=settings.max_size_bytes,
            max_entries=settings.max_entries,
            default_ttl=settings.default_ttl_sec,
            auto_evict=settings.auto_evict,
            write_through=settings.write_through,
            clock=clock,
        )

    def get(self, key: str) -> Optional[Any]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if not entry.is_live(now):
                    self._delete_locked(key)
                    self._misses += 1
                    logger.debug("Cache miss (expired): %s", key)
                    return None
                entry.hit_count += 1
                self._hits += 1
                logger.debug("Cache hit: %s (hits=%d)", key, entry.hit_count)
                return json.loads(_encode(entry.data))

            entry = self._read_file(key)
            if entry is not None:
                if entry.is_live(now):
                    entry.hit_count += 1
                    entry.size_bytes = len(_encode(entry.data).encode("utf-8"))
                    self._store_locked(key, entry)
                    self._hits += 1
                    logger.debug("Cache hit from file: %s", key)
                    return json.loads(_encode(entry.data))
                self._remove_file(key)

            self._misses += 1
            logger.debug("Cache miss: %s", key)
            return None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        resolved_ttl = ttl if ttl is not None and ttl > 0 else self.default_ttl
        try:
            encoded = _encode(value)
        except (TypeError, ValueError) as e:
            logger.warning("Cache set skipped for %s: value is not JSON-serializable (%s)", key, e)
            return False

        entry = CacheEntry(
            data=json.loads(encoded),
            stored_at=self._clock(),
            ttl=resolved_ttl,
            size_bytes=len(encoded.encode("utf-8")),
        )
        with self._lock:
            self._store_locked(key, entry)
            if self.write_through:
                self._write_file(key, entry)
            if self.auto_evict:
                self._evict_if_needed()
        logger.debug("Cache set: %s (ttl=%ss, size=%d)", key, resolved_ttl, entry.size_bytes)
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            self._delete_locked(key)
        logger.debug("Cache delete: %s", key)
        return True

    def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if entry.is_live(now):
                    return True
                self._delete_locked(key)
                return False

            entry = self._read_file(key)
            if entry is None:
                return False
            if entry.is_live(now):
                return True
            self._remove_file(key)
            return False

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0
            self._memory_bytes = 0
            try:
                for path in self.cache_dir.glob("*.json"):
                    path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Error clearing file cache in %s: %s", self.cache_dir, e)
        logger.info("Cache cleared")

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                entry_count=len(self._entries),
                total_memory_bytes=self._memory_bytes,
            )

    def file_count(self) -> int:
        """Number of envelope files in the durable tier, live or not."""
        try:
            return sum(1 for _ in self.cache_dir.glob("*.json"))
        except OSError as e:
            logger.warning("Could not list file cache in %s: %s", self.cache_dir, e)
            return 0

    # Typed helpers per payload kind

    def get_caption(self, key: str) -> Optional[str]:
        return self.get(make_key(CacheKind.CAPTION, key))

    def set_caption(self, key: str, caption: str, ttl: Optional[float] = None) -> bool:
        return self.set(make_key(CacheKind.CAPTION, key), caption, ttl)

    def get_image(self, key: str) -> Optional[bytes]:
        return self._get_bytes(make_key(CacheKind.IMAGE, key))

    def set_image(self, key: str, image: bytes, ttl: Optional[float] = None) -> bool:
        return self.set(make_key(CacheKind.IMAGE, key), base64.b64encode(image).decode("ascii"), ttl)

    def get_mask(self, key: str) -> Optional[bytes]:
        return self._get_bytes(make_key(CacheKind.MASK, key))

    def set_mask(self, key: str, mask: bytes, ttl: Optional[float] = None) -> bool:
        return self.set(make_key(CacheKind.MASK, key), base64.b64encode(mask).decode("ascii"), ttl)

    def get_variations(self, key: str) -> Optional[Any]:
        return self.get(make_key(CacheKind.VARIATIONS, key))

    def set_variations(self, key: str, variations: Any, ttl: Optional[float] = None) -> bool:
        return self.set(make_key(CacheKind.VARIATIONS, key), variations, ttl)

    def _get_bytes(self, key: str) -> Optional[bytes]:
        encoded = self.get(key)
        if not encoded:
            return None
        try:
            return base64.b64decode(encoded, validate=True)
        except (binascii.Error, TypeError) as e:
            logger.warning("Discarding undecodable binary cache entry %s: %s", key, e)
            self.delete(key)
            return None

    # Internals; callers hold self._lock

    def _store_locked(self, key: str, entry: CacheEntry) -> None:
        previous = self._entries.pop(key, None)
        if previous is not None:
            self._memory_bytes -= previous.size_bytes
        self._entries[key] = entry
        self._memory_bytes += entry.size_bytes

    def _delete_locked(self, key: str) -> None:
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._memory_bytes -= entry.size_bytes
        self._remove_file(key)

    def _oldest_key(self) -> Optional[str]:
        if not self._entries:
            return None
        return min(self._entries, key=lambda k: self._entries[k].stored_at)

    def _evict_if_needed(self) -> None:
        if self.max_entries and len(self._entries) > self.max_entries:
            oldest = self._oldest_key()
            if oldest is not None:
                self._delete_locked(oldest)
                logger.info(
                    "Cache eviction (max_entries=%d): %s, %d entries remain",
                    self.max_entries,
                    oldest,
                    len(self._entries),
                )

        if self.max_size_bytes:
            while self._memory_bytes > self.max_size_bytes and self._entries:
                oldest = self._oldest_key()
                if oldest is None:
                    break
                self._delete_locked(oldest)
                logger.info(
                    "Cache eviction (max_size_bytes=%d): %s, %d bytes remain",
                    self.max_size_bytes,
                    oldest,
                    self._memory_bytes,
                )

    def _file_path(self, key: str) -> Path:
        return self.cache_dir / file_key(key)

    def _read_file(self, key: str) -> Optional[CacheEntry]:
        path = self._file_path(key)
        if not path.exists():
            return None
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
            return CacheEntry.from_envelope(payload)
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning("Error reading from file cache for %s: %s", key, e)
            return None

    def _write_file(self, key: str, entry: CacheEntry) -> None:
        try:
            atomic_write_text(self._file_path(key), _encode(entry.to_envelope()))
        except (OSError, TypeError, ValueError) as e:
            logger.warning("File cache write failed for %s, keeping in memory only: %s", key, e)

    def _remove_file(self, key: str) -> None:
        try:
            self._file_path(key).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Error deleting file cache entry for %s: %s", key, e)

"""
Core resource cache with TTL and a global byte budget
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from feedengine.config.cache_config import cache_config
from feedengine.shared.storage import KeyValueStore
from feedengine.shared.utils import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with expiration time and accounted size"""
    key: str
    payload: Any
    inserted_at: float
    expires_at: float
    size_bytes: int

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def payload_size(payload: Any) -> int:
    """Byte length of the payload's serialized form"""
    if isinstance(payload, bytes):
        return len(payload)
    if isinstance(payload, str):
        return len(payload.encode("utf-8"))
    return len(json.dumps(payload, separators=(",", ":")).encode("utf-8"))


class ResourceCache:
    """
    In-memory key -> payload cache.

    Every mutating method runs to completion without suspending, so other
    tasks never observe a half-evicted cache. Entries are kept in insertion
    order, which is also ``inserted_at`` order because re-putting a key
    removes it first.
    """

    def __init__(
        self,
        max_cache_bytes: Optional[int] = None,
        default_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.time,
        mirror: Optional[KeyValueStore] = None,
        mirror_namespace: str = cache_config.PERSISTED_KEY_NAMESPACE,
    ):
        self.max_cache_bytes = (
            max_cache_bytes if max_cache_bytes is not None else cache_config.MAX_CACHE_SIZE_BYTES
        )
        self.default_ttl = default_ttl if default_ttl is not None else cache_config.DEFAULT_TTL
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._current_bytes = 0
        self._mirror = mirror
        self._mirror_namespace = mirror_namespace
        self._sweeper: Optional[asyncio.Task] = None

        self.hits = 0
        self.misses = 0
        self.evictions = 0

        logger.info(
            f"Resource cache initialized with {self.max_cache_bytes} byte budget"
        )

    @property
    def current_bytes(self) -> int:
        return self._current_bytes

    def __len__(self) -> int:
        return len(self._cache)

    def _remove(self, key: str, unmirror: bool = True) -> Optional[CacheEntry]:
        entry = self._cache.pop(key, None)
        if entry is not None:
            self._current_bytes -= entry.size_bytes
            if unmirror:
                self._unmirror(key)
        return entry

    def get(self, key: str) -> Optional[Any]:
        """Get payload from cache, or None on miss"""
        now = self._clock()
        entry = self._cache.get(key)

        if entry is not None and entry.is_expired(now):
            self._remove(key)
            entry = None

        if entry is None:
            entry = self._read_mirror(key, now)

        if entry is None:
            self.misses += 1
            logger.debug(f"Cache miss for {key}")
            return None

        self.hits += 1
        logger.debug(f"Cache hit for {key}")
        return entry.payload

    def contains(self, key: str) -> bool:
        entry = self._cache.get(key)
        return entry is not None and not entry.is_expired(self._clock())

    def put(self, key: str, payload: Any, ttl: Optional[float] = None) -> bool:
        """Insert or refresh a payload. Returns False when the write was skipped."""
        try:
            size = payload_size(payload)
        except (TypeError, ValueError) as e:
            logger.error(f"Cannot compute cache size for {key}, skipping write: {e}")
            return False

        now = self._clock()
        ttl = self.default_ttl if ttl is None else ttl
        entry = CacheEntry(
            key=key,
            payload=payload,
            inserted_at=now,
            expires_at=now + ttl,
            size_bytes=size,
        )
        return self._admit(entry, now, mirror=True)

    def _admit(self, entry: CacheEntry, now: float, mirror: bool) -> bool:
        self._remove(entry.key, unmirror=False)
        self._drop_expired(now)
        self._evict_for(entry.size_bytes)

        if entry.size_bytes > self.max_cache_bytes:
            logger.warning(
                f"Cache entry {entry.key} ({entry.size_bytes} bytes) exceeds the whole budget"
            )

        self._cache[entry.key] = entry
        self._current_bytes += entry.size_bytes
        if mirror:
            self._write_mirror(entry)
        return True

    def _evict_for(self, incoming_bytes: int) -> None:
        """Evict oldest-inserted live entries until incoming_bytes fits"""
        while self._cache and self._current_bytes + incoming_bytes > self.max_cache_bytes:
            oldest_key = next(iter(self._cache))
            evicted = self._remove(oldest_key)
            self.evictions += 1
            logger.debug(f"Evicted {oldest_key} ({evicted.size_bytes} bytes)")

    def _drop_expired(self, now: float) -> int:
        expired_keys = [
            key for key, entry in self._cache.items() if entry.is_expired(now)
        ]
        for key in expired_keys:
            self._remove(key)
        return len(expired_keys)

    def sweep(self) -> int:
        """Remove all expired entries, independent of size pressure"""
        removed = self._drop_expired(self._clock())
        if removed:
            logger.info(f"Cleaned up {removed} expired cache entries")
        return removed

    def start_sweeper(self, interval_seconds: Optional[float] = None) -> asyncio.Task:
        """Run sweep() periodically on the running event loop"""
        if self._sweeper is not None and not self._sweeper.done():
            return self._sweeper

        interval = (
            interval_seconds
            if interval_seconds is not None
            else cache_config.CLEANUP_INTERVAL_MINUTES * 60
        )

        async def _run():
            while True:
                await asyncio.sleep(interval)
                self.sweep()

        self._sweeper = asyncio.create_task(_run())
        return self._sweeper

    async def stop_sweeper(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass

    def delete(self, key: str) -> bool:
        """Delete key from cache"""
        return self._remove(key) is not None

    def clear(self) -> None:
        for key in list(self._cache):
            self._remove(key)

    # Durable mirror

    def _mirror_key(self, key: str) -> str:
        return f"{self._mirror_namespace}{key}"

    def _write_mirror(self, entry: CacheEntry) -> None:
        if self._mirror is None:
            return
        try:
            self._mirror.set(
                self._mirror_key(entry.key),
                json.dumps(
                    {
                        "payload": entry.payload,
                        "inserted_at": entry.inserted_at,
                        "expires_at": entry.expires_at,
                    }
                ),
            )
        except Exception as e:
            logger.error(f"Could not mirror cache entry {entry.key}: {e}")

    def _unmirror(self, key: str) -> None:
        if self._mirror is None:
            return
        try:
            self._mirror.delete(self._mirror_key(key))
        except Exception as e:
            logger.error(f"Could not remove mirrored cache entry {key}: {e}")

    def _read_mirror(self, key: str, now: float) -> Optional[CacheEntry]:
        if self._mirror is None:
            return None
        try:
            raw = self._mirror.get(self._mirror_key(key))
            if raw is None:
                return None
            data = json.loads(raw)
            entry = CacheEntry(
                key=key,
                payload=data["payload"],
                inserted_at=float(data["inserted_at"]),
                expires_at=float(data["expires_at"]),
                size_bytes=payload_size(data["payload"]),
            )
        except Exception as e:
            logger.error(f"Discarding unreadable mirrored cache entry {key}: {e}")
            self._unmirror(key)
            return None

        if entry.is_expired(now):
            self._unmirror(key)
            return None

        self._admit(entry, now, mirror=False)
        return entry

    def restore_from_mirror(self) -> int:
        """Re-admit every still-valid mirrored entry, oldest first"""
        if self._mirror is None:
            return 0
        prefix = self._mirror_namespace
        restored = 0
        now = self._clock()
        for mirror_key in self._mirror.keys():
            if mirror_key.startswith(prefix) and mirror_key[len(prefix):] not in self._cache:
                if self._read_mirror(mirror_key[len(prefix):], now) is not None:
                    restored += 1
        if restored:
            logger.info(f"Restored {restored} cache entries from local storage")
        return restored

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        now = self._clock()
        total_keys = len(self._cache)
        expired_keys = sum(1 for entry in self._cache.values() if entry.is_expired(now))

        # Count by prefix
        prefix_counts: Dict[str, int] = {}
        for key in self._cache.keys():
            prefix = key.split(':', 1)[0] if ':' in key else key
            prefix_counts[prefix] = prefix_counts.get(prefix, 0) + 1

        lookups = self.hits + self.misses
        return {
            "backend": "in_memory",
            "total_keys": total_keys,
            "active_keys": total_keys - expired_keys,
            "expired_keys": expired_keys,
            "bytes_used": self._current_bytes,
            "max_bytes": self.max_cache_bytes,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / lookups if lookups else 0.0,
            "evictions": self.evictions,
            "prefix_breakdown": prefix_counts,
        }

    def keys(self) -> List[str]:
        return list(self._cache.keys())

"""In-memory TTL cache with insertion-order eviction."""

import asyncio
from typing import Dict, Generic, Optional, TypeVar

from tokenfeed.fetcher.clock import Clock, MonotonicClock
from tokenfeed.models.data_models import CacheEntry

T = TypeVar("T")


class MemoryCache(Generic[T]):
    """
    Bounded TTL cache.

    Expiry is checked lazily: ``get`` and ``has`` treat an entry as absent
    once ``now >= expires_at`` and drop it on the spot. ``cleanup`` sweeps
    every expired entry and can be run periodically in the background.
    When full, ``set`` evicts the oldest inserted entry (not LRU).
    """

    def __init__(self, max_size: int = 1000, clock: Optional[Clock] = None):
        if max_size <= 0:
            raise ValueError(f"max_size must be positive, got: {max_size}")
        self.max_size = max_size
        self.clock = clock or MonotonicClock()
        # dicts keep insertion order, so the first key is the oldest
        self._entries: Dict[str, CacheEntry[T]] = {}
        self._cleanup_task: Optional[asyncio.Task] = None

    def get(self, key: str) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired(self.clock.now()):
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, data: T, ttl_seconds: float) -> CacheEntry[T]:
        if key in self._entries:
            # re-inserting moves the key to the newest position
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._evict_oldest()

        now = self.clock.now()
        entry = CacheEntry(data=data, timestamp=now, expires_at=now + ttl_seconds)
        self._entries[key] = entry
        return entry

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def cleanup(self) -> int:
        """Remove every expired entry; returns the number removed."""
        now = self.clock.now()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def size(self) -> int:
        return len(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def start_cleanup(self, interval_seconds: float) -> asyncio.Task:
        """Run ``cleanup`` every ``interval_seconds`` on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval_seconds))
        return self._cleanup_task

    async def stop_cleanup(self) -> None:
        task, self._cleanup_task = self._cleanup_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def destroy(self) -> None:
        """Stop the background sweep and drop every entry."""
        await self.stop_cleanup()
        self.clear()

    async def _cleanup_loop(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup()

    def _evict_oldest(self) -> None:
        oldest = next(iter(self._entries), None)
        if oldest is not None:
            del self._entries[oldest]

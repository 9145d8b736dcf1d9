"""Read-through cache in front of a fetch pipeline."""

import asyncio
import functools
from typing import Any, Callable, Dict, Optional

from tokenfeed.cache.memory_cache import MemoryCache
from tokenfeed.models.data_models import PriceRequest


class CachedFetcher:
    """
    Serves fresh results from cache and fills it from the wrapped pipeline.

    A hit bypasses rate limiting, circuit breaking and every provider.
    Only successful results are stored. Concurrent misses for the same key
    share a single call to the wrapped pipeline.
    """

    def __init__(
        self,
        fetcher,
        ttl_seconds: float = 60.0,
        max_size: int = 1000,
        cache: Optional[MemoryCache] = None,
        key_func: Optional[Callable[[PriceRequest], str]] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize cached fetcher.

        Args:
            fetcher: Anything with ``async fetch(request)``, usually a FallbackOrchestrator
            ttl_seconds: Lifetime of cached results
            max_size: Cache capacity (ignored when ``cache`` is given)
            cache: Pre-built cache to use
            key_func: Request fingerprint (default: ``request.cache_key``)
            logger: Optional structured logger for telemetry
        """
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds
        self.cache = cache if cache is not None else MemoryCache(max_size=max_size)
        self.key_func = key_func or (lambda request: request.cache_key)
        self.logger = logger
        self._inflight: Dict[str, asyncio.Task] = {}

    async def fetch(self, request: PriceRequest) -> Any:
        key = self.key_func(request)

        entry = self.cache.get(key)
        if entry is not None:
            if self.logger:
                self.logger.cache_hit(key=key)
            return entry.data

        task = self._inflight.get(key)
        if self.logger:
            self.logger.cache_miss(key=key, inflight=task is not None)
        if task is None:
            task = asyncio.ensure_future(self._load(key, request))
            task.add_done_callback(functools.partial(self._finished, key))
            self._inflight[key] = task

        # Cancelling one caller only abandons its own wait; the load keeps
        # running for everyone else waiting on the key.
        return await asyncio.shield(task)

    async def _load(self, key: str, request: PriceRequest) -> Any:
        result = await self.fetcher.fetch(request)
        self.cache.set(key, result, self.ttl_seconds)
        return result

    def _finished(self, key: str, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled():
            # mark the error as retrieved when every waiter has gone away
            task.exception()

    def invalidate(self, request: PriceRequest) -> bool:
        return self.cache.delete(self.key_func(request))

    def get_cache_stats(self) -> Dict[str, int]:
        return {"size": self.cache.size(), "max_size": self.cache.max_size}

    def clear_cache(self) -> None:
        self.cache.clear()

    async def destroy(self) -> None:
        await self.cache.destroy()

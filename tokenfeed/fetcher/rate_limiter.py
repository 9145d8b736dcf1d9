"""Rate limiter gate using a fixed-window token bucket with a FIFO queue."""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from tokenfeed.fetcher.clock import Clock, MonotonicClock
from tokenfeed.models.config import RateLimiterConfig
from tokenfeed.models.data_models import PriceRequest

# Absorbs float drift when a sleep lands exactly on a window boundary.
_EPSILON = 1e-9


@dataclass
class _Bucket:
    """Per-key limiter state."""
    tokens: int
    window_start: float
    last_grant: Optional[float] = None
    waiting: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


class RateLimiter:
    """Token bucket rate limiter that queues excess demand instead of rejecting it.

    Each key owns ``points`` tokens per ``duration_seconds`` window. The
    window starts at the first grant after the previous one expired, and
    the bucket is refilled to full when it ends. Callers that find the
    bucket empty wait, in arrival order, until the next window opens.

    With ``exec_evenly`` set, grants for one key are additionally spaced
    ``exec_evenly_min_delay_ms`` apart (or ``duration / points`` if no
    minimum is given), which smooths bursts at the start of a window.
    """

    def __init__(
        self,
        points: int = 5,
        duration_seconds: float = 1.0,
        exec_evenly: bool = False,
        exec_evenly_min_delay_ms: int = 0,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        """Initialize rate limiter with token bucket parameters.

        Args:
            points: Tokens available per window
            duration_seconds: Window length in seconds
            exec_evenly: Space grants evenly instead of admitting bursts
            exec_evenly_min_delay_ms: Minimum spacing between grants when exec_evenly is set
            clock: Clock for time and sleeping (default: MonotonicClock)
            logger: Optional structured logger for telemetry
        """
        if points <= 0:
            raise ValueError(f"points must be positive, got: {points}")
        if duration_seconds <= 0:
            raise ValueError(f"duration_seconds must be positive, got: {duration_seconds}")

        self.points = points
        self.duration_seconds = float(duration_seconds)
        self.exec_evenly = exec_evenly
        self.exec_evenly_min_delay_ms = exec_evenly_min_delay_ms
        self.clock = clock or MonotonicClock()
        self.logger = logger

        self._buckets: Dict[str, _Bucket] = {}

    @classmethod
    def from_config(
        cls,
        config: RateLimiterConfig,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ) -> "RateLimiter":
        return cls(
            points=config.points,
            duration_seconds=config.duration_seconds,
            exec_evenly=config.exec_evenly,
            exec_evenly_min_delay_ms=config.exec_evenly_min_delay_ms,
            clock=clock,
            logger=logger,
        )

    @property
    def min_spacing(self) -> float:
        """Minimum seconds between two grants for the same key."""
        if not self.exec_evenly:
            return 0.0
        if self.exec_evenly_min_delay_ms > 0:
            return self.exec_evenly_min_delay_ms / 1000.0
        return self.duration_seconds / self.points

    async def acquire(self, key: str) -> None:
        """Wait for and consume one token for ``key``.

        Requests for the same key are granted strictly in arrival order.
        The token is taken at grant time, so a queued request does not
        hold a token while it waits.

        Args:
            key: The identifier being limited (one provider)
        """
        bucket = self._get_bucket(key)
        bucket.waiting += 1
        try:
            async with bucket.lock:
                waited = 0.0
                while True:
                    delay = self._time_until_grant(bucket)
                    if delay <= 0:
                        break
                    waited += delay
                    await self.clock.sleep(delay)

                bucket.tokens -= 1
                bucket.last_grant = self.clock.now()

                if waited and self.logger:
                    self.logger.rate_limited(source=key, waited_ms=waited * 1000)
        finally:
            bucket.waiting -= 1

    def remaining_tokens(self, key: str) -> int:
        """Tokens that could be granted right now for ``key`` (ignoring spacing)."""
        bucket = self._get_bucket(key)
        self._refill(bucket)
        return bucket.tokens

    def queue_length(self, key: str) -> int:
        """Number of callers currently waiting for (or holding) the grant turn."""
        bucket = self._buckets.get(key)
        return bucket.waiting if bucket else 0

    def stats(self) -> Dict[str, Any]:
        """Echo of the configuration; the limiter keeps no historical counters."""
        return {
            "points": self.points,
            "duration_seconds": self.duration_seconds,
            "exec_evenly": self.exec_evenly,
            "exec_evenly_min_delay_ms": self.exec_evenly_min_delay_ms,
        }

    def reset(self, key: Optional[str] = None) -> None:
        """Forget limiter state for one key, or all keys."""
        if key is None:
            self._buckets.clear()
        else:
            self._buckets.pop(key, None)

    def _get_bucket(self, key: str) -> _Bucket:
        if key not in self._buckets:
            self._buckets[key] = _Bucket(tokens=self.points, window_start=self.clock.now())
        return self._buckets[key]

    def _refill(self, bucket: _Bucket) -> None:
        now = self.clock.now()
        if now - bucket.window_start >= self.duration_seconds - _EPSILON:
            bucket.tokens = self.points
            bucket.window_start = now

    def _time_until_grant(self, bucket: _Bucket) -> float:
        """Seconds until the head of the queue may be granted (<= 0 means now)."""
        self._refill(bucket)
        now = self.clock.now()

        if bucket.tokens <= 0:
            return bucket.window_start + self.duration_seconds - now

        spacing = self.min_spacing
        if spacing and bucket.last_grant is not None:
            remaining = bucket.last_grant + spacing - now
            if remaining > _EPSILON:
                return remaining
        return 0.0


class RateLimitedProvider:
    """Gate that admits calls to a provider within its rate budget.

    The limiter is keyed by the wrapped provider's name. Rate pressure
    only ever delays a call; errors come solely from the wrapped provider.
    """

    def __init__(
        self,
        provider,
        config: Optional[RateLimiterConfig] = None,
        limiter: Optional[RateLimiter] = None,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        if limiter is None:
            limiter = RateLimiter.from_config(config or RateLimiterConfig(), clock=clock, logger=logger)
        self.inner = provider
        self.limiter = limiter

    @property
    def name(self) -> str:
        return self.inner.name

    async def is_available(self) -> bool:
        return await self.inner.is_available()

    async def fetch(self, request: PriceRequest) -> Any:
        await self.limiter.acquire(self.name)
        return await self.inner.fetch(request)

    def remaining_tokens(self) -> int:
        return self.limiter.remaining_tokens(self.name)

    def get_stats(self) -> Dict[str, Any]:
        return self.limiter.stats()

"""Explicit composition of gated providers into a fetch pipeline."""

from typing import Optional, Sequence, Union

from tokenfeed.cache.memory_cache import MemoryCache
from tokenfeed.fetcher.circuit_breaker import CircuitBreakerProvider
from tokenfeed.fetcher.clock import Clock
from tokenfeed.fetcher.provider import Provider
from tokenfeed.fetcher.rate_limiter import RateLimitedProvider
from tokenfeed.models.config import CacheConfig, CircuitBreakerConfig, ProviderConfig, RateLimiterConfig
from tokenfeed.monitoring.logger import StructuredLogger
from tokenfeed.pipeline.cached import CachedFetcher
from tokenfeed.pipeline.fallback import FallbackOrchestrator


def with_rate_limit(
    provider: Provider,
    config: RateLimiterConfig,
    clock: Optional[Clock] = None,
    logger: Optional[StructuredLogger] = None,
) -> RateLimitedProvider:
    return RateLimitedProvider(provider, config, clock=clock, logger=logger)


def with_circuit_breaker(
    provider: Provider,
    config: CircuitBreakerConfig,
    clock: Optional[Clock] = None,
    logger: Optional[StructuredLogger] = None,
) -> CircuitBreakerProvider:
    return CircuitBreakerProvider(provider, config, clock=clock, logger=logger)


def build_gated_provider(
    provider: Provider,
    config: ProviderConfig,
    clock: Optional[Clock] = None,
    logger: Optional[StructuredLogger] = None,
) -> CircuitBreakerProvider:
    """
    Wrap ``provider`` as CircuitBreaker -> RateLimiter -> provider.

    The breaker is outermost, so an open circuit rejects a call before it
    takes a rate-limit token, and the per-call timeout also covers time
    spent queued behind the limiter.
    """
    limited = with_rate_limit(provider, config.rate_limiter, clock=clock, logger=logger)
    return with_circuit_breaker(limited, config.circuit_breaker, clock=clock, logger=logger)


def build_pipeline(
    providers: Sequence[Provider],
    cache_config: Optional[CacheConfig] = None,
    clock: Optional[Clock] = None,
    logger: Optional[StructuredLogger] = None,
    max_errors: int = 50,
    retention_seconds: float = 3600.0,
    recent_seconds: float = 300.0,
    kind: str = "",
) -> Union[CachedFetcher, FallbackOrchestrator]:
    """
    Build orchestrator (and optional read-through cache) over already gated providers.

    Args:
        providers: Gated providers in preference order
        cache_config: Cache settings; ``None`` or ``enabled=False`` skips the cache
        clock: Clock shared by orchestrator and cache
        logger: Optional structured logger for telemetry
        max_errors: Orchestrator error ring buffer capacity
        retention_seconds: Error retention window
        recent_seconds: Error reporting window
        kind: Label for error messages ("price", "metadata")

    Returns:
        A CachedFetcher, or the bare FallbackOrchestrator when caching is off
    """
    orchestrator = FallbackOrchestrator(
        providers,
        clock=clock,
        logger=logger,
        max_errors=max_errors,
        retention_seconds=retention_seconds,
        recent_seconds=recent_seconds,
        kind=kind,
    )
    if cache_config is None or not cache_config.enabled:
        return orchestrator

    cache = MemoryCache(max_size=cache_config.max_size, clock=clock)
    return CachedFetcher(
        orchestrator,
        ttl_seconds=cache_config.ttl_ms / 1000.0,
        cache=cache,
        logger=logger,
    )

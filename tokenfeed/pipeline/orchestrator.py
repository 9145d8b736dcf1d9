"""Feed facade wiring providers, gates, fallback and cache together."""

import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, Union

from tokenfeed.fetcher.circuit_breaker import CircuitBreakerProvider
from tokenfeed.fetcher.clock import Clock
from tokenfeed.fetcher.http_client import AsyncHTTPClient
from tokenfeed.models.config import FeedConfig, ProviderConfig
from tokenfeed.models.data_models import PriceRequest, TokenMetadata, TokenPrice
from tokenfeed.monitoring.logger import StructuredLogger
from tokenfeed.pipeline.builder import build_gated_provider, build_pipeline
from tokenfeed.pipeline.cached import CachedFetcher
from tokenfeed.pipeline.fallback import FallbackOrchestrator
from tokenfeed.providers import METADATA_PROVIDERS, PRICE_PROVIDERS


class TokenFeed:
    """
    Resilient token price and metadata feed.

    One instance owns a shared HTTP client plus two independent pipelines
    (prices and metadata). Each configured provider gets its own rate
    limiter and circuit breaker for the lifetime of the feed.
    """

    def __init__(
        self,
        config: Optional[FeedConfig] = None,
        http_client: Optional[AsyncHTTPClient] = None,
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None,
    ):
        """
        Initialize feed with configuration.

        Args:
            config: Feed configuration (defaults to FeedConfig())
            http_client: HTTP client to share between providers
            clock: Clock for gates, cache and error bookkeeping
            logger: Structured logger (defaults to one at config.log_level)
        """
        self.config = config or FeedConfig()
        self.logger = logger or StructuredLogger(level=self.config.log_level)
        self.clock = clock
        self.http_client = http_client or AsyncHTTPClient(
            connect_timeout=self.config.connect_timeout,
            read_timeout=self.config.read_timeout,
        )

        self.price_providers = self._build_providers(self.config.price_providers, PRICE_PROVIDERS)
        self.metadata_providers = self._build_providers(self.config.metadata_providers, METADATA_PROVIDERS)

        self.prices = self._build_pipeline(self.price_providers, "price")
        self.metadata = self._build_pipeline(self.metadata_providers, "metadata")
        self._opened = False
        self._closed = False

    async def __aenter__(self) -> "TokenFeed":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def open(self) -> None:
        """
        Open the shared HTTP client and start cache cleanup.

        Called by ``async with`` and by every lookup, so a feed used without
        the context manager still works. Does nothing once the feed is closed.
        """
        if self._opened or self._closed:
            return
        await self.http_client.open()
        self._start_cleanup()
        self._opened = True

    async def get_price(self, token_address: str, chain_id: int) -> TokenPrice:
        """
        Fetch the spot price of one token.

        Raises:
            NoProvidersConfiguredError: If no price provider is configured
            AllProvidersFailedError: If every price provider failed
        """
        await self.open()
        return await self.prices.fetch(PriceRequest(token_address, chain_id).normalized())

    async def get_prices(
        self,
        tokens: Sequence[PriceRequest],
    ) -> Dict[str, Union[TokenPrice, Exception]]:
        """
        Fetch many prices concurrently.

        Returns:
            Mapping of request cache key to price, or to the error raised for it
        """
        await self.open()
        requests = [token.normalized() for token in tokens]
        results = await asyncio.gather(
            *(self.prices.fetch(request) for request in requests),
            return_exceptions=True,
        )

        prices: Dict[str, Union[TokenPrice, Exception]] = {}
        for request, result in zip(requests, results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            prices[request.cache_key] = result
        return prices

    async def get_metadata(self, token_address: str, chain_id: int) -> TokenMetadata:
        """Fetch descriptive metadata of one token."""
        await self.open()
        return await self.metadata.fetch(PriceRequest(token_address, chain_id).normalized())

    def status(self) -> Dict[str, Any]:
        """Snapshot of provider circuits, limiter budgets, recent errors and cache sizes."""
        return {
            "price": self._pipeline_status(self.prices, self.price_providers),
            "metadata": self._pipeline_status(self.metadata, self.metadata_providers),
        }

    async def aclose(self) -> None:
        self._closed = True
        for pipeline in (self.prices, self.metadata):
            if isinstance(pipeline, CachedFetcher):
                await pipeline.destroy()
        for provider in [*self.price_providers, *self.metadata_providers]:
            provider.shutdown()
        await self.http_client.aclose()

    def _build_providers(
        self,
        configs: Sequence[ProviderConfig],
        registry: Mapping[str, Type],
    ) -> List[CircuitBreakerProvider]:
        providers = []
        for provider_config in configs:
            if not provider_config.enabled:
                continue
            provider_class = registry.get(provider_config.name.lower())
            if provider_class is None:
                raise ValueError(f"Unknown provider: {provider_config.name}")
            provider = provider_class(provider_config, self.http_client)
            providers.append(build_gated_provider(provider, provider_config, clock=self.clock, logger=self.logger))
        return providers

    def _build_pipeline(self, providers: Sequence[CircuitBreakerProvider], kind: str):
        cache_config = self.config.price_cache if kind == "price" else self.config.metadata_cache
        return build_pipeline(
            providers,
            cache_config=cache_config,
            clock=self.clock,
            logger=self.logger,
            max_errors=self.config.max_errors,
            retention_seconds=self.config.error_retention_seconds,
            recent_seconds=self.config.recent_error_seconds,
            kind=kind,
        )

    def _start_cleanup(self) -> None:
        for pipeline, cache_config in (
            (self.prices, self.config.price_cache),
            (self.metadata, self.config.metadata_cache),
        ):
            if isinstance(pipeline, CachedFetcher):
                pipeline.cache.start_cleanup(cache_config.cleanup_interval_ms / 1000.0)

    @staticmethod
    def _orchestrator(pipeline) -> FallbackOrchestrator:
        return pipeline.fetcher if isinstance(pipeline, CachedFetcher) else pipeline

    def _pipeline_status(self, pipeline, providers: Sequence[CircuitBreakerProvider]) -> Dict[str, Any]:
        orchestrator = self._orchestrator(pipeline)
        availability = {status.provider: status.available for status in orchestrator.get_provider_status()}
        return {
            "providers": [
                {
                    "name": provider.name,
                    "available": availability.get(provider.name, True),
                    "circuit": provider.get_state(),
                    "rate_limiter": provider.inner.get_stats(),
                    "remaining_tokens": provider.inner.remaining_tokens(),
                }
                for provider in providers
            ],
            "recent_errors": [record.describe() for record in orchestrator.get_recent_errors()],
            "cache": pipeline.get_cache_stats() if isinstance(pipeline, CachedFetcher) else None,
        }

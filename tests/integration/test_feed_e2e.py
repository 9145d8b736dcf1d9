"""End-to-end tests: TokenFeed against in-process mock price servers."""

import httpx
import pytest

from tokenfeed.fetcher.errors import AllProvidersFailedError, CircuitOpenError
from tokenfeed.fetcher.http_client import AsyncHTTPClient
from tokenfeed.mock_servers import create_mock_app
from tokenfeed.models.config import CacheConfig, CircuitBreakerConfig, FeedConfig, ProviderConfig, RateLimiterConfig
from tokenfeed.models.data_models import PriceRequest
from tokenfeed.pipeline.orchestrator import TokenFeed
from tests.fixtures.sample_data import USDC

pytestmark = pytest.mark.integration


class HostRouter(httpx.AsyncBaseTransport):
    """Dispatch requests to an ASGI app by host name."""

    def __init__(self, apps):
        self.transports = {host: httpx.ASGITransport(app=app) for host, app in apps.items()}

    async def handle_async_request(self, request):
        return await self.transports[request.url.host].handle_async_request(request)


@pytest.fixture
def llama_app():
    return create_mock_app(name="llama", random_seed=1, error_rate=0.0)


@pytest.fixture
def gecko_app():
    return create_mock_app(name="gecko", prices={f"ethereum:{USDC}": 1.0001}, random_seed=2, error_rate=0.0)


def provider(name, host):
    return ProviderConfig(
        name=name,
        base_url=f"http://{host}",
        rate_limiter=RateLimiterConfig(points=100, duration_seconds=1),
        circuit_breaker=CircuitBreakerConfig(
            timeout_ms=2000,
            error_threshold_percentage=50,
            reset_timeout_ms=60000,
            volume_threshold=3,
        ),
    )


@pytest.fixture
def make_feed(llama_app, gecko_app):
    def factory(cache=True):
        config = FeedConfig(
            price_providers=[provider("DeFiLlama", "llama.mock"), provider("CoinGecko", "gecko.mock")],
            metadata_providers=[],
            price_cache=CacheConfig(enabled=cache, ttl_ms=60000),
            log_level="WARNING",
        )
        client = AsyncHTTPClient(transport=HostRouter({"llama.mock": llama_app, "gecko.mock": gecko_app}))
        return TokenFeed(config, http_client=client)

    return factory


@pytest.mark.asyncio
async def test_primary_provider_answers(make_feed, llama_app, gecko_app):
    async with make_feed() as feed:
        result = await feed.get_price(USDC, 1)

    assert result.source == "DeFiLlama"
    assert result.price == 1.0
    assert gecko_app.state.requests == 0


@pytest.mark.asyncio
async def test_repeat_lookup_is_served_from_cache(make_feed, llama_app):
    async with make_feed() as feed:
        first = await feed.get_price(USDC, 1)
        second = await feed.get_price(USDC.lower(), 1)

    assert second is first
    assert llama_app.state.requests == 1


@pytest.mark.asyncio
async def test_falls_back_when_primary_is_down(make_feed, llama_app, gecko_app):
    llama_app.state.failure.status_code = 503

    async with make_feed(cache=False) as feed:
        result = await feed.get_price(USDC, 1)
        status = feed.status()

    assert result.source == "CoinGecko"
    assert result.price == 1.0001
    assert status["price"]["recent_errors"] == ["DeFiLlama: DeFiLlama returned HTTP 503"]
    assert status["price"]["providers"][0]["available"] is False


@pytest.mark.asyncio
async def test_open_circuit_stops_calling_broken_provider(make_feed, llama_app, gecko_app):
    llama_app.state.failure.status_code = 500

    async with make_feed(cache=False) as feed:
        for _ in range(6):
            result = await feed.get_price(USDC, 1)
            assert result.source == "CoinGecko"

        llama_state = feed.status()["price"]["providers"][0]["circuit"]

    assert llama_app.state.requests == 3
    assert gecko_app.state.requests == 6
    assert llama_state["opened"] is True
    assert llama_state["stats"]["rejects"] == 3


@pytest.mark.asyncio
async def test_all_providers_down(make_feed, llama_app, gecko_app):
    llama_app.state.failure.status_code = 503
    gecko_app.state.failure.status_code = 429

    async with make_feed() as feed:
        with pytest.raises(AllProvidersFailedError) as exc_info:
            await feed.get_price(USDC, 1)

        # failures are not cached
        with pytest.raises(AllProvidersFailedError):
            await feed.get_price(USDC, 1)

    message = str(exc_info.value)
    assert message.startswith("All price providers failed. Errors: ")
    assert "DeFiLlama: DeFiLlama returned HTTP 503" in message
    assert "CoinGecko: CoinGecko rate limit exceeded" in message
    assert llama_app.state.requests == 2


@pytest.mark.asyncio
async def test_direct_gate_reports_open_circuit(make_feed, llama_app):
    llama_app.state.failure.status_code = 500

    async with make_feed(cache=False) as feed:
        llama = feed.price_providers[0]
        request = PriceRequest(USDC, 1)
        for _ in range(3):
            with pytest.raises(Exception, match="HTTP 500"):
                await llama.fetch(request)

        with pytest.raises(CircuitOpenError, match="Circuit breaker OPEN for DeFiLlama"):
            await llama.fetch(request)

    assert llama_app.state.requests == 3

"""Pytest configuration and shared fixtures."""

import pytest

from tokenfeed.models.config import CircuitBreakerConfig, FeedConfig, RateLimiterConfig
from tests.fixtures.sample_data import FakeClock


@pytest.fixture(autouse=True)
def clean_tokenfeed_env(monkeypatch):
    """Keep developer API keys and overrides out of the tests."""
    for var in (
        "MORALIS_API_KEY",
        "COINGECKO_API_KEY",
        "TOKENFEED_LOG_LEVEL",
        "TOKENFEED_CONNECT_TIMEOUT",
        "TOKENFEED_READ_TIMEOUT",
        "TOKENFEED_MAX_ERRORS",
        "TOKENFEED_PRICE_CACHE_TTL_MS",
    ):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def clock():
    """Deterministic clock shared by gates, cache and orchestrator."""
    return FakeClock()


@pytest.fixture
def breaker_config():
    """Small thresholds so circuits trip within a handful of calls."""
    return CircuitBreakerConfig(
        timeout_ms=1000,
        error_threshold_percentage=50,
        reset_timeout_ms=10000,
        volume_threshold=3,
    )


@pytest.fixture
def limiter_config():
    return RateLimiterConfig(points=2, duration_seconds=1)


@pytest.fixture
def sample_config():
    """Provide a sample configuration for testing."""
    return FeedConfig(log_level="WARNING")

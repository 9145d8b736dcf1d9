"""Unit tests for structured logging."""

import json
import logging

from tokenfeed.monitoring.logger import StructuredLogger
from tokenfeed.fetcher.provider import Provider
from tokenfeed.fetcher.rate_limiter import RateLimitedProvider
from tests.fixtures.sample_data import StubProvider


def events(caplog):
    return [json.loads(record.getMessage()) for record in caplog.records]


def test_events_are_json(caplog):
    logger = StructuredLogger(name="tokenfeed.test.json", level="DEBUG")

    with caplog.at_level(logging.DEBUG, logger="tokenfeed.test.json"):
        logger.fetch_success(source="DeFiLlama", key="0xabc-1", elapsed_ms=12.3456)
        logger.circuit_breaker_state(source="DeFiLlama", state="open")

    assert events(caplog) == [
        {"event": "fetch_success", "source": "DeFiLlama", "key": "0xabc-1", "elapsed_ms": 12.35},
        {"event": "circuit_breaker", "source": "DeFiLlama", "cb_state": "open"},
    ]


def test_levels(caplog):
    logger = StructuredLogger(name="tokenfeed.test.levels", level="DEBUG")

    with caplog.at_level(logging.DEBUG, logger="tokenfeed.test.levels"):
        logger.cache_hit(key="k")
        logger.fetch_error(source="A", key="k", error="boom", attempt=0)
        logger.all_providers_failed(key="k", providers=2, error="All failed")

    assert [record.levelno for record in caplog.records] == [logging.DEBUG, logging.WARNING, logging.ERROR]


def test_non_serializable_values_are_stringified(caplog):
    logger = StructuredLogger(name="tokenfeed.test.str", level="INFO")

    with caplog.at_level(logging.INFO, logger="tokenfeed.test.str"):
        logger.log("custom", error=ValueError("bad"))

    assert events(caplog) == [{"event": "custom", "error": "bad"}]


def test_gates_satisfy_provider_protocol():
    stub = StubProvider("A")
    assert isinstance(stub, Provider)
    assert isinstance(RateLimitedProvider(stub), Provider)

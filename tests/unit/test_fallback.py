"""Unit tests for the fallback orchestrator and its error ring buffer."""

import time
from unittest.mock import Mock

import pytest

from tokenfeed.fetcher.errors import AllProvidersFailedError, NoProvidersConfiguredError
from tokenfeed.models.data_models import ErrorRecord, ProviderStatus
from tokenfeed.pipeline.builder import build_gated_provider
from tokenfeed.models.config import ProviderConfig, RateLimiterConfig
from tokenfeed.pipeline.fallback import ErrorRingBuffer, FallbackOrchestrator
from tests.fixtures.sample_data import StubProvider, failing, usdc_request


class TestFallbackOrder:

    @pytest.mark.asyncio
    async def test_first_success_short_circuits(self, clock):
        a = StubProvider("A", price=1.01)
        b = StubProvider("B")
        c = StubProvider("C")
        orchestrator = FallbackOrchestrator([a, b, c], clock=clock)

        result = await orchestrator.fetch(usdc_request())

        assert result.source == "A"
        assert result.price == 1.01
        assert a.call_count == 1
        assert b.call_count == 0
        assert c.call_count == 0
        assert b.availability_checks == 0

    @pytest.mark.asyncio
    async def test_falls_through_failures_in_order(self, clock):
        a = failing("A")
        b = failing("B")
        c = StubProvider("C")
        orchestrator = FallbackOrchestrator([a, b, c], clock=clock)

        result = await orchestrator.fetch(usdc_request())

        assert result.source == "C"
        assert a.call_count == 1
        assert b.call_count == 1
        assert c.call_count == 1
        assert [r.provider for r in orchestrator.get_recent_errors()] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_unavailable_provider_is_skipped(self, clock):
        a = StubProvider("A", available=False)
        b = StubProvider("B")
        orchestrator = FallbackOrchestrator([a, b], clock=clock)

        result = await orchestrator.fetch(usdc_request())

        assert result.source == "B"
        assert a.call_count == 0
        errors = orchestrator.get_recent_errors()
        assert len(errors) == 1
        assert errors[0].message == "Provider A is not available"

    @pytest.mark.asyncio
    async def test_permanent_errors_fall_through_like_transient_ones(self, clock):
        a = StubProvider("A", outcomes=[ValueError("Chain ID 999 not supported by A")])
        b = StubProvider("B", outcomes=[TimeoutError("slow")])
        c = StubProvider("C")
        orchestrator = FallbackOrchestrator([a, b, c], clock=clock)

        result = await orchestrator.fetch(usdc_request())

        assert result.source == "C"
        assert a.call_count == 1
        assert b.call_count == 1


class TestFallbackFailures:

    @pytest.mark.asyncio
    async def test_all_failed_aggregates_messages(self, clock):
        orchestrator = FallbackOrchestrator([failing("A", "x"), failing("B", "y")], clock=clock)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.fetch(usdc_request())

        message = str(exc_info.value)
        assert "A: x" in message
        assert "B: y" in message
        assert "A: x; B: y" in message
        assert [r.provider for r in exc_info.value.errors] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_kind_appears_in_messages(self, clock):
        orchestrator = FallbackOrchestrator([failing("A", "x")], clock=clock, kind="price")

        with pytest.raises(AllProvidersFailedError, match="All price providers failed. Errors: A: x"):
            await orchestrator.fetch(usdc_request())

    @pytest.mark.asyncio
    async def test_empty_provider_list_fails_immediately(self, clock):
        orchestrator = FallbackOrchestrator([], clock=clock)

        start = time.perf_counter()
        with pytest.raises(NoProvidersConfiguredError, match="No providers configured"):
            await orchestrator.fetch(usdc_request())
        assert time.perf_counter() - start < 0.1

    @pytest.mark.asyncio
    async def test_errors_without_message_use_type_name(self, clock):
        orchestrator = FallbackOrchestrator([StubProvider("A", outcomes=[KeyError()])], clock=clock)

        with pytest.raises(AllProvidersFailedError, match="A: KeyError"):
            await orchestrator.fetch(usdc_request())

    @pytest.mark.asyncio
    async def test_only_recent_errors_are_reported(self, clock):
        a = failing("A", "old outage")
        orchestrator = FallbackOrchestrator([a], clock=clock)
        with pytest.raises(AllProvidersFailedError):
            await orchestrator.fetch(usdc_request())

        clock.advance(301)
        a.outcomes = [RuntimeError("new outage")]
        with pytest.raises(AllProvidersFailedError) as exc_info:
            await orchestrator.fetch(usdc_request())

        message = str(exc_info.value)
        assert "A: new outage" in message
        assert "old outage" not in message

    @pytest.mark.asyncio
    async def test_errors_older_than_retention_are_purged(self, clock):
        orchestrator = FallbackOrchestrator([failing("A"), StubProvider("B")], clock=clock)
        await orchestrator.fetch(usdc_request())
        assert len(orchestrator._errors) == 1

        clock.advance(3601)
        orchestrator._providers[0].outcomes = [None]
        await orchestrator.fetch(usdc_request())

        assert len(orchestrator._errors) == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged(self, clock):
        logger = Mock()
        orchestrator = FallbackOrchestrator([failing("A", "x")], clock=clock, logger=logger)

        with pytest.raises(AllProvidersFailedError):
            await orchestrator.fetch(usdc_request())

        logger.fetch_error.assert_called_once()
        logger.all_providers_failed.assert_called_once()


class TestProviderStatus:

    @pytest.mark.asyncio
    async def test_provider_with_recent_error_is_unavailable(self, clock):
        orchestrator = FallbackOrchestrator([failing("A"), StubProvider("B")], clock=clock)
        await orchestrator.fetch(usdc_request())

        assert orchestrator.get_provider_status() == [
            ProviderStatus(provider="A", available=False),
            ProviderStatus(provider="B", available=True),
        ]

    @pytest.mark.asyncio
    async def test_status_recovers_after_recent_window(self, clock):
        orchestrator = FallbackOrchestrator([failing("A"), StubProvider("B")], clock=clock)
        await orchestrator.fetch(usdc_request())

        clock.advance(300)

        assert all(status.available for status in orchestrator.get_provider_status())
        assert orchestrator.get_recent_errors() == []

    @pytest.mark.asyncio
    async def test_clear_errors_restores_availability(self, clock):
        orchestrator = FallbackOrchestrator([failing("A"), StubProvider("B")], clock=clock)
        await orchestrator.fetch(usdc_request())
        assert len(orchestrator.get_recent_errors()) == 1

        orchestrator.clear_errors()

        assert orchestrator.get_recent_errors() == []
        assert all(status.available for status in orchestrator.get_provider_status())


class TestErrorRingBuffer:

    def test_overwrites_oldest_when_full(self):
        buffer = ErrorRingBuffer(capacity=3)
        for i in range(5):
            buffer.append(ErrorRecord(provider=f"P{i}", error=RuntimeError(str(i)), timestamp=float(i)))

        assert len(buffer) == 3
        assert [record.provider for record in buffer] == ["P2", "P3", "P4"]

    def test_purge_and_since(self):
        buffer = ErrorRingBuffer(capacity=10)
        for i in range(5):
            buffer.append(ErrorRecord(provider="A", error=RuntimeError(), timestamp=float(i)))

        assert buffer.purge_older_than(1.0) == 2
        assert [record.timestamp for record in buffer.since(2.0)] == [3.0, 4.0]

    def test_rejects_non_positive_capacity(self):
        with pytest.raises(ValueError):
            ErrorRingBuffer(capacity=0)

    @pytest.mark.asyncio
    async def test_orchestrator_error_log_is_bounded(self, clock):
        orchestrator = FallbackOrchestrator([failing("A"), failing("B")], clock=clock, max_errors=3)

        for _ in range(4):
            with pytest.raises(AllProvidersFailedError):
                await orchestrator.fetch(usdc_request())

        assert len(orchestrator.get_recent_errors()) == 3


class TestFallbackWithGates:

    @pytest.mark.asyncio
    async def test_open_circuit_falls_through_without_calling_provider(self, clock, breaker_config):
        broken = failing("A", "503")
        healthy = StubProvider("B")
        config = ProviderConfig(
            name="A",
            base_url="https://a.example",
            rate_limiter=RateLimiterConfig(points=100, duration_seconds=1),
            circuit_breaker=breaker_config,
        )
        orchestrator = FallbackOrchestrator(
            [
                build_gated_provider(broken, config, clock=clock),
                build_gated_provider(healthy, config.model_copy(update={"name": "B"}), clock=clock),
            ],
            clock=clock,
        )

        results = [await orchestrator.fetch(usdc_request()) for _ in range(5)]

        assert all(result.source == "B" for result in results)
        assert broken.call_count == 3
        assert healthy.call_count == 5
        messages = [record.message for record in orchestrator.get_recent_errors()]
        assert messages[:3] == ["503", "503", "503"]
        assert all(m.startswith("Circuit breaker OPEN for A") for m in messages[3:])

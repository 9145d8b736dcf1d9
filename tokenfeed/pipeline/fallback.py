"""Ordered fallback across providers, first success wins."""

from collections import deque
from typing import Any, Deque, Iterator, List, Optional, Sequence, Tuple

from tokenfeed.fetcher.clock import Clock, MonotonicClock
from tokenfeed.fetcher.errors import (
    AllProvidersFailedError,
    NoProvidersConfiguredError,
    ProviderNotAvailableError,
)
from tokenfeed.fetcher.provider import Provider
from tokenfeed.models.data_models import ErrorRecord, PriceRequest, ProviderStatus


class ErrorRingBuffer:
    """Fixed-capacity error log that overwrites the oldest entry when full."""

    def __init__(self, capacity: int = 50):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got: {capacity}")
        self.capacity = capacity
        self._records: Deque[ErrorRecord] = deque(maxlen=capacity)

    def append(self, record: ErrorRecord) -> None:
        self._records.append(record)

    def purge_older_than(self, cutoff: float) -> int:
        """Drop records with ``timestamp <= cutoff``; returns how many were dropped."""
        purged = 0
        # Records are appended in time order, so stale ones sit at the left.
        while self._records and self._records[0].timestamp <= cutoff:
            self._records.popleft()
            purged += 1
        return purged

    def since(self, cutoff: float) -> List[ErrorRecord]:
        return [record for record in self._records if record.timestamp > cutoff]

    def clear(self) -> None:
        self._records.clear()

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[ErrorRecord]:
        return iter(self._records)


class FallbackOrchestrator:
    """
    Tries an ordered list of providers until one succeeds.

    Order encodes preference (fastest/cheapest/most trusted first).
    Providers are attempted strictly one after another, never in parallel.
    Every failure (unavailable, provider error, timeout, open circuit) is
    recorded and the next provider is tried; no distinction is made
    between transient and permanent errors. Callers only ever see
    ``NoProvidersConfiguredError`` or ``AllProvidersFailedError``.
    """

    def __init__(
        self,
        providers: Sequence[Provider],
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
        max_errors: int = 50,
        retention_seconds: float = 3600.0,
        recent_seconds: float = 300.0,
        kind: str = "",
    ):
        """
        Initialize orchestrator.

        Args:
            providers: Gated providers in preference order
            clock: Clock used to timestamp and age error records
            logger: Optional structured logger for telemetry
            max_errors: Capacity of the error ring buffer
            retention_seconds: Errors older than this are purged on the next fetch
            recent_seconds: Errors newer than this are surfaced in reports
            kind: Label used in error messages ("price", "metadata", ...)
        """
        self._providers: Tuple[Provider, ...] = tuple(providers)
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self.retention_seconds = retention_seconds
        self.recent_seconds = recent_seconds
        self.kind = kind
        self._errors = ErrorRingBuffer(max_errors)

    @property
    def providers(self) -> Tuple[Provider, ...]:
        return self._providers

    async def fetch(self, request: PriceRequest) -> Any:
        """
        Fetch ``request`` from the first provider that succeeds.

        Args:
            request: The logical request

        Returns:
            The first successful provider result

        Raises:
            NoProvidersConfiguredError: If there are no providers
            AllProvidersFailedError: If every provider failed
        """
        self._errors.purge_older_than(self.clock.now() - self.retention_seconds)

        if not self._providers:
            raise NoProvidersConfiguredError(self.kind)

        key = request.cache_key
        for attempt, provider in enumerate(self._providers):
            name = provider.name
            try:
                if not await provider.is_available():
                    if self.logger:
                        self.logger.provider_unavailable(source=name, key=key)
                    self._record_error(name, ProviderNotAvailableError(name))
                    continue

                if self.logger:
                    self.logger.fetch_start(source=name, key=key)
                started = self.clock.now()
                result = await provider.fetch(request)
                if self.logger:
                    self.logger.fetch_success(
                        source=name, key=key, elapsed_ms=(self.clock.now() - started) * 1000
                    )
                return result
            except Exception as e:
                if self.logger:
                    self.logger.fetch_error(source=name, key=key, error=str(e) or type(e).__name__, attempt=attempt)
                self._record_error(name, e)

        error = AllProvidersFailedError(self.get_recent_errors(), kind=self.kind)
        if self.logger:
            self.logger.all_providers_failed(key=key, providers=len(self._providers), error=str(error))
        raise error

    def get_recent_errors(self) -> List[ErrorRecord]:
        """Errors recorded within the recent window, oldest first."""
        return self._errors.since(self.clock.now() - self.recent_seconds)

    def get_provider_status(self) -> List[ProviderStatus]:
        """A provider counts as unavailable if it produced a recent error."""
        failing = {record.provider for record in self.get_recent_errors()}
        return [
            ProviderStatus(provider=provider.name, available=provider.name not in failing)
            for provider in self._providers
        ]

    def clear_errors(self) -> None:
        self._errors.clear()

    def _record_error(self, provider: str, error: Exception) -> None:
        self._errors.append(ErrorRecord(provider=provider, error=error, timestamp=self.clock.now()))

"""Circuit breaker gate with a rolling error-rate window and explicit state management."""

import asyncio
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional, Tuple

from tokenfeed.fetcher.clock import Clock, MonotonicClock
from tokenfeed.fetcher.errors import CircuitOpenError, ProviderError, ProviderTimeoutError
from tokenfeed.models.config import CircuitBreakerConfig
from tokenfeed.models.data_models import CircuitState, CircuitStats, PriceRequest


class CircuitBreaker:
    """
    Circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Failure isolation for a single dependency:
    - Every call runs under a per-call timeout; a timeout counts as a failure
    - Outcomes are recorded in a bucketed rolling window
    - Opens once the window holds at least ``volume_threshold`` calls and
      the error percentage reaches ``error_threshold_percentage``
    - While open, calls are rejected without invoking the dependency
    - After ``reset_timeout_ms`` the next call is let through as a probe;
      success closes the circuit, failure opens it again

    The OPEN -> HALF_OPEN transition is evaluated lazily from the clock on
    each access, so no timer is needed.
    """

    def __init__(
        self,
        name: str,
        timeout_ms: float = 8000,
        error_threshold_percentage: float = 50,
        reset_timeout_ms: float = 15000,
        volume_threshold: int = 5,
        rolling_count_timeout_ms: float = 10000,
        rolling_count_buckets: int = 10,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Identity of the protected dependency (used in errors and logs)
            timeout_ms: Per-call timeout in milliseconds
            error_threshold_percentage: Error rate (0-100) at which the circuit opens
            reset_timeout_ms: Time to stay open before allowing a probe
            volume_threshold: Minimum calls in the window before the circuit may open
            rolling_count_timeout_ms: Length of the rolling statistics window
            rolling_count_buckets: Number of buckets the window is split into
            clock: Clock interface for time management (defaults to MonotonicClock)
            logger: Optional structured logger for state changes
        """
        self.name = name
        self.timeout_ms = timeout_ms
        self.error_threshold_percentage = error_threshold_percentage
        self.reset_timeout_ms = reset_timeout_ms
        self.volume_threshold = volume_threshold
        self.rolling_count_timeout_ms = rolling_count_timeout_ms
        self.rolling_count_buckets = rolling_count_buckets
        self.clock = clock or MonotonicClock()
        self.logger = logger

        self._state = CircuitState.CLOSED
        self._opened_at = 0.0
        self._probe_in_flight = False
        self._enabled = True
        self._shutdown = False
        self._buckets: Deque[Tuple[float, CircuitStats]] = deque()

    @classmethod
    def from_config(
        cls,
        name: str,
        config: CircuitBreakerConfig,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ) -> "CircuitBreaker":
        return cls(
            name=name,
            timeout_ms=config.timeout_ms,
            error_threshold_percentage=config.error_threshold_percentage,
            reset_timeout_ms=config.reset_timeout_ms,
            volume_threshold=config.volume_threshold,
            rolling_count_timeout_ms=config.rolling_count_timeout_ms,
            rolling_count_buckets=config.rolling_count_buckets,
            clock=clock,
            logger=logger,
        )

    @property
    def state(self) -> CircuitState:
        """Current state, with the lazy OPEN -> HALF_OPEN transition applied."""
        if self._state == CircuitState.OPEN:
            elapsed_ms = (self.clock.now() - self._opened_at) * 1000
            if elapsed_ms >= self.reset_timeout_ms:
                self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def opened(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def half_open(self) -> bool:
        return self.state == CircuitState.HALF_OPEN

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def stats(self) -> CircuitStats:
        """Counters summed over the live part of the rolling window."""
        self._expire_buckets()
        total = CircuitStats()
        for _, bucket in self._buckets:
            total.add(bucket)
        return total

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Run ``func`` under the circuit's policy.

        Args:
            func: Coroutine function to invoke
            *args: Positional arguments for func
            **kwargs: Keyword arguments for func

        Returns:
            Whatever func returns

        Raises:
            CircuitOpenError: If the circuit is open (func is not invoked)
            ProviderTimeoutError: If func exceeds the per-call timeout
            Exception: Whatever func raises
        """
        if self._shutdown:
            raise ProviderError(f"Circuit breaker for {self.name} has been shut down", provider=self.name)

        if not self._enabled:
            return await func(*args, **kwargs)

        bucket = self._current_bucket()
        bucket.fires += 1

        is_probe = False
        state = self.state
        if state == CircuitState.OPEN or (state == CircuitState.HALF_OPEN and self._probe_in_flight):
            bucket.rejects += 1
            bucket.fallbacks += 1
            raise CircuitOpenError(f"Circuit breaker OPEN for {self.name}", provider=self.name)
        if state == CircuitState.HALF_OPEN:
            is_probe = True
            self._probe_in_flight = True

        started = self.clock.now()
        try:
            result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            self._record("timeouts", started)
            self._on_failure(is_probe)
            raise ProviderTimeoutError(self.name, self.timeout_ms) from None
        except Exception:
            self._record("failures", started)
            self._on_failure(is_probe)
            raise
        else:
            self._record("successes", started)
            self._on_success(is_probe)
            return result
        finally:
            if is_probe:
                self._probe_in_flight = False

    def get_state(self) -> Dict[str, Any]:
        state = self.state
        return {
            "closed": state == CircuitState.CLOSED,
            "opened": state == CircuitState.OPEN,
            "half_open": state == CircuitState.HALF_OPEN,
            "name": self.name,
            "stats": self.stats.to_dict(),
        }

    def enable(self) -> None:
        """Restore normal arbitration."""
        self._enabled = True

    def disable(self) -> None:
        """Always invoke the dependency, regardless of state (maintenance/testing)."""
        self._enabled = False

    def shutdown(self) -> None:
        """Stop the breaker; every later call fails immediately."""
        self._shutdown = True
        self._enabled = False
        self._buckets.clear()

    def reset(self) -> None:
        """Close the circuit and clear statistics (useful for testing)."""
        self._buckets.clear()
        self._probe_in_flight = False
        self._transition(CircuitState.CLOSED)

    def _on_success(self, is_probe: bool) -> None:
        # Only the probe may close the circuit. A slow call that started while
        # CLOSED and finishes after the circuit opened leaves it open.
        if is_probe and self._state == CircuitState.HALF_OPEN:
            self._buckets.clear()
            self._transition(CircuitState.CLOSED)

    def _on_failure(self, is_probe: bool) -> None:
        if is_probe:
            self._open()
            return

        if self._state != CircuitState.CLOSED:
            return

        stats = self.stats
        if stats.volume >= self.volume_threshold and stats.error_percentage >= self.error_threshold_percentage:
            self._open()

    def _open(self) -> None:
        self._opened_at = self.clock.now()
        self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        self._state = new_state
        if self.logger:
            self.logger.circuit_breaker_state(source=self.name, state=new_state.value)

    def _record(self, outcome: str, started: float) -> None:
        bucket = self._current_bucket()
        setattr(bucket, outcome, getattr(bucket, outcome) + 1)
        bucket.latency_total_ms += (self.clock.now() - started) * 1000

    @property
    def _bucket_width(self) -> float:
        return self.rolling_count_timeout_ms / 1000.0 / self.rolling_count_buckets

    def _expire_buckets(self) -> None:
        horizon = self.clock.now() - self.rolling_count_timeout_ms / 1000.0
        while self._buckets and self._buckets[0][0] + self._bucket_width <= horizon:
            self._buckets.popleft()

    def _current_bucket(self) -> CircuitStats:
        self._expire_buckets()
        now = self.clock.now()
        if self._buckets and now < self._buckets[-1][0] + self._bucket_width:
            return self._buckets[-1][1]

        width = self._bucket_width
        start = now - (now % width)
        bucket = CircuitStats()
        self._buckets.append((start, bucket))
        return bucket


class CircuitBreakerProvider:
    """Gate that isolates failures of one provider behind a circuit breaker.

    When the circuit is open the wrapped provider is never invoked; the
    caller gets a ``CircuitOpenError`` naming the provider and the request.
    """

    def __init__(
        self,
        provider,
        config: Optional[CircuitBreakerConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        clock: Optional[Clock] = None,
        logger: Optional['StructuredLogger'] = None,
    ):
        if breaker is None:
            breaker = CircuitBreaker.from_config(
                provider.name, config or CircuitBreakerConfig(), clock=clock, logger=logger
            )
        self.inner = provider
        self.breaker = breaker

    @property
    def name(self) -> str:
        return self.inner.name

    async def is_available(self) -> bool:
        return await self.inner.is_available()

    async def fetch(self, request: PriceRequest) -> Any:
        try:
            return await self.breaker.call(self.inner.fetch, request)
        except CircuitOpenError:
            raise CircuitOpenError(
                f"Circuit breaker OPEN for {self.name}: {request.describe()}", provider=self.name
            ) from None

    def get_state(self) -> Dict[str, Any]:
        return self.breaker.get_state()

    def get_stats(self) -> Dict[str, Any]:
        return self.breaker.stats.to_dict()

    def enable(self) -> None:
        self.breaker.enable()

    def disable(self) -> None:
        self.breaker.disable()

    def shutdown(self) -> None:
        self.breaker.shutdown()

"""Provider gates: rate limiting and circuit breaking."""

from .circuit_breaker import CircuitBreaker, CircuitBreakerProvider
from .clock import Clock, MonotonicClock
from .rate_limiter import RateLimitedProvider, RateLimiter

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerProvider",
    "Clock",
    "MonotonicClock",
    "RateLimitedProvider",
    "RateLimiter",
]

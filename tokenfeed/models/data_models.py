"""Core data models for the token data feed."""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar


NATIVE_TOKEN_ADDRESS = "0x0000000000000000000000000000000000000000"

# chain id -> canonical chain slug
SUPPORTED_CHAINS: Dict[int, str] = {
    1: "ethereum",
    42161: "arbitrum",
    137: "polygon",
    10: "optimism",
    8453: "base",
}


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def make_cache_key(token_address: str, chain_id: int) -> str:
    """Build the normalized request fingerprint used as cache key.

    Addresses are compared case-insensitively and surrounding whitespace
    is ignored, so ``" 0xABC "`` and ``"0xabc"`` map to the same key.
    """
    return f"{token_address.strip().lower()}-{int(chain_id)}"


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class PriceRequest:
    """A logical request for data about one token on one chain.

    Used for both price and metadata lookups.
    """
    token_address: str
    chain_id: int

    @property
    def cache_key(self) -> str:
        return make_cache_key(self.token_address, self.chain_id)

    def normalized(self) -> "PriceRequest":
        return replace(self, token_address=self.token_address.strip(), chain_id=int(self.chain_id))

    def describe(self) -> str:
        return f"token {self.token_address} on chain {self.chain_id}"


@dataclass(frozen=True)
class TokenPrice:
    """Spot price for a token as reported by one provider."""
    token_address: str
    chain_id: int
    price: float
    source: str
    timestamp: datetime = field(default_factory=utc_now)
    price_change_24h: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass(frozen=True)
class TokenMetadata:
    """Descriptive token data (name, symbol, decimals, ...)."""
    address: str
    chain_id: int
    name: str
    symbol: str
    decimals: int
    source: str
    timestamp: datetime = field(default_factory=utc_now)
    logo_url: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data


@dataclass
class ErrorRecord:
    """A single provider failure as seen by the fallback orchestrator."""
    provider: str
    error: Exception
    timestamp: float  # clock seconds

    @property
    def message(self) -> str:
        return str(self.error) or type(self.error).__name__

    def describe(self) -> str:
        return f"{self.provider}: {self.message}"


T = TypeVar("T")


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its absolute expiry time."""
    data: T
    timestamp: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


@dataclass
class CircuitStats:
    """Rolling counters for one circuit breaker."""
    fires: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    rejects: int = 0
    fallbacks: int = 0
    latency_total_ms: float = 0.0

    @property
    def volume(self) -> int:
        """Completed calls (rejected calls are not part of the volume)."""
        return self.successes + self.failures + self.timeouts

    @property
    def error_percentage(self) -> float:
        if self.volume == 0:
            return 0.0
        return (self.failures + self.timeouts) * 100.0 / self.volume

    @property
    def latency_mean_ms(self) -> float:
        if self.volume == 0:
            return 0.0
        return self.latency_total_ms / self.volume

    def add(self, other: "CircuitStats") -> None:
        self.fires += other.fires
        self.successes += other.successes
        self.failures += other.failures
        self.timeouts += other.timeouts
        self.rejects += other.rejects
        self.fallbacks += other.fallbacks
        self.latency_total_ms += other.latency_total_ms

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fires": self.fires,
            "successes": self.successes,
            "failures": self.failures,
            "timeouts": self.timeouts,
            "rejects": self.rejects,
            "fallbacks": self.fallbacks,
            "error_percentage": round(self.error_percentage, 2),
            "latency_mean_ms": round(self.latency_mean_ms, 2),
        }


@dataclass
class ProviderStatus:
    """Availability of one provider based on its recent errors."""
    provider: str
    available: bool

"""Configuration management for the token data feed."""

import os
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class RateLimiterConfig(BaseModel):
    """Admission budget for one provider."""
    points: int = Field(default=5, description="Requests allowed per window")
    duration_seconds: float = Field(default=1.0, description="Window length in seconds")
    exec_evenly: bool = Field(default=False, description="Spread grants evenly across the window")
    exec_evenly_min_delay_ms: int = Field(default=0, description="Minimum delay between grants when exec_evenly is set")

    @field_validator('points')
    @classmethod
    def validate_points(cls, v: int) -> int:
        """Validate points is positive."""
        if v <= 0:
            raise ValueError(f"points must be positive, got: {v}")
        return v

    @field_validator('duration_seconds')
    @classmethod
    def validate_duration(cls, v: float) -> float:
        """Validate duration is positive."""
        if v <= 0:
            raise ValueError(f"duration_seconds must be positive, got: {v}")
        return v

    @field_validator('exec_evenly_min_delay_ms')
    @classmethod
    def validate_min_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"exec_evenly_min_delay_ms must not be negative, got: {v}")
        return v


class CircuitBreakerConfig(BaseModel):
    """Failure isolation policy for one provider."""
    timeout_ms: int = Field(default=8000, description="Per-call timeout in milliseconds")
    error_threshold_percentage: float = Field(default=50, description="Error rate (0-100) that opens the circuit")
    reset_timeout_ms: int = Field(default=15000, description="Time the circuit stays open before a probe")
    volume_threshold: int = Field(default=5, description="Minimum calls in the window before the circuit may open")
    rolling_count_timeout_ms: int = Field(default=10000, description="Length of the rolling statistics window")
    rolling_count_buckets: int = Field(default=10, description="Number of buckets in the rolling window")

    @field_validator('error_threshold_percentage')
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        """Validate threshold is a percentage."""
        if not 0 <= v <= 100:
            raise ValueError(f"error_threshold_percentage must be between 0 and 100, got: {v}")
        return v

    @field_validator('timeout_ms', 'reset_timeout_ms', 'rolling_count_timeout_ms', 'rolling_count_buckets')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v

    @field_validator('volume_threshold')
    @classmethod
    def validate_volume(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"volume_threshold must not be negative, got: {v}")
        return v

    @model_validator(mode='after')
    def validate_buckets(self) -> "CircuitBreakerConfig":
        """The rolling window must split evenly into buckets."""
        if self.rolling_count_timeout_ms % self.rolling_count_buckets != 0:
            raise ValueError(
                "rolling_count_timeout_ms must be divisible by rolling_count_buckets, "
                f"got: {self.rolling_count_timeout_ms} / {self.rolling_count_buckets}"
            )
        return self


class CacheConfig(BaseModel):
    """Read-through cache settings."""
    enabled: bool = Field(default=True, description="Put a cache in front of the pipeline")
    ttl_ms: int = Field(default=60000, description="Entry lifetime in milliseconds")
    max_size: int = Field(default=1000, description="Maximum number of cached entries")
    cleanup_interval_ms: int = Field(default=60000, description="Background sweep interval")

    @field_validator('ttl_ms', 'max_size', 'cleanup_interval_ms')
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"value must be positive, got: {v}")
        return v


class ProviderConfig(BaseModel):
    """Configuration for a single upstream provider."""
    name: str = Field(description="Provider identifier")
    base_url: str = Field(description="Base URL of the provider API")
    api_key: Optional[str] = Field(default=None, description="API key, if the provider needs one")
    enabled: bool = Field(default=True, description="Include the provider in the fallback chain")
    rate_limiter: RateLimiterConfig = Field(default_factory=RateLimiterConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    @field_validator('base_url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError(f"URL must start with http:// or https://, got: {v}")
        return v.rstrip('/')


# Defaults tuned per provider: fast HTTP APIs fail fast, rate-limited free
# tiers get conservative budgets and longer recovery.
DEFAULT_PRICE_PROVIDERS: List[ProviderConfig] = [
    ProviderConfig(
        name="DeFiLlama",
        base_url="https://coins.llama.fi",
        rate_limiter=RateLimiterConfig(points=100, duration_seconds=60, exec_evenly=True, exec_evenly_min_delay_ms=600),
        circuit_breaker=CircuitBreakerConfig(timeout_ms=3000, error_threshold_percentage=50, reset_timeout_ms=10000, volume_threshold=5),
    ),
    ProviderConfig(
        name="CoinGecko",
        base_url="https://api.coingecko.com/api/v3",
        rate_limiter=RateLimiterConfig(points=10, duration_seconds=60, exec_evenly=True, exec_evenly_min_delay_ms=6000),
        circuit_breaker=CircuitBreakerConfig(timeout_ms=8000, error_threshold_percentage=50, reset_timeout_ms=20000, volume_threshold=5),
    ),
    ProviderConfig(
        name="Moralis",
        base_url="https://deep-index.moralis.io/api/v2.2",
        rate_limiter=RateLimiterConfig(points=100, duration_seconds=60, exec_evenly=True, exec_evenly_min_delay_ms=600),
        circuit_breaker=CircuitBreakerConfig(timeout_ms=10000, error_threshold_percentage=50, reset_timeout_ms=15000, volume_threshold=5),
    ),
]

DEFAULT_METADATA_PROVIDERS: List[ProviderConfig] = [
    ProviderConfig(
        name="TrustWallet",
        base_url="https://raw.githubusercontent.com/trustwallet/assets/master",
        rate_limiter=RateLimiterConfig(points=60, duration_seconds=60),
        circuit_breaker=CircuitBreakerConfig(timeout_ms=10000, error_threshold_percentage=50, reset_timeout_ms=15000, volume_threshold=5),
    ),
    ProviderConfig(
        name="CoinGecko",
        base_url="https://api.coingecko.com/api/v3",
        rate_limiter=RateLimiterConfig(points=10, duration_seconds=60, exec_evenly=True, exec_evenly_min_delay_ms=6000),
        circuit_breaker=CircuitBreakerConfig(timeout_ms=8000, error_threshold_percentage=50, reset_timeout_ms=20000, volume_threshold=5),
    ),
    ProviderConfig(
        name="Moralis",
        base_url="https://deep-index.moralis.io/api/v2.2",
        rate_limiter=RateLimiterConfig(points=100, duration_seconds=60),
        circuit_breaker=CircuitBreakerConfig(timeout_ms=15000, error_threshold_percentage=50, reset_timeout_ms=15000, volume_threshold=5),
    ),
]


class FeedConfig(BaseModel):
    """Main feed configuration."""

    price_providers: List[ProviderConfig] = Field(
        default_factory=lambda: [p.model_copy(deep=True) for p in DEFAULT_PRICE_PROVIDERS],
        description="Price providers in fallback order",
    )
    metadata_providers: List[ProviderConfig] = Field(
        default_factory=lambda: [p.model_copy(deep=True) for p in DEFAULT_METADATA_PROVIDERS],
        description="Metadata providers in fallback order",
    )

    price_cache: CacheConfig = Field(default_factory=lambda: CacheConfig(ttl_ms=60000))
    metadata_cache: CacheConfig = Field(default_factory=lambda: CacheConfig(ttl_ms=24 * 60 * 60 * 1000))

    # HTTP timeouts
    connect_timeout: float = Field(default=3.0, description="HTTP connect timeout in seconds")
    read_timeout: float = Field(default=8.0, description="HTTP read timeout in seconds")

    # Fallback error bookkeeping
    max_errors: int = Field(default=50, description="Capacity of the per-orchestrator error ring buffer")
    error_retention_seconds: float = Field(default=3600.0, description="Errors older than this are purged")
    recent_error_seconds: float = Field(default=300.0, description="Errors newer than this are reported")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level: {v}")
        return v

    @field_validator('max_errors')
    @classmethod
    def validate_max_errors(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"max_errors must be positive, got: {v}")
        return v

    def provider(self, name: str) -> Optional[ProviderConfig]:
        """Find a price or metadata provider config by (case-insensitive) name."""
        for provider in [*self.price_providers, *self.metadata_providers]:
            if provider.name.lower() == name.lower():
                return provider
        return None

    # Environment variable overrides
    @classmethod
    def from_env(cls) -> "FeedConfig":
        """Create configuration with environment variable overrides."""
        config = cls()

        env_mappings = {
            "TOKENFEED_LOG_LEVEL": "log_level",
            "TOKENFEED_CONNECT_TIMEOUT": "connect_timeout",
            "TOKENFEED_READ_TIMEOUT": "read_timeout",
            "TOKENFEED_MAX_ERRORS": "max_errors",
        }

        for env_var, field_name in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]
                field_info = cls.model_fields[field_name]
                if field_info.annotation == int:
                    setattr(config, field_name, int(value))
                elif field_info.annotation == float:
                    setattr(config, field_name, float(value))
                else:
                    setattr(config, field_name, value)

        if "TOKENFEED_PRICE_CACHE_TTL_MS" in os.environ:
            config.price_cache.ttl_ms = int(os.environ["TOKENFEED_PRICE_CACHE_TTL_MS"])

        # API keys are never written to config files
        for provider in [*config.price_providers, *config.metadata_providers]:
            env_key = f"{provider.name.upper()}_API_KEY"
            if os.environ.get(env_key):
                provider.api_key = os.environ[env_key]

        return config


class ConfigManager:
    """Manages configuration loading with override precedence."""

    def __init__(self, config_file: Optional[Path] = None):
        self.config_file = config_file or Path("config/config.yaml")
        self._config: Optional[FeedConfig] = None

    def load_config(self, cli_overrides: Optional[Dict] = None) -> FeedConfig:
        """
        Load configuration with override precedence: CLI > ENV > YAML.

        Args:
            cli_overrides: Optional dictionary of CLI flag overrides

        Returns:
            Fully merged FeedConfig instance

        Raises:
            ValueError: If configuration validation fails
        """
        config_dict = {}

        if self.config_file.exists():
            with open(self.config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
                if yaml_config:
                    config_dict.update(yaml_config)

        base_config = FeedConfig(**config_dict)

        env_config = FeedConfig.from_env()

        merged_dict = base_config.model_dump()
        env_dict = env_config.model_dump()

        # Only override with env values that differ from defaults
        default_dict = FeedConfig().model_dump()
        for key, value in env_dict.items():
            if key in ("price_providers", "metadata_providers"):
                continue
            if value != default_dict[key]:
                merged_dict[key] = value

        # API keys from the environment win over the file
        env_keys = {
            p.name.lower(): p.api_key
            for p in [*env_config.price_providers, *env_config.metadata_providers]
            if p.api_key
        }
        for section in ("price_providers", "metadata_providers"):
            for provider in merged_dict[section]:
                if provider["name"].lower() in env_keys:
                    provider["api_key"] = env_keys[provider["name"].lower()]

        if cli_overrides:
            cli_overrides = {k: v for k, v in cli_overrides.items() if v is not None}
            merged_dict.update(cli_overrides)

        self._config = FeedConfig(**merged_dict)
        return self._config

    @property
    def config(self) -> FeedConfig:
        """Get the loaded configuration."""
        if self._config is None:
            self._config = self.load_config()
        return self._config

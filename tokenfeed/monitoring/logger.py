"""Structured logging for feed monitoring."""

import json
import logging
from typing import Optional


class StructuredLogger:
    """Structured logger with uniform schema."""

    def __init__(self, name: str = "tokenfeed", level: str = "INFO"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))

        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter('%(message)s'))
            self.logger.addHandler(handler)

    def log(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        """
        Log structured event.

        Standard keys: event, source, key, attempt, elapsed_ms, error,
                      cb_state, waited_ms, providers
        """
        log_data = {"event": event, **kwargs}
        self.logger.log(level, json.dumps(log_data, default=str))

    def fetch_start(self, source: str, key: str) -> None:
        self.log("fetch_start", level=logging.DEBUG, source=source, key=key)

    def fetch_success(self, source: str, key: str, elapsed_ms: float) -> None:
        self.log("fetch_success", source=source, key=key, elapsed_ms=round(elapsed_ms, 2))

    def fetch_error(self, source: str, key: str, error: str, attempt: int) -> None:
        self.log("fetch_error", level=logging.WARNING, source=source, key=key, error=error, attempt=attempt)

    def provider_unavailable(self, source: str, key: str) -> None:
        self.log("provider_unavailable", level=logging.WARNING, source=source, key=key)

    def all_providers_failed(self, key: str, providers: int, error: str) -> None:
        self.log("all_providers_failed", level=logging.ERROR, key=key, providers=providers, error=error)

    def circuit_breaker_state(self, source: str, state: str) -> None:
        self.log("circuit_breaker", level=logging.WARNING, source=source, cb_state=state)

    def rate_limited(self, source: str, waited_ms: float) -> None:
        self.log("rate_limited", level=logging.DEBUG, source=source, waited_ms=round(waited_ms, 2))

    def cache_hit(self, key: str) -> None:
        self.log("cache_hit", level=logging.DEBUG, key=key)

    def cache_miss(self, key: str, inflight: Optional[bool] = None) -> None:
        self.log("cache_miss", level=logging.DEBUG, key=key, inflight=inflight)

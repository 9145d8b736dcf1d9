"""Error types raised by providers, gates and the fallback orchestrator."""

from typing import List, Optional, Sequence

from tokenfeed.models.data_models import ErrorRecord


class ProviderError(Exception):
    """Base class for everything the feed raises.

    Concrete providers may raise it (or any other ``Exception``) for
    upstream problems; the orchestrator treats all of them the same way.
    """

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


class ProviderNotAvailableError(ProviderError):
    """Provider reported itself unusable before any call was made."""

    def __init__(self, provider: str):
        super().__init__(f"Provider {provider} is not available", provider=provider)


class ProviderTimeoutError(ProviderError):
    """Per-call deadline exceeded."""

    def __init__(self, provider: str, timeout_ms: float):
        super().__init__(f"Provider {provider} timed out after {timeout_ms:g}ms", provider=provider)
        self.timeout_ms = timeout_ms


class CircuitOpenError(ProviderError):
    """Call rejected without invoking the provider because its circuit is open."""


class NoProvidersConfiguredError(ProviderError):
    """Orchestrator was built with an empty provider list."""

    def __init__(self, kind: str = ""):
        label = f"{kind} providers" if kind else "providers"
        super().__init__(f"No {label} configured")


class AllProvidersFailedError(ProviderError):
    """Every provider in the fallback chain failed.

    The message lists ``"<provider>: <message>"`` for each recent error,
    joined by ``"; "``.
    """

    def __init__(self, errors: Sequence[ErrorRecord], kind: str = ""):
        self.errors: List[ErrorRecord] = list(errors)
        label = f"{kind} providers" if kind else "providers"
        joined = "; ".join(record.describe() for record in self.errors)
        super().__init__(f"All {label} failed. Errors: {joined}")

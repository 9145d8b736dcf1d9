"""Shared plumbing for HTTP-backed providers."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Mapping, Optional

import httpx

from tokenfeed.fetcher.errors import ProviderError
from tokenfeed.fetcher.http_client import AsyncHTTPClient
from tokenfeed.models.config import ProviderConfig
from tokenfeed.models.data_models import SUPPORTED_CHAINS, PriceRequest


class HTTPProvider(ABC):
    """
    Base class for providers that talk to a JSON HTTP API.

    Subclasses set ``chain_ids`` (chain id -> provider-specific chain slug)
    and implement ``fetch``. HTTP failures are turned into ``ProviderError``
    with a readable message; the fallback orchestrator treats them like any
    other error.
    """

    chain_ids: Mapping[int, str] = SUPPORTED_CHAINS

    def __init__(self, config: ProviderConfig, http_client: AsyncHTTPClient):
        self.config = config
        self.http_client = http_client

    @property
    def name(self) -> str:
        return self.config.name

    async def is_available(self) -> bool:
        return self.config.enabled

    @abstractmethod
    async def fetch(self, request: PriceRequest) -> Any:
        """Fetch the price or metadata for one request."""

    def chain_slug(self, chain_id: int) -> str:
        slug = self.chain_ids.get(chain_id)
        if slug is None:
            raise ProviderError(f"Chain ID {chain_id} not supported by {self.name}", provider=self.name)
        return slug

    async def get_json(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        subject: str = "",
    ) -> Any:
        """
        GET ``base_url + path`` and decode the JSON response.

        Args:
            path: Path relative to the provider's base URL
            params: Query parameters
            headers: Extra request headers
            subject: What is being looked up, for 404 messages

        Raises:
            ProviderError: On rate limiting, missing data or any other HTTP error
        """
        url = f"{self.config.base_url}{path}"
        try:
            return await self.http_client.get_json(url, params=params, headers=headers)
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429:
                raise ProviderError(f"{self.name} rate limit exceeded", provider=self.name) from e
            if status == 404:
                raise ProviderError(f"{subject or 'Resource'} not found on {self.name}", provider=self.name) from e
            raise ProviderError(f"{self.name} returned HTTP {status}", provider=self.name) from e
        except httpx.TimeoutException as e:
            raise ProviderError(f"{self.name} request timed out", provider=self.name) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}", provider=self.name) from e
        except ValueError as e:
            raise ProviderError(f"{self.name} returned invalid JSON", provider=self.name) from e

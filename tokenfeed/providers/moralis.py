"""Moralis ERC-20 price and metadata providers (require an API key)."""

from tokenfeed.fetcher.errors import ProviderError
from tokenfeed.models.data_models import PriceRequest, TokenMetadata, TokenPrice
from tokenfeed.providers.base import HTTPProvider


class MoralisPriceProvider(HTTPProvider):
    """Prices from ``/erc20/{address}/price?chain=0x..``.

    Reports itself unavailable when no API key is configured, so the
    fallback chain skips it without making a request.
    """

    async def is_available(self) -> bool:
        return self.config.enabled and bool(self.config.api_key)

    async def fetch(self, request: PriceRequest) -> TokenPrice:
        if not self.config.api_key:
            raise ProviderError("Moralis API key not configured", provider=self.name)
        self.chain_slug(request.chain_id)

        data = await self.get_json(
            f"/erc20/{request.token_address}/price",
            params={"chain": hex(request.chain_id)},
            headers={"X-API-Key": self.config.api_key},
            subject=f"Token {request.token_address}",
        )

        usd_price = data.get("usdPrice") if isinstance(data, dict) else None
        if not usd_price or not isinstance(usd_price, (int, float)):
            raise ProviderError(f"Price not found for {request.describe()}", provider=self.name)

        change = data.get("24hrPercentChange")
        return TokenPrice(
            token_address=request.token_address,
            chain_id=request.chain_id,
            price=float(usd_price),
            source=self.name,
            price_change_24h=float(change) if change not in (None, "") else None,
        )


class MoralisMetadataProvider(HTTPProvider):
    """Metadata from ``/erc20/metadata?chain=0x..&addresses=..``.

    Moralis answers with a list; tokens it flags as possible spam are rejected.
    """

    async def is_available(self) -> bool:
        return self.config.enabled and bool(self.config.api_key)

    async def fetch(self, request: PriceRequest) -> TokenMetadata:
        if not self.config.api_key:
            raise ProviderError("Moralis API key not configured", provider=self.name)
        self.chain_slug(request.chain_id)

        data = await self.get_json(
            "/erc20/metadata",
            params={"chain": hex(request.chain_id), "addresses": [request.token_address]},
            headers={"X-API-Key": self.config.api_key},
            subject=f"Token {request.token_address}",
        )

        token = data[0] if isinstance(data, list) and data else data
        if not isinstance(token, dict) or not token.get("name") or not token.get("symbol"):
            raise ProviderError(f"Token metadata not found for {request.describe()}", provider=self.name)
        if token.get("possible_spam"):
            raise ProviderError(f"Token marked as possible spam: {request.token_address}", provider=self.name)

        try:
            decimals = int(token.get("decimals"))
        except (TypeError, ValueError) as e:
            raise ProviderError(f"Invalid decimals for {request.describe()}", provider=self.name) from e

        return TokenMetadata(
            address=request.token_address,
            chain_id=request.chain_id,
            name=token["name"],
            symbol=token["symbol"].upper(),
            decimals=decimals,
            source=self.name,
            logo_url=token.get("logo") or token.get("thumbnail"),
        )

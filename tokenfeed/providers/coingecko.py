"""CoinGecko price and metadata providers."""

from tokenfeed.fetcher.errors import ProviderError
from tokenfeed.models.data_models import PriceRequest, TokenMetadata, TokenPrice
from tokenfeed.providers.base import HTTPProvider

COINGECKO_PLATFORMS = {
    1: "ethereum",
    42161: "arbitrum-one",
    137: "polygon-pos",
    10: "optimistic-ethereum",
    8453: "base",
}


class _CoinGeckoProvider(HTTPProvider):
    chain_ids = COINGECKO_PLATFORMS

    def _headers(self):
        if self.config.api_key:
            return {"x-cg-demo-api-key": self.config.api_key}
        return None


class CoinGeckoPriceProvider(_CoinGeckoProvider):
    """Prices from ``/simple/token_price/{platform}``."""

    async def fetch(self, request: PriceRequest) -> TokenPrice:
        platform = self.chain_slug(request.chain_id)

        data = await self.get_json(
            f"/simple/token_price/{platform}",
            params={
                "contract_addresses": request.token_address,
                "vs_currencies": "usd",
                "include_24hr_change": "true",
            },
            headers=self._headers(),
            subject=f"Token {request.token_address}",
        )

        token = data.get(request.token_address.lower()) if isinstance(data, dict) else None
        if not token or not isinstance(token.get("usd"), (int, float)):
            raise ProviderError(f"Price not found for {request.describe()}", provider=self.name)

        return TokenPrice(
            token_address=request.token_address,
            chain_id=request.chain_id,
            price=float(token["usd"]),
            source=self.name,
            price_change_24h=token.get("usd_24h_change"),
        )


class CoinGeckoMetadataProvider(_CoinGeckoProvider):
    """Metadata from ``/coins/{platform}/contract/{address}``."""

    async def fetch(self, request: PriceRequest) -> TokenMetadata:
        platform = self.chain_slug(request.chain_id)

        data = await self.get_json(
            f"/coins/{platform}/contract/{request.token_address.lower()}",
            headers=self._headers(),
            subject=f"Token {request.token_address}",
        )

        if not isinstance(data, dict) or not data.get("name") or not data.get("symbol"):
            raise ProviderError(
                f"Incomplete token metadata for {request.describe()}", provider=self.name
            )

        detail = (data.get("detail_platforms") or {}).get(platform) or {}
        description = (data.get("description") or {}).get("en") or None
        homepages = (data.get("links") or {}).get("homepage") or []
        image = data.get("image") or {}

        return TokenMetadata(
            address=request.token_address,
            chain_id=request.chain_id,
            name=data["name"],
            symbol=data["symbol"].upper(),
            decimals=detail.get("decimal_place") or 18,
            source=self.name,
            logo_url=image.get("large") or image.get("small"),
            description=description,
            website=next((url for url in homepages if url), None),
        )

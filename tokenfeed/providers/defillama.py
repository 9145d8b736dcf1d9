"""DeFiLlama coins API price provider."""

from datetime import datetime, timezone

from tokenfeed.fetcher.errors import ProviderError
from tokenfeed.models.data_models import PriceRequest, TokenPrice
from tokenfeed.providers.base import HTTPProvider

MAX_REASONABLE_PRICE = 1_000_000


class DeFiLlamaPriceProvider(HTTPProvider):
    """Prices from ``/prices/current/{chain}:{address}``. No API key needed."""

    async def fetch(self, request: PriceRequest) -> TokenPrice:
        chain = self.chain_slug(request.chain_id)
        coin_key = f"{chain}:{request.token_address}"

        data = await self.get_json(f"/prices/current/{coin_key}", subject=f"Token {request.token_address}")

        coins = data.get("coins", {}) if isinstance(data, dict) else {}
        # DeFiLlama echoes the key as sent, but be lenient about address case
        coin = coins.get(coin_key) or coins.get(coin_key.lower())
        if not coin or not isinstance(coin.get("price"), (int, float)):
            raise ProviderError(
                f"Price not found for {request.describe()}", provider=self.name
            )

        price = float(coin["price"])
        if price <= 0 or price > MAX_REASONABLE_PRICE:
            raise ProviderError(
                f"Invalid price {price} for token {request.token_address}", provider=self.name
            )

        timestamp = (
            datetime.fromtimestamp(coin["timestamp"], tz=timezone.utc)
            if coin.get("timestamp")
            else datetime.now(timezone.utc)
        )
        return TokenPrice(
            token_address=request.token_address,
            chain_id=request.chain_id,
            price=price,
            source=self.name,
            timestamp=timestamp,
        )

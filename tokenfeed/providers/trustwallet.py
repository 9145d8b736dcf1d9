"""Trust Wallet assets repository metadata provider."""

from eth_utils import to_checksum_address

from tokenfeed.fetcher.errors import ProviderError
from tokenfeed.models.data_models import NATIVE_TOKEN_ADDRESS, PriceRequest, TokenMetadata
from tokenfeed.providers.base import HTTPProvider

TRUSTWALLET_CHAINS = {
    1: "ethereum",
    42161: "arbitrum",
    137: "polygon",
    10: "optimism",
    8453: "base",
    56: "smartchain",
}

# chain id -> (name, symbol, logo chain, website)
NATIVE_TOKENS = {
    1: ("Ethereum", "ETH", "ethereum", "https://ethereum.org"),
    42161: ("Ethereum", "ETH", "ethereum", "https://ethereum.org"),
    10: ("Ethereum", "ETH", "ethereum", "https://ethereum.org"),
    8453: ("Ethereum", "ETH", "ethereum", "https://ethereum.org"),
    137: ("Polygon", "MATIC", "polygon", "https://polygon.technology"),
    56: ("BNB", "BNB", "smartchain", "https://www.bnbchain.org"),
}

REJECTED_STATUSES = ("spam", "abandoned")


class TrustWalletMetadataProvider(HTTPProvider):
    """Metadata from ``/blockchains/{chain}/assets/{checksum}/info.json``.

    Native tokens (the zero address) are answered without a request.
    """

    chain_ids = TRUSTWALLET_CHAINS

    async def fetch(self, request: PriceRequest) -> TokenMetadata:
        chain = self.chain_slug(request.chain_id)

        if request.token_address.strip().lower() == NATIVE_TOKEN_ADDRESS:
            return self._native_metadata(request)

        try:
            checksum = to_checksum_address(request.token_address.strip())
        except ValueError as e:
            raise ProviderError(f"Invalid token address {request.token_address}", provider=self.name) from e

        asset_path = f"/blockchains/{chain}/assets/{checksum}"
        data = await self.get_json(f"{asset_path}/info.json", subject=f"Token {request.token_address}")

        if not isinstance(data, dict) or not data.get("name") or not data.get("symbol"):
            raise ProviderError(
                f"Incomplete token metadata for {request.describe()}", provider=self.name
            )
        if data.get("status") in REJECTED_STATUSES:
            raise ProviderError(
                f"Token marked as {data['status']}: {request.token_address}", provider=self.name
            )

        return TokenMetadata(
            address=request.token_address,
            chain_id=request.chain_id,
            name=data["name"],
            symbol=data["symbol"].upper(),
            decimals=data.get("decimals") or 18,
            source=self.name,
            logo_url=f"{self.config.base_url}{asset_path}/logo.png",
            description=data.get("description"),
            website=data.get("website"),
        )

    def _native_metadata(self, request: PriceRequest) -> TokenMetadata:
        native = NATIVE_TOKENS.get(request.chain_id)
        if native is None:
            raise ProviderError(f"Native token not supported for chain {request.chain_id}", provider=self.name)

        name, symbol, logo_chain, website = native
        return TokenMetadata(
            address=NATIVE_TOKEN_ADDRESS,
            chain_id=request.chain_id,
            name=name,
            symbol=symbol,
            decimals=18,
            source=self.name,
            logo_url=f"{self.config.base_url}/blockchains/{logo_chain}/info/logo.png",
            description=f"{name} native token",
            website=website,
        )

"""Concrete upstream providers for prices and token metadata."""

from .base import HTTPProvider
from .coingecko import CoinGeckoMetadataProvider, CoinGeckoPriceProvider
from .defillama import DeFiLlamaPriceProvider
from .moralis import MoralisMetadataProvider, MoralisPriceProvider
from .trustwallet import TrustWalletMetadataProvider

PRICE_PROVIDERS = {
    "defillama": DeFiLlamaPriceProvider,
    "coingecko": CoinGeckoPriceProvider,
    "moralis": MoralisPriceProvider,
}

METADATA_PROVIDERS = {
    "trustwallet": TrustWalletMetadataProvider,
    "coingecko": CoinGeckoMetadataProvider,
    "moralis": MoralisMetadataProvider,
}

__all__ = [
    "HTTPProvider",
    "CoinGeckoMetadataProvider",
    "CoinGeckoPriceProvider",
    "DeFiLlamaPriceProvider",
    "MoralisMetadataProvider",
    "MoralisPriceProvider",
    "TrustWalletMetadataProvider",
    "PRICE_PROVIDERS",
    "METADATA_PROVIDERS",
]

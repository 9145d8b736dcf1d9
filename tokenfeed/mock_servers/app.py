"""FastAPI mock price server for exercising the feed without real upstreams."""

import asyncio
import os
import random
import time
from typing import Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel


DEFAULT_PRICES: Dict[str, float] = {
    # USDC, WETH, WBTC on ethereum
    "ethereum:0xa0b86991c6218b36c1d19d4a2e9eb0ce3606eb48": 1.0,
    "ethereum:0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2": 3500.0,
    "ethereum:0x2260fac5e5542a773aa44fbe3fedf3e2bfb5dc3a": 65000.0,
    # USDC on arbitrum
    "arbitrum:0xaf88d065e77c8cc2239327c5edb3a432268e5831": 1.0,
}


class FailureMode(BaseModel):
    """Forced outage settings."""
    status_code: Optional[int] = None
    latency_ms: int = 0


def create_mock_app(
    name: str,
    prices: Optional[Dict[str, float]] = None,
    random_seed: Optional[int] = None,
    error_rate: float = 0.0,
    extra_latency_ms: int = 0,
) -> FastAPI:
    """
    Create a FastAPI mock server speaking the DeFiLlama and CoinGecko price formats.

    Args:
        name: Server name (e.g., "llama-a")
        prices: Known prices keyed by ``"<chain>:<lowercase address>"``
        random_seed: Seed for deterministic error injection
        error_rate: Probability of returning 5xx errors (0.0-1.0)
        extra_latency_ms: Additional latency in milliseconds

    Returns:
        FastAPI application
    """
    app = FastAPI(title=f"Mock Price API - {name}")
    known_prices = {key.lower(): value for key, value in (prices or DEFAULT_PRICES).items()}
    rng = random.Random(random_seed)
    app.state.failure = FailureMode()
    app.state.requests = 0

    async def simulate_conditions() -> None:
        app.state.requests += 1
        latency_ms = extra_latency_ms + app.state.failure.latency_ms
        if latency_ms > 0:
            await asyncio.sleep(latency_ms / 1000.0)

        if app.state.failure.status_code:
            raise HTTPException(status_code=app.state.failure.status_code, detail="Forced failure")

        if rng.random() < error_rate:
            error_code = rng.choice([500, 502, 503])
            raise HTTPException(status_code=error_code, detail="Simulated error")

    @app.get("/prices/current/{coins}")
    async def current_prices(coins: str):
        """DeFiLlama style: comma separated ``chain:address`` keys."""
        await simulate_conditions()

        result = {}
        for coin in coins.split(","):
            price = known_prices.get(coin.lower())
            if price is not None:
                result[coin] = {
                    "price": price,
                    "symbol": "MOCK",
                    "timestamp": int(time.time()),
                    "confidence": 0.99,
                }
        return {"coins": result}

    @app.get("/simple/token_price/{platform}")
    async def token_price(platform: str, contract_addresses: str, vs_currencies: str = "usd"):
        """CoinGecko style: keyed by lowercase contract address."""
        await simulate_conditions()

        chain = {"arbitrum-one": "arbitrum"}.get(platform, platform)
        result = {}
        for address in contract_addresses.split(","):
            price = known_prices.get(f"{chain}:{address.lower()}")
            if price is not None:
                result[address.lower()] = {"usd": price, "usd_24h_change": 0.0}
        return result

    @app.post("/admin/failure")
    async def set_failure(mode: FailureMode):
        """Force every request to fail (or slow down) until reset."""
        app.state.failure = mode
        return {"server": name, "failure": mode.model_dump()}

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "server": name, "requests": app.state.requests}

    return app


def create_app() -> FastAPI:
    """
    Factory function for uvicorn --factory.

    Reads SERVER_NAME, RANDOM_SEED, ERROR_RATE and EXTRA_LATENCY_MS from
    the environment.
    """
    return create_mock_app(
        name=os.getenv("SERVER_NAME", "mock-llama"),
        random_seed=int(os.getenv("RANDOM_SEED", 42)),
        error_rate=float(os.getenv("ERROR_RATE", 0.1)),
        extra_latency_ms=int(os.getenv("EXTRA_LATENCY_MS", 0)),
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(create_app(), host="127.0.0.1", port=int(os.getenv("PORT", 8001)))

"""Price history from the public CoinGecko API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .base import HttpProvider

logger = logging.getLogger(__name__)

# Base asset -> CoinGecko coin id
_COIN_IDS = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "SOL": "solana",
    "ARB": "arbitrum",
    "LINK": "chainlink",
}


def coin_id_for(market: str) -> str:
    """``"BTC/USD"`` -> ``"bitcoin"``; unknown bases fall back to lower case."""
    base = market.split("/")[0].strip().upper()
    return _COIN_IDS.get(base, base.lower())


class CoinGeckoProvider(HttpProvider):
    """Recent price, volume and market-cap samples for one market.

    Parameters
    ----------
    base_url:
        CoinGecko API root.
    samples:
        Number of most recent samples returned per fetch.
    """

    name = "market"

    def __init__(
        self,
        *,
        base_url: str = "https://api.coingecko.com/api/v3",
        samples: int = 50,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._base_url = base_url.rstrip("/")
        self._samples = samples

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        quote = query.split("/")[1].lower() if "/" in query else "usd"
        data = await self._request_json(
            "GET",
            f"{self._base_url}/coins/{coin_id_for(query)}/market_chart",
            params={"vs_currency": quote, "days": "1"},
        )
        if not isinstance(data, dict):
            return []

        prices = data.get("prices") or []
        volumes = data.get("total_volumes") or []
        caps = data.get("market_caps") or []

        items = []
        for i, point in enumerate(prices[-self._samples:]):
            offset = len(prices) - min(len(prices), self._samples) + i
            items.append(
                {
                    "symbol": query,
                    "timestamp_ms": point[0],
                    "price": float(point[1]),
                    "volume": float(volumes[offset][1]) if offset < len(volumes) else 0.0,
                    "market_cap": float(caps[offset][1]) if offset < len(caps) else 0.0,
                }
            )
        return items

"""EVM chain snapshot over plain JSON-RPC.

One query is a chain name; the provider resolves it to an RPC url and
returns a single item describing the latest block.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from swarm_oracle.core.errors import ProviderError

from .base import HttpProvider

logger = logging.getLogger(__name__)


def _hex_to_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value:
        return int(value, 16) if value.startswith("0x") else int(value)
    return 0


class JsonRpcChainProvider(HttpProvider):
    """Latest block, gas price and chain id for each configured chain.

    Parameters
    ----------
    rpcs:
        Mapping of chain name to JSON-RPC endpoint url.  Chains without a
        url yield no items.
    """

    name = "onchain"

    def __init__(
        self,
        rpcs: dict[str, str],
        *,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self._rpcs = {k: v for k, v in rpcs.items() if v}
        self._request_id = 0

    async def _call(self, url: str, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        body = await self._request_json(
            "POST",
            url,
            json={"jsonrpc": "2.0", "id": self._request_id, "method": method, "params": params},
        )
        if not isinstance(body, dict):
            raise ProviderError(self.name, f"{method}: malformed response")
        if body.get("error"):
            raise ProviderError(self.name, f"{method}: {body['error']}")
        return body.get("result")

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        url = self._rpcs.get(query)
        if url is None:
            return []

        block = await self._call(url, "eth_getBlockByNumber", ["latest", False])
        if not block:
            return []
        gas_price = _hex_to_int(await self._call(url, "eth_gasPrice", []))
        chain_id = _hex_to_int(await self._call(url, "eth_chainId", []))

        return [
            {
                "network": query,
                "chain_id": chain_id,
                "block_number": _hex_to_int(block.get("number")),
                "transaction_count": len(block.get("transactions") or []),
                "gas_price_gwei": gas_price / 1e9,
                "base_fee_gwei": _hex_to_int(block.get("baseFeePerGas")) / 1e9,
                "block_timestamp": _hex_to_int(block.get("timestamp")),
            }
        ]

"""Shared plumbing for httpx-backed data providers.

A provider turns one query (topic, subreddit, chain, market) into a list of
normalized raw items.  Transport and decoding failures surface as
:class:`ProviderError`; the collector decides what to do with them.
"""

from __future__ import annotations

import abc
import logging
from typing import Any

import httpx

from swarm_oracle.core.errors import ProviderError

logger = logging.getLogger(__name__)


class HttpProvider(abc.ABC):
    """Base class owning a lazily created :class:`httpx.AsyncClient`.

    Parameters
    ----------
    timeout:
        Per-request timeout in seconds.
    client:
        Pre-built client (tests pass one with a ``MockTransport``).  A client
        passed in is closed by :meth:`close` just like an owned one.
    """

    name = "http"

    def __init__(self, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self._timeout = timeout
        self._client = client

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request_json(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
    ) -> Any:
        try:
            response = await self._http().request(
                method, url, params=params, headers=headers, json=json
            )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            raise ProviderError(
                self.name,
                f"HTTP {exc.response.status_code}: {exc.response.text[:200]}",
            ) from exc
        except httpx.HTTPError as exc:
            raise ProviderError(self.name, f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise ProviderError(self.name, f"invalid JSON body: {exc}") from exc

    @abc.abstractmethod
    async def fetch(self, query: str) -> list[dict[str, Any]]:
        """Return the normalized items for *query*."""

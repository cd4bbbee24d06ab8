"""In-process provider serving canned items.

Selected through ``providers.static_items`` for offline runs; items are
keyed by query, with ``"*"`` as the catch-all.
"""

from __future__ import annotations

from typing import Any

from swarm_oracle.core.errors import ProviderError


class StaticProvider:
    def __init__(
        self,
        name: str,
        items: dict[str, list[dict[str, Any]]] | None = None,
        *,
        fail_on: set[str] | None = None,
    ) -> None:
        self.name = name
        self._items = items or {}
        self._fail_on = fail_on or set()
        self.calls: list[str] = []
        self.closed = False

    async def fetch(self, query: str) -> list[dict[str, Any]]:
        self.calls.append(query)
        if query in self._fail_on or "*" in self._fail_on:
            raise ProviderError(self.name, f"simulated outage for {query!r}")
        return list(self._items.get(query, self._items.get("*", [])))

    async def close(self) -> None:
        self.closed = True
